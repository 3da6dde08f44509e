"""Tests for go.mod parsing and DependencyAnalyzer."""

import json

import pytest

from testwarden.config import InfrastructureConfig
from testwarden.maintenance.dependencies import (
    DependencyAnalyzer,
    import_paths,
    parse_go_mod,
    parse_update_listing,
    version_key,
)
from testwarden.maintenance.models import ConflictType, DependencyType

GO_MOD = """module example.com/demo

go 1.21

require (
\tgithub.com/stretchr/testify v1.8.4
\tgithub.com/go-chi/chi/v5 v5.0.10
\tgolang.org/x/text v0.3.0 // indirect
\tgithub.com/old/lib v2.0.0+incompatible
)

require github.com/unused/tool v0.1.0

replace example.com/shared => ../shared
"""


class TestParseGoMod:
    """go.mod directives."""

    def test_module_and_go_version(self):
        module = parse_go_mod(GO_MOD)
        assert module.path == "example.com/demo"
        assert module.go_version == "1.21"

    def test_requires(self):
        requires = {r.path: r for r in parse_go_mod(GO_MOD).requires}
        assert requires["github.com/stretchr/testify"].version == "v1.8.4"
        assert requires["golang.org/x/text"].indirect
        assert not requires["github.com/go-chi/chi/v5"].indirect
        assert "github.com/unused/tool" in requires

    def test_replace(self):
        (replacement,) = parse_go_mod(GO_MOD).replaces
        assert replacement.old_path == "example.com/shared"
        assert replacement.new_path == "../shared"
        assert replacement.is_local


class TestHelpers:
    """Versions, imports and update listings."""

    @pytest.mark.parametrize(
        "lower,higher",
        [("v1.2.3", "v1.10.0"), ("v1.0.0-rc1", "v1.0.0"), ("v0.9.9", "v1.0.0"), ("garbage", "v0.0.1")],
    )
    def test_version_order(self, lower, higher):
        assert version_key(lower) < version_key(higher)

    def test_import_paths(self):
        source = 'package x\n\nimport "fmt"\n\nimport (\n\t"strings"\n\tchi "github.com/go-chi/chi/v5"\n\t_ "embed"\n)\n'
        assert import_paths(source) == {"fmt", "strings", "github.com/go-chi/chi/v5", "embed"}

    def test_update_listing(self):
        output = "\n".join(
            json.dumps(obj)
            for obj in (
                {"Path": "example.com/demo", "Main": True},
                {"Path": "github.com/stretchr/testify", "Version": "v1.8.4", "Update": {"Version": "v1.9.0"}},
            )
        )
        assert parse_update_listing(output) == {"github.com/stretchr/testify": "v1.9.0"}


@pytest.fixture
def project(tmp_path):
    (tmp_path / "go.mod").write_text(GO_MOD)
    (tmp_path / "server.go").write_text('package demo\n\nimport "github.com/go-chi/chi/v5/middleware"\n')
    (tmp_path / "server_test.go").write_text(
        'package demo\n\nimport (\n\t"testing"\n\t"github.com/stretchr/testify/assert"\n)\n'
    )
    vendor = tmp_path / "vendor" / "golang.org" / "x" / "text"
    vendor.mkdir(parents=True)
    (vendor / "x_test.go").write_text('package text\n\nimport "github.com/unused/tool"\n')
    return tmp_path


class TestAnalyzeDependencies:
    """Usage classification and conflicts."""

    def test_usage_types(self, project, clock):
        analyzer = DependencyAnalyzer(InfrastructureConfig(project_root=str(project)), clock=clock)
        deps = {d.name: d for d in analyzer.analyze_dependencies()}

        assert deps["github.com/go-chi/chi/v5"].type == DependencyType.RUNTIME
        testify = deps["github.com/stretchr/testify"]
        assert testify.type == DependencyType.TEST
        assert testify.used_by_tests == ("server_test.go",)
        # vendor is not scanned
        assert deps["github.com/unused/tool"].type == DependencyType.DEV
        assert not deps["golang.org/x/text"].required
        assert testify.last_checked == clock()

    def test_compatibility_conflicts(self, project):
        analyzer = DependencyAnalyzer(InfrastructureConfig(project_root=str(project)))
        analyzer.analyze_dependencies()
        conflicts = analyzer.conflicts()
        assert {c.conflict_type for c in conflicts} == {ConflictType.COMPATIBILITY}
        assert {c.dependency for c in conflicts} == {"github.com/old/lib@v2.0.0+incompatible", "example.com/shared"}

    def test_security_advisory(self, project):
        analyzer = DependencyAnalyzer(
            InfrastructureConfig(project_root=str(project)),
            advisories={"golang.org/x/text": "v0.3.8"},
        )
        deps = {d.name: d for d in analyzer.analyze_dependencies()}
        assert deps["golang.org/x/text"].security_issues == 1
        security = [c for c in analyzer.conflicts() if c.conflict_type == ConflictType.SECURITY]
        assert len(security) == 1
        assert security[0].auto_resolvable

    def test_version_conflict(self, tmp_path):
        (tmp_path / "go.mod").write_text("module m\n\nrequire a.io/x v1.0.0\nrequire a.io/x v1.2.0\n")
        analyzer = DependencyAnalyzer(InfrastructureConfig(project_root=str(tmp_path)))
        analyzer.analyze_dependencies()
        (conflict,) = analyzer.conflicts()
        assert conflict.conflict_type == ConflictType.VERSION

    def test_updates(self, project, canned_runner):
        listing = json.dumps({"Path": "github.com/stretchr/testify", "Version": "v1.8.4", "Update": {"Version": "v1.9.0"}})
        runner = canned_runner(listing)
        analyzer = DependencyAnalyzer(
            InfrastructureConfig(project_root=str(project)), check_updates=True, execute=runner
        )
        analyzer.analyze_dependencies()
        (outdated,) = analyzer.outdated()
        assert outdated.name == "github.com/stretchr/testify"
        assert outdated.latest_version == "v1.9.0"
        assert runner.commands[0][0] == ("go", "list", "-m", "-u", "-json", "all")

    def test_no_go_mod(self, tmp_path):
        analyzer = DependencyAnalyzer(InfrastructureConfig(project_root=str(tmp_path)))
        assert analyzer.analyze_dependencies() == []
        assert analyzer.conflicts() == []
