"""Tests for TestMaintainer."""

from datetime import timedelta

import pytest

from testwarden.config import InfrastructureConfig
from testwarden.maintenance.maintainer import BACKUP_DIRECTORY, TestMaintainer as Maintainer, find_test_function
from testwarden.maintenance.models import ActionStatus, ActionType, Dependency, DependencyType

SLOW_TEST = """package calc

import "testing"

func TestSlow(t *testing.T) {
\ts := "}"
\t// closing } in a comment
\tif Add(1, 2) != 3 {
\t\tt.Fatal("bad sum" + s)
\t}
}

func TestEnv(t *testing.T) {
\tt.Setenv("MODE", "test")
}

func TestAlready(tt *testing.T) {
\ttt.Parallel()
}
"""


@pytest.fixture
def project(go_project):
    (go_project / "calc.go").write_text("package calc\n\nfunc Add(a, b int) int {\n\treturn a + b\n}\n")
    (go_project / "calc_test.go").write_text(SLOW_TEST)
    return go_project


def maintainer(root, clock, **overrides):
    return Maintainer(InfrastructureConfig(project_root=str(root), **overrides), clock=clock)


class TestFindTestFunction:
    """Locating test bodies."""

    def test_body_with_braces_in_literals(self, project):
        location = find_test_function(project, "TestSlow")
        assert location.var == "t"
        assert location.body.rstrip().endswith("}")
        assert "TestEnv" not in location.body

    def test_subtest_maps_to_parent(self, project):
        assert find_test_function(project, "TestSlow/case_1").name == "TestSlow"

    def test_missing(self, project):
        assert find_test_function(project, "TestNope") is None


class TestOptimizeSlowTest:
    """Adding t.Parallel()."""

    def test_plan_only(self, project, clock):
        action = maintainer(project, clock).optimize_slow_test("TestSlow")
        assert action.type == ActionType.OPTIMIZE
        assert action.status == ActionStatus.COMPLETED
        assert action.changes == ("calc_test.go: add t.Parallel() at the start of TestSlow",)
        assert action.metadata["applied"] is False
        assert "Parallel" not in (project / "calc_test.go").read_text().split("TestEnv")[0]

    def test_apply(self, project, clock):
        action = maintainer(project, clock, apply_changes=True).optimize_slow_test("TestSlow")
        assert action.metadata["applied"] is True
        text = (project / "calc_test.go").read_text()
        assert "func TestSlow(t *testing.T) {\n\tt.Parallel()\n" in text
        backups = list((project / BACKUP_DIRECTORY).rglob("calc_test.go"))
        assert len(backups) == 1
        assert backups[0].read_text() == SLOW_TEST

    def test_process_state_is_not_parallel_safe(self, project, clock):
        action = maintainer(project, clock, apply_changes=True).optimize_slow_test("TestEnv")
        assert "cannot run in parallel" in action.changes[0]
        assert action.metadata["applied"] is False

    def test_already_parallel(self, project, clock):
        action = maintainer(project, clock).optimize_slow_test("TestAlready")
        assert "already calls tt.Parallel()" in action.changes[0]

    def test_unknown_test_fails(self, project, clock):
        action = maintainer(project, clock).optimize_slow_test("TestNope")
        assert action.status == ActionStatus.FAILED
        assert "not found" in action.error


class TestCleanup:
    """Removal of generated tests whose source is gone."""

    @pytest.fixture
    def orphan(self, project):
        path = project / "gone_test.go"
        path.write_text("// Code generated by testwarden from gone.go.\n\npackage calc\n")
        return path

    def test_plan_only(self, project, orphan, clock):
        (action,) = maintainer(project, clock).cleanup_obsolete_tests()
        assert action.type == ActionType.CLEANUP
        assert action.metadata["files"] == ["gone_test.go"]
        assert orphan.exists()

    def test_apply(self, project, orphan, clock):
        (action,) = maintainer(project, clock, apply_changes=True).cleanup_obsolete_tests()
        assert action.metadata["applied"] is True
        assert not orphan.exists()
        # hand-written and still-backed tests stay
        assert (project / "calc_test.go").exists()

    def test_nothing_to_clean(self, project, clock):
        (action,) = maintainer(project, clock).cleanup_obsolete_tests()
        assert action.changes == ("no obsolete generated test files found",)


class TestGenerateMissing:
    """Generation for source files without tests."""

    def test_generates_for_untested_file(self, project, calc_source, clock):
        (project / "math").mkdir()
        (project / "math" / "calc.go").write_text(calc_source)
        (action,) = maintainer(project, clock, apply_changes=True).generate_missing_tests()

        assert action.status == ActionStatus.COMPLETED
        assert action.metadata["files"] == 1
        assert action.changes[0].startswith("generate math/calc_test.go")
        assert (project / "math" / "calc_test.go").exists()

    def test_everything_covered(self, project, clock):
        (action,) = maintainer(project, clock).generate_missing_tests()
        assert action.changes == ("every source file already has a test file",)


class TestDependencyUpdates:
    """go get planning."""

    def _dep(self, clock, latest="v1.9.0"):
        return Dependency(
            name="github.com/stretchr/testify",
            version="v1.8.4",
            type=DependencyType.TEST,
            required=True,
            last_checked=clock(),
            updates_available=bool(latest),
            latest_version=latest,
        )

    def test_plan_only(self, project, clock, canned_runner):
        runner = canned_runner("")
        m = Maintainer(InfrastructureConfig(project_root=str(project)), execute=runner, clock=clock)
        (action,) = m.plan_dependency_updates([self._dep(clock), self._dep(clock, latest="")])
        assert action.changes == ("go get github.com/stretchr/testify@v1.9.0 (from v1.8.4)",)
        assert runner.commands == []

    def test_apply(self, project, clock, canned_runner):
        runner = canned_runner("")
        config = InfrastructureConfig(project_root=str(project), apply_changes=True, auto_update_dependencies=True)
        (action,) = Maintainer(config, execute=runner, clock=clock).plan_dependency_updates([self._dep(clock)])
        assert action.metadata["applied"] is True
        assert runner.commands[0][0] == ("go", "get", "github.com/stretchr/testify@v1.9.0")

    def test_failed_go_get(self, project, clock, canned_runner):
        runner = canned_runner("go: module not found", returncode=1)
        config = InfrastructureConfig(project_root=str(project), apply_changes=True, auto_update_dependencies=True)
        (action,) = Maintainer(config, execute=runner, clock=clock).plan_dependency_updates([self._dep(clock)])
        assert action.status == ActionStatus.FAILED
        assert action.error == "go: module not found"


class TestHistory:
    """Audit trail."""

    def test_actions_recorded_with_ids(self, project, clock):
        m = maintainer(project, clock)
        first = m.optimize_slow_test("TestSlow")
        clock.advance(seconds=1)
        second = m.optimize_slow_test("TestNope")
        assert m.history() == [first, second]
        assert first.id != second.id
        assert second.start_time - first.start_time == timedelta(seconds=1)
