"""Tests for the testwarden command line."""

import json

import pytest
from typer.testing import CliRunner

from testwarden import __version__
from testwarden.cli import app


def load_json(output):
    """JSON document printed by a command; log lines may precede it."""
    start = 0 if output.startswith("{") else output.index("\n{") + 1
    return json.loads(output[start:])


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """CliRunner isolated from user and project config files."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(home)
    return CliRunner()


class TestVersion:
    """Global options."""

    def test_version(self, cli):
        result = cli.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_missing_path(self, cli, tmp_path):
        result = cli.invoke(app, ["-C", str(tmp_path / "nope"), "status"])
        assert result.exit_code != 0


class TestGenerate:
    """testwarden generate."""

    @pytest.fixture
    def project(self, go_project, calc_source):
        (go_project / "calc.go").write_text(calc_source)
        return go_project

    def test_json(self, cli, project):
        result = cli.invoke(app, ["-C", str(project), "generate", "--json"])
        assert result.exit_code == 0, result.output
        data = load_json(result.stdout)
        assert data["generated_files"] == [str(project / "calc_test.go")]
        assert data["written"] == []
        assert data["statistics"]["functions_analyzed"] == 3
        assert not (project / "calc_test.go").exists()

    def test_write(self, cli, project):
        result = cli.invoke(app, ["-C", str(project), "generate", "--write"])
        assert result.exit_code == 0, result.output
        assert "Wrote 1 of 1 files" in result.stdout
        assert (project / "calc_test.go").read_text().startswith("// Code generated by testwarden")

    def test_naming_option(self, cli, project):
        result = cli.invoke(app, ["-C", str(project), "generate", "--naming", "package", "--json"])
        data = load_json(result.stdout)
        assert data["generated_files"] == [str(project / "test_calc.go")]

    def test_invalid_option_value(self, cli, project):
        result = cli.invoke(app, ["-C", str(project), "generate", "--framework", "ginkgo"])
        assert result.exit_code == 2
        assert "Configuration error" in result.stdout


class TestMaintain:
    """testwarden maintain without a Go toolchain."""

    def test_runner_failure_exits_nonzero(self, cli, go_project, monkeypatch):
        # an empty PATH means "go" cannot be started
        monkeypatch.setenv("PATH", "")
        result = cli.invoke(app, ["-C", str(go_project), "maintain", "--json"])
        assert result.exit_code == 1
        data = load_json(result.stdout)
        assert data["errors"][0].startswith("Test runner failed")
        assert data["performance_summary"]["total_tests"] == 0
