"""Tests for AutomatedTestGenerator."""

from pathlib import Path

from testwarden.config import GenerationOptions
from testwarden.synthesis.generator import (
    AutomatedTestGenerator,
    find_source_files,
    write_generated_files,
)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestFindSourceFiles:
    """Source discovery."""

    def test_skips_tests_vendor_and_generated(self, go_project):
        _write(go_project / "calc.go", "package calc\n")
        _write(go_project / "calc_test.go", "package calc\n")
        _write(go_project / "vendor" / "x" / "x.go", "package x\n")
        _write(go_project / "testdata" / "fixture.go", "package fixture\n")
        _write(go_project / ".hidden" / "h.go", "package h\n")
        _write(go_project / "test_calc.go", "// Code generated by testwarden from calc.go.\n\npackage calc\n")
        _write(go_project / "test_helpers.go", "package calc\n")
        _write(go_project / "README.md", "# demo\n")

        names = [p.name for p in find_source_files(go_project)]
        assert names == ["calc.go", "test_helpers.go"]


class TestGenerateForDirectory:
    """Batch generation."""

    def test_generates_suffix_file(self, go_project, calc_source):
        _write(go_project / "calc" / "calc.go", calc_source)
        result = AutomatedTestGenerator().generate_for_directory(go_project)

        expected = str(go_project / "calc" / "calc_test.go")
        assert list(result.generated_files) == [expected]
        content = result.generated_files[expected]
        assert content.startswith("// Code generated by testwarden from calc.go.")
        assert "func TestDivide(t *testing.T)" in content
        assert result.statistics.files_analyzed == 1
        assert result.statistics.functions_analyzed == 3
        assert result.errors == ()

    def test_parse_error_is_recorded(self, go_project, calc_source):
        _write(go_project / "calc.go", calc_source)
        _write(go_project / "broken.go", "package broken\n\nfunc Broken( {\n")
        result = AutomatedTestGenerator().generate_for_directory(go_project)

        assert len(result.errors) == 1
        assert "broken.go" in result.errors[0]
        assert str(go_project / "calc_test.go") in result.generated_files

    def test_parallel_layout_uses_module_path(self, go_project, calc_source):
        _write(go_project / "calc" / "calc.go", calc_source)
        generator = AutomatedTestGenerator(GenerationOptions(test_file_naming="parallel"))
        result = generator.generate_for_directory(go_project)

        content = result.generated_files[str(go_project / "calc" / "tests" / "calc_test.go")]
        assert "package tests" in content
        assert '"example.com/demo/calc"' in content
        assert "calc.Divide(" in content

    def test_many_files_in_parallel(self, go_project, calc_source):
        for name in ("a", "b", "c", "d", "e"):
            _write(go_project / name / f"{name}.go", calc_source.replace("package calc", f"package {name}"))
        result = AutomatedTestGenerator(max_workers=2).generate_for_directory(go_project)

        assert result.statistics.files_analyzed == 5
        assert [s.package_name for s in result.suites] == ["a", "b", "c", "d", "e"]


class TestGenerateForSource:
    """In-memory generation."""

    def test_syntax_error_is_not_raised(self):
        result = AutomatedTestGenerator().generate_for_source("package x\nfunc (", "x.go")
        assert result.generated_files == {}
        assert len(result.errors) == 1


class TestWriteGeneratedFiles:
    """Writing results to disk."""

    def test_existing_files_are_kept(self, go_project, calc_source):
        _write(go_project / "calc.go", calc_source)
        existing = _write(go_project / "calc_test.go", "package calc\n")
        result = AutomatedTestGenerator().generate_for_file(go_project / "calc.go")

        assert write_generated_files(result) == []
        assert existing.read_text() == "package calc\n"

        written = write_generated_files(result, overwrite=True)
        assert written == [existing]
        assert "TestDivide" in existing.read_text()
