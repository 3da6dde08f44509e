"""Tests for test-file emission."""

import pytest

from testwarden.synthesis import emitter
from testwarden.synthesis.models import TestCase as Case, TestSuite as Suite


class TestFileLayout:
    """Test file paths and package clauses."""

    @pytest.mark.parametrize(
        "naming,expected",
        [
            ("suffix", "pkg/calc_test.go"),
            ("package", "pkg/test_calc.go"),
            ("parallel", "pkg/tests/calc_test.go"),
        ],
    )
    def test_file_path(self, naming, expected):
        assert emitter.test_file_path("pkg/calc.go", naming) == expected

    def test_package_name(self):
        assert emitter.test_package_name("calc", "suffix") == "calc"
        assert emitter.test_package_name("calc", "parallel") == "tests"


class TestModulePath:
    """Import path discovery from go.mod."""

    def test_root_package(self, go_project):
        source = go_project / "main.go"
        source.write_text("package main\n")
        assert emitter.find_module_path(source) == "example.com/demo"

    def test_nested_package(self, go_project):
        nested = go_project / "pkg" / "calc"
        nested.mkdir(parents=True)
        source = nested / "calc.go"
        source.write_text("package calc\n")
        assert emitter.find_module_path(source) == "example.com/demo/pkg/calc"

    def test_missing_go_mod(self, tmp_path):
        source = tmp_path / "calc.go"
        source.write_text("package calc\n")
        # tmp_path has no go.mod above it on a clean system
        if any((p / "go.mod").exists() for p in tmp_path.parents):
            pytest.skip("a go.mod exists above the temporary directory")
        assert emitter.find_module_path(source) is None


class TestImports:
    """goimports-style import blocks."""

    def test_groups_standard_library_first(self):
        lines = emitter.render_imports(
            (("", "github.com/stretchr/testify/assert"), ("", "testing"), ("", "errors"))
        )
        assert lines == [
            "import (",
            '\t"errors"',
            '\t"testing"',
            "",
            '\t"github.com/stretchr/testify/assert"',
            ")",
        ]

    def test_alias(self):
        lines = emitter.render_imports((("yaml", "gopkg.in/yaml.v3"),))
        assert '\tyaml "gopkg.in/yaml.v3"' in lines

    def test_empty(self):
        assert emitter.render_imports(()) == []


class TestRenderSuite:
    """Complete generated file text."""

    @pytest.fixture
    def suite(self):
        return Suite(
            package_name="calc",
            file_name="calc_test.go",
            source_path="pkg/calc.go",
            test_cases=(Case(name="TestAdd", function_name="Add", code="func TestAdd(t *testing.T) {\n}"),),
            imports=(("", "testing"),),
        )

    def test_header_and_package(self, suite):
        text = emitter.render_suite(suite)
        assert text.startswith("// Code generated by testwarden from calc.go.\n")
        assert "\npackage calc\n" in text
        assert '\t"testing"' in text
        assert text.endswith("func TestAdd(t *testing.T) {\n}\n")

    def test_generated_source_reads_header(self, tmp_path, suite):
        path = tmp_path / "calc_test.go"
        path.write_text(emitter.render_suite(suite))
        assert emitter.generated_source(path) == "calc.go"

    def test_generated_source_of_hand_written_file(self, tmp_path):
        path = tmp_path / "calc_test.go"
        path.write_text("package calc\n")
        assert emitter.generated_source(path) is None
        assert emitter.generated_source(tmp_path / "missing.go") is None
