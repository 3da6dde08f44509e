"""Tests for CoverageEstimator."""

import pytest

from testwarden.analysis.models import ErrorKind, ErrorPath, FunctionAnalysis
from testwarden.synthesis.coverage import CoverageEstimator
from testwarden.synthesis.models import ErrorExpectation, TestCase as Case, TestKind as Kind


def _fn(name, complexity, error_paths=0, start=1, end=3):
    errors = tuple(ErrorPath(f"cond{i}", ErrorKind.PROPAGATED, "", ()) for i in range(error_paths))
    return FunctionAnalysis(
        name=name,
        package="p",
        exported=True,
        complexity=complexity,
        error_paths=errors,
        start_line=start,
        end_line=end,
    )


def _case(fn_name, expectation=ErrorExpectation.NONE):
    return Case(name=f"Test{fn_name}", function_name=fn_name, error_expectation=expectation)


class TestEstimate:
    """Complexity-weighted coverage."""

    def test_empty_input(self):
        result = CoverageEstimator().estimate([], [])
        assert result.estimated_coverage == 0.0
        assert result.test_gaps == ()

    def test_weighted_by_complexity(self):
        functions = [_fn("A", 1), _fn("B", 3)]
        cases = [_case("A"), _case("B")]
        result = CoverageEstimator().estimate(functions, cases)
        # A: 1 of 1, B: 1 of 3
        assert result.estimated_coverage == pytest.approx(50.0)

    def test_extra_cases_do_not_exceed_complexity(self):
        result = CoverageEstimator().estimate([_fn("A", 2)], [_case("A")] * 5)
        assert result.estimated_coverage == pytest.approx(100.0)

    def test_table_driven_counts_rows(self):
        rows = tuple(_case("A") for _ in range(3))
        table = Case(name="TestA", function_name="A", kind=Kind.TABLE_DRIVEN, complexity=3, rows=rows)
        result = CoverageEstimator().estimate([_fn("A", 3)], [table])
        assert result.estimated_coverage == pytest.approx(100.0)

    def test_meets_target(self):
        estimator = CoverageEstimator(target_coverage=90.0)
        assert not estimator.estimate([_fn("A", 2)], [_case("A")]).meets_target
        assert estimator.estimate([_fn("A", 1)], [_case("A")]).meets_target


class TestGaps:
    """Uncovered lines, critical paths and gap descriptions."""

    def test_untested_function(self):
        result = CoverageEstimator().estimate([_fn("A", 1, start=10, end=12)], [])
        assert result.uncovered_lines == (10, 11, 12)
        assert result.test_gaps == ("A: no tests",)

    def test_critical_path(self):
        result = CoverageEstimator().estimate([_fn("Big", 5)], [_case("Big")])
        assert result.critical_paths == ("Big",)

    def test_simple_function_is_never_critical(self):
        result = CoverageEstimator().estimate([_fn("Small", 3)], [])
        assert result.critical_paths == ()

    def test_missing_error_paths(self):
        functions = [_fn("A", 3, error_paths=2)]
        cases = [_case("A"), _case("A", ErrorExpectation.ANY)]
        result = CoverageEstimator().estimate(functions, cases)
        assert result.test_gaps == ("A: 1 of 2 error paths untested",)


class TestEstimateFiles:
    """Per-file matching of cases."""

    def test_same_name_in_two_files(self):
        files = [([_fn("Run", 1)], [_case("Run")]), ([_fn("Run", 1)], [])]
        result = CoverageEstimator().estimate_files(files)
        assert result.estimated_coverage == pytest.approx(50.0)
        assert result.test_gaps == ("Run: no tests",)
