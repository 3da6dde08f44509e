"""CoverageEstimator: static estimate of how well cases cover functions.

Each function contributes ``complexity`` paths; its cases cover
``min(cases, complexity)`` of them. The estimate is the covered share of all
paths, which makes it a complexity-weighted mean of per-function ratios:

    coverage = 100 * sum(min(n_f, c_f)) / sum(c_f)
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Sequence

from ..analysis.models import FunctionAnalysis
from .models import CoverageAnalysis, TestCase

# Functions above this complexity are "critical" when not fully covered
CRITICAL_COMPLEXITY = 3


class CoverageEstimator:
    """Estimates coverage from case counts and function complexity."""

    def __init__(self, target_coverage: float = 80.0) -> None:
        self.target_coverage = target_coverage

    def estimate(self, functions: Sequence[FunctionAnalysis], cases: Iterable[TestCase]) -> CoverageAnalysis:
        """Estimate coverage of ``functions`` by ``cases``.

        Cases are matched to functions by qualified name; a table-driven case
        counts as its number of rows.
        """
        return self.estimate_files([(functions, list(cases))])

    def estimate_files(
        self, files: Iterable[tuple[Sequence[FunctionAnalysis], Sequence[TestCase]]]
    ) -> CoverageAnalysis:
        """Estimate coverage across several files, matching cases per file."""
        total_paths = 0
        covered_paths = 0
        uncovered_lines: list[int] = []
        critical: list[str] = []
        gaps: list[str] = []

        for functions, cases in files:
            counts: dict[str, int] = defaultdict(int)
            error_counts: dict[str, int] = defaultdict(int)
            for case in cases:
                counts[case.function_name] += case.path_count
                rows = case.rows if case.rows else (case,)
                error_counts[case.function_name] += sum(1 for r in rows if r.expects_error)

            for fn in functions:
                key = fn.qualified_name
                complexity = max(fn.complexity, 1)
                count = counts.get(key, 0)
                total_paths += complexity
                covered_paths += min(count, complexity)

                if count == 0:
                    uncovered_lines.extend(range(fn.start_line, fn.end_line + 1))
                    gaps.append(f"{fn.name}: no tests")
                if complexity > CRITICAL_COMPLEXITY and count < complexity:
                    critical.append(fn.name)
                missing_errors = len(fn.error_paths) - error_counts.get(key, 0)
                if count > 0 and missing_errors > 0:
                    gaps.append(f"{fn.name}: {missing_errors} of {len(fn.error_paths)} error paths untested")

        estimated = 100.0 * covered_paths / total_paths if total_paths else 0.0
        return CoverageAnalysis(
            target_coverage=self.target_coverage,
            estimated_coverage=min(estimated, 100.0),
            uncovered_lines=tuple(uncovered_lines),
            critical_paths=tuple(critical),
            test_gaps=tuple(gaps),
        )
