"""Synthesis records: test cases, suites and generation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum

from ..analysis.models import TestInput, TestOutput
from ..serialization import Serializable


class TestKind(str, Enum):
    __test__ = False

    UNIT = "unit"
    TABLE_DRIVEN = "table-driven"
    INTEGRATION = "integration"


class ErrorExpectation(str, Enum):
    """What a case asserts about the returned error."""

    NONE = "none"  # success: no error
    ANY = "any"  # some error
    CONTAINS = "contains"  # error whose message contains error_value
    IS = "is"  # errors.Is(err, error_value)
    UNKNOWN = "unknown"  # only that the call does not panic


@dataclass(frozen=True)
class TestCase(Serializable):
    """One generated test function, or one row of a table-driven test.

    Attributes:
        name: Go identifier (units) or row label (table rows)
        function_name: Qualified name of the function under test
        kind: unit, table-driven or integration
        setup: Go lines run before the call
        assertions: Go lines checking the results
        complexity: Paths exercised (rows for table-driven cases)
        rows: Folded cases of a table-driven test
        code: Complete Go source of the test function (empty for rows)
    """

    __test__ = False

    name: str
    function_name: str
    kind: TestKind = TestKind.UNIT
    description: str = ""
    inputs: tuple[TestInput, ...] = ()
    expected_outputs: tuple[TestOutput, ...] = ()
    setup: tuple[str, ...] = ()
    teardown: tuple[str, ...] = ()
    assertions: tuple[str, ...] = ()
    comments: tuple[str, ...] = ()
    complexity: int = 1
    rows: tuple[TestCase, ...] = ()
    error_expectation: ErrorExpectation = ErrorExpectation.NONE
    error_value: str = ""
    code: str = ""

    @property
    def path_count(self) -> int:
        """Paths this case covers: rows for tables, one otherwise."""
        return len(self.rows) if self.kind == TestKind.TABLE_DRIVEN else 1

    @property
    def expects_error(self) -> bool:
        return self.error_expectation in (
            ErrorExpectation.ANY,
            ErrorExpectation.CONTAINS,
            ErrorExpectation.IS,
        )


@dataclass(frozen=True)
class MockMethod(Serializable):
    name: str
    parameters: tuple[tuple[str, str], ...] = ()
    results: tuple[str, ...] = ()


@dataclass(frozen=True)
class MockDefinition(Serializable):
    interface_name: str
    mock_name: str
    methods: tuple[MockMethod, ...] = ()
    constructor: str = ""
    code: str = ""


@dataclass(frozen=True)
class TestHelper(Serializable):
    __test__ = False

    name: str
    description: str
    code: str


@dataclass(frozen=True)
class BenchmarkTest(Serializable):
    name: str
    function_name: str
    code: str


@dataclass(frozen=True)
class ExampleTest(Serializable):
    name: str
    function_name: str
    code: str


@dataclass(frozen=True)
class CoverageAnalysis(Serializable):
    """Estimated coverage of a set of functions by a set of cases.

    Attributes:
        estimated_coverage: Complexity-weighted percentage, 0-100
        uncovered_lines: Source lines of functions without any case
        critical_paths: Complex functions (complexity > 3) not fully covered
        test_gaps: Human-readable descriptions of what is missing
    """

    target_coverage: float
    estimated_coverage: float
    uncovered_lines: tuple[int, ...] = ()
    critical_paths: tuple[str, ...] = ()
    test_gaps: tuple[str, ...] = ()

    @property
    def meets_target(self) -> bool:
        return self.estimated_coverage >= self.target_coverage


@dataclass(frozen=True)
class TestSuite(Serializable):
    """Everything generated for one source file.

    ``imports`` holds (alias, path) pairs; alias is empty when the default
    package name applies.
    """

    __test__ = False

    package_name: str
    file_name: str
    source_path: str = ""
    test_cases: tuple[TestCase, ...] = ()
    imports: tuple[tuple[str, str], ...] = ()
    helpers: tuple[TestHelper, ...] = ()
    mocks: tuple[MockDefinition, ...] = ()
    benchmarks: tuple[BenchmarkTest, ...] = ()
    examples: tuple[ExampleTest, ...] = ()
    coverage: CoverageAnalysis = field(
        default_factory=lambda: CoverageAnalysis(target_coverage=0.0, estimated_coverage=0.0)
    )
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class GenerationStatistics(Serializable):
    files_analyzed: int = 0
    functions_analyzed: int = 0
    tests_generated: int = 0
    table_driven_tests: int = 0
    mocks_generated: int = 0
    helpers_generated: int = 0
    benchmarks_generated: int = 0
    examples_generated: int = 0
    average_complexity: float = 0.0
    generation_time: timedelta = timedelta(0)


@dataclass(frozen=True)
class TestGenerationResult(Serializable):
    """Outcome of a generation run.

    Attributes:
        generated_files: Test file path -> Go source
        warnings: Skipped functions and unsupported options
        errors: Files or functions that failed, with the reason
    """

    __test__ = False

    suites: tuple[TestSuite, ...] = ()
    generated_files: dict[str, str] = field(default_factory=dict)
    coverage: CoverageAnalysis = field(
        default_factory=lambda: CoverageAnalysis(target_coverage=0.0, estimated_coverage=0.0)
    )
    statistics: GenerationStatistics = field(default_factory=GenerationStatistics)
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
