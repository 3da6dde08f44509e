"""TestSynthesizer: turns function analyses into Go test suites.

Per function:
    - one case per happy path   (Test<Fn>_HappyPath_<n>)
    - one case per error path   (Test<Fn>_Error_<n>)
    - one case per edge case    (Test<Fn>_EdgeCase_<n>)
    - with table-driven output and more than one case, all of them folded
      into a single Test<Fn> whose rows are the cases
    - optionally an integration case, a benchmark and an example

Mocks (testify) are generated for mockable interface parameters and
constructor helpers for method receivers; both are shared across the
functions of a file.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Optional

from ..analysis.go_model import default_import_alias
from ..analysis.models import (
    DependencyInfo,
    ErrorKind,
    FileAnalysis,
    FunctionAnalysis,
    TestInput,
)
from ..analysis.source_model import MethodSpec
from ..analysis.types import base_type_name, default_value, normalize_type, qualify_type
from ..config import GenerationOptions
from ..logging_config import get_logger
from .coverage import CoverageEstimator
from .emitter import test_file_path, test_package_name
from .models import (
    BenchmarkTest,
    ErrorExpectation,
    ExampleTest,
    MockDefinition,
    MockMethod,
    TestCase,
    TestHelper,
    TestKind,
    TestSuite,
)
from .render import (
    RESERVED_NAMES,
    CallPlan,
    Param,
    call_and_assert,
    input_declarations,
    referenced_packages,
    render_benchmark,
    render_example,
    render_helper,
    render_integration,
    render_mock,
    render_table,
    render_unit,
)

logger = get_logger(__name__)

# Packages generated code may reference without the source importing them
KNOWN_PACKAGES = {
    "testing": "testing",
    "fmt": "fmt",
    "strings": "strings",
    "errors": "errors",
    "context": "context",
    "time": "time",
    "assert": "github.com/stretchr/testify/assert",
    "require": "github.com/stretchr/testify/require",
    "mock": "github.com/stretchr/testify/mock",
}

_PLACEHOLDER_TODO = "TODO: replace placeholder assertions with expected values"


def should_generate_benchmark(fn: FunctionAnalysis) -> bool:
    """Complex functions and anything that "process"es."""
    return fn.complexity > 3 or "process" in fn.name.lower()


@dataclass
class _FunctionOutput:
    cases: list[TestCase] = field(default_factory=list)
    benchmark: Optional[BenchmarkTest] = None
    example: Optional[ExampleTest] = None
    warnings: list[str] = field(default_factory=list)


class _SuiteContext:
    """Per-file state shared by the functions of one suite."""

    def __init__(self, analysis: FileAnalysis, options: GenerationOptions, import_path: str) -> None:
        self.analysis = analysis
        self.options = options
        self.external = options.test_file_naming == "parallel"
        self.package = analysis.package_name
        self.import_path = import_path
        self.local_names = set(analysis.local_types)
        self.mocks: dict[str, MockDefinition] = {}
        self.helpers: dict[str, TestHelper] = {}
        self.taken_names = set(RESERVED_NAMES) | set(KNOWN_PACKAGES) | set(analysis.imports)
        if self.external:
            self.taken_names.add(self.package)

    def qualify(self, text: str) -> str:
        if not self.external:
            return text
        return qualify_type(text, self.local_names, self.package)

    def qualify_value(self, name: str) -> str:
        """Qualify a package-level identifier (sentinel errors)."""
        if self.external and "." not in name:
            return f"{self.package}.{name}"
        return name

    @property
    def mocks_enabled(self) -> bool:
        return self.options.generate_mock_dependencies and self.options.mocking_framework == "testify"

    def mock_constructor(self, dep: DependencyInfo) -> Optional[str]:
        """Constructor expression for a mock of ``dep``, creating the mock once."""
        if not self.mocks_enabled or not dep.can_be_mocked or dep.interface is None:
            return None
        decl = dep.interface
        mock_name = f"Mock{decl.name}"
        if dep.name not in self.mocks:
            constructor = f"newMock{decl.name}"
            code = render_mock(decl, mock_name, constructor, self.qualify, self.analysis.local_types)
            self.mocks[dep.name] = MockDefinition(
                interface_name=dep.name,
                mock_name=mock_name,
                methods=tuple(_mock_method(m, self.qualify) for m in decl.methods),
                constructor=constructor,
                code=code,
            )
        return f"{self.mocks[dep.name].constructor}()"

    def receiver_helper(self, fn: FunctionAnalysis) -> str:
        """Name of the constructor helper for ``fn``'s receiver, creating it once."""
        type_name = base_type_name(fn.receiver_type)
        name = f"newTest{type_name[:1].upper()}{type_name[1:]}"
        if name not in self.helpers:
            self.helpers[name] = TestHelper(
                name=name,
                description=f"constructs a {type_name} for tests",
                code=render_helper(
                    name,
                    self.qualify(normalize_type(fn.receiver_type)),
                    self.qualify(fn.receiver_value),
                    type_name,
                ),
            )
        return name

    def imports_for(self, codes: list[str]) -> tuple[tuple[str, str], ...]:
        used: set[str] = set()
        for code in codes:
            used |= referenced_packages(code)
        imports = []
        for alias in sorted(used):
            if self.external and alias == self.package:
                path = self.import_path
            elif alias in self.analysis.imports:
                path = self.analysis.imports[alias]
            elif alias in KNOWN_PACKAGES:
                path = KNOWN_PACKAGES[alias]
            else:
                continue
            imports.append(("" if default_import_alias(path) == alias else alias, path))
        return tuple(imports)


def _mock_method(method: MethodSpec, qualify) -> MockMethod:
    return MockMethod(
        name=method.name,
        parameters=tuple((p.name, qualify(p.type)) for p in method.parameters),
        results=tuple(qualify(r.type) for r in method.results),
    )


class TestSynthesizer:
    """Synthesizes test suites from analyses.

    Example:
        >>> synthesizer = TestSynthesizer(GenerationOptions(generate_table_driven_tests=False))
        >>> suite = synthesizer.synthesize(analyzer.analyze_source(source, "calc.go"))
        >>> [c.name for c in suite.test_cases]
        ['TestDivide_HappyPath_1', 'TestDivide_Error_1', ...]
    """

    __test__ = False

    def __init__(self, options: Optional[GenerationOptions] = None) -> None:
        self.options = options or GenerationOptions()
        self.coverage = CoverageEstimator(self.options.target_coverage)

    def synthesize(self, analysis: FileAnalysis, import_path: str = "") -> TestSuite:
        """Build the test suite for one analyzed file.

        Args:
            analysis: Analyzed source file
            import_path: Import path of the source package; required for the
                "parallel" layout, where tests live in another package

        Failures in one function are recorded in ``errors`` and do not stop
        the others.
        """
        ctx = _SuiteContext(analysis, self.options, import_path)
        cases: list[TestCase] = []
        benchmarks: list[BenchmarkTest] = []
        examples: list[ExampleTest] = []
        warnings: list[str] = []
        errors: list[str] = []

        if self.options.generate_mock_dependencies and self.options.mocking_framework == "gomock":
            warnings.append("gomock mocks are not generated; run mockgen for interface dependencies")

        for fn in analysis.functions:
            try:
                output = self.synthesize_function(fn, ctx)
            except Exception as e:
                logger.warning(f"Test synthesis failed for {fn.name}: {e}")
                errors.append(f"{analysis.path}: {fn.name}: {e}")
                continue
            cases.extend(output.cases)
            warnings.extend(output.warnings)
            if output.benchmark is not None:
                benchmarks.append(output.benchmark)
            if output.example is not None:
                examples.append(output.example)

        mocks = tuple(ctx.mocks.values())
        helpers = tuple(ctx.helpers.values())
        codes = [c.code for c in cases] + [m.code for m in mocks] + [h.code for h in helpers]
        codes += [b.code for b in benchmarks] + [e.code for e in examples]

        return TestSuite(
            package_name=test_package_name(analysis.package_name, self.options.test_file_naming),
            file_name=test_file_path(analysis.path, self.options.test_file_naming),
            source_path=analysis.path,
            test_cases=tuple(cases),
            imports=ctx.imports_for(codes),
            helpers=helpers,
            mocks=mocks,
            benchmarks=tuple(benchmarks),
            examples=tuple(examples),
            coverage=self.coverage.estimate(analysis.functions, cases),
            warnings=tuple(warnings),
            errors=tuple(errors),
        )

    def synthesize_function(self, fn: FunctionAnalysis, ctx: _SuiteContext) -> _FunctionOutput:
        output = _FunctionOutput()
        if fn.has_type_parameters:
            output.warnings.append(f"{fn.name}: generic functions need explicit instantiation; skipped")
            return output

        plan = self._plan(fn, ctx)
        mock_values = {}
        for dep in fn.dependencies:
            if dep.type == "interface":
                constructor = ctx.mock_constructor(dep)
                if constructor is not None:
                    mock_values[dep.name] = constructor

        framework = self.options.testing_framework
        qn = fn.qualified_name
        units: list[TestCase] = []
        if self.options.generate_unit_tests:
            units = self._unit_cases(fn, ctx, plan, mock_values)

        if self.options.generate_table_driven_tests and len(units) > 1:
            rows = tuple(dataclasses.replace(u, name=u.description, code="", setup=(), assertions=()) for u in units)
            comments = [f"{fn.name}: {len(rows)} paths"] if self.options.include_comments else []
            table = TestCase(
                name=f"Test{qn}",
                function_name=qn,
                kind=TestKind.TABLE_DRIVEN,
                description=f"table of {len(rows)} cases for {fn.name}",
                complexity=len(rows),
                rows=rows,
                comments=tuple(comments),
            )
            output.cases.append(dataclasses.replace(table, code=render_table(plan, table, framework)))
        else:
            for unit in units:
                output.cases.append(dataclasses.replace(unit, code=render_unit(plan, unit, framework)))

        if self.options.generate_integration_tests and any(d.is_external for d in fn.dependencies):
            output.cases.append(self._integration_case(fn, ctx, plan, mock_values))

        sample_inputs = self._sample_inputs(fn, ctx, mock_values)
        if self.options.generate_benchmark_tests and should_generate_benchmark(fn):
            name = f"Benchmark{qn}"
            output.benchmark = BenchmarkTest(
                name=name, function_name=qn, code=render_benchmark(plan, name, sample_inputs)
            )
        if self.options.generate_example_tests and fn.exported:
            name = f"Example{qn}"
            output.example = ExampleTest(
                name=name, function_name=qn, code=render_example(plan, name, sample_inputs)
            )
        return output

    # ── planning ───────────────────────────────────────────────────

    def _plan(self, fn: FunctionAnalysis, ctx: _SuiteContext) -> CallPlan:
        param_names = {p.name for p in fn.parameters}
        receiver_var = ""
        receiver_setup: tuple[str, ...] = ()
        if fn.is_method:
            receiver_var = fn.receiver_name
            if not receiver_var or receiver_var == "_" or receiver_var in ctx.taken_names or receiver_var in param_names:
                receiver_var = "sut"
            if self.options.generate_test_helpers:
                value = f"{ctx.receiver_helper(fn)}()"
            else:
                value = ctx.qualify(fn.receiver_value)
            receiver_setup = (f"{receiver_var} := {value}",)

        params = []
        for p in fn.parameters:
            var = p.name
            if var in ctx.taken_names or var == receiver_var:
                var = f"{var}Arg"
            params.append(Param(p.name, var, ctx.qualify(normalize_type(p.type)), p.is_variadic))

        if fn.is_method:
            callee = f"{receiver_var}.{fn.name}"
        elif ctx.external:
            callee = f"{ctx.package}.{fn.name}"
        else:
            callee = fn.name

        return CallPlan(
            function_name=fn.qualified_name,
            display_name=fn.name,
            callee=callee,
            receiver_setup=receiver_setup,
            params=tuple(params),
            results=tuple(ctx.qualify(normalize_type(r.type)) for r in fn.returns),
        )

    def _inputs(
        self, inputs: tuple[TestInput, ...], ctx: _SuiteContext, mock_values: dict[str, str]
    ) -> tuple[TestInput, ...]:
        result = []
        for i in inputs:
            value = ctx.qualify(i.value)
            mock = mock_values.get(base_type_name(i.type))
            if mock is not None and value == "nil" and not i.constrained:
                value = mock
            result.append(dataclasses.replace(i, value=value))
        return tuple(result)

    def _sample_inputs(
        self, fn: FunctionAnalysis, ctx: _SuiteContext, mock_values: dict[str, str]
    ) -> tuple[TestInput, ...]:
        if fn.happy_paths:
            return self._inputs(fn.happy_paths[0].inputs, ctx, mock_values)
        defaults = tuple(
            TestInput(p.name, p.type, default_value(p.type, ctx.analysis.local_types)) for p in fn.parameters
        )
        return self._inputs(defaults, ctx, mock_values)

    # ── cases ──────────────────────────────────────────────────────

    def _unit_cases(
        self, fn: FunctionAnalysis, ctx: _SuiteContext, plan: CallPlan, mock_values: dict[str, str]
    ) -> list[TestCase]:
        qn = fn.qualified_name
        units: list[TestCase] = []

        for n, path in enumerate(fn.happy_paths, 1):
            expectation = ErrorExpectation.UNKNOWN if path.may_error else ErrorExpectation.NONE
            units.append(
                self._case(
                    plan,
                    name=f"Test{qn}_HappyPath_{n}",
                    function_name=qn,
                    description=f"happy path {n}",
                    comment=path.description,
                    inputs=self._inputs(path.inputs, ctx, mock_values),
                    outputs=path.expected_outputs,
                    expectation=expectation,
                )
            )

        for n, path in enumerate(fn.error_paths, 1):
            if path.error_kind == ErrorKind.MESSAGE:
                expectation, value = ErrorExpectation.CONTAINS, path.error_value
            elif path.error_kind == ErrorKind.SENTINEL:
                expectation, value = ErrorExpectation.IS, ctx.qualify_value(path.error_value)
            else:
                expectation, value = ErrorExpectation.ANY, ""
            comment = f"error when {path.condition}"
            if not path.solved:
                comment += " (inputs could not be derived for every condition)"
            units.append(
                self._case(
                    plan,
                    name=f"Test{qn}_Error_{n}",
                    function_name=qn,
                    description=f"error: {path.condition}",
                    comment=comment,
                    inputs=self._inputs(path.inputs, ctx, mock_values),
                    expectation=expectation,
                    error_value=value,
                )
            )

        for n, edge in enumerate(fn.edge_cases, 1):
            units.append(
                self._case(
                    plan,
                    name=f"Test{qn}_EdgeCase_{n}",
                    function_name=qn,
                    description=f"edge case: {edge.description}",
                    comment=f"edge case: {edge.description}",
                    inputs=self._inputs(edge.inputs, ctx, mock_values),
                    expectation=ErrorExpectation.UNKNOWN,
                )
            )
        return units

    def _case(
        self,
        plan: CallPlan,
        *,
        name: str,
        function_name: str,
        description: str,
        comment: str,
        inputs: tuple[TestInput, ...],
        expectation: ErrorExpectation,
        outputs=(),
        error_value: str = "",
    ) -> TestCase:
        comments = [comment] if self.options.include_comments and comment else []
        placeholder = expectation == ErrorExpectation.NONE and any(n != "err" for n in plan.result_names())
        if self.options.include_todos and placeholder:
            comments.append(_PLACEHOLDER_TODO)

        case = TestCase(
            name=name,
            function_name=function_name,
            kind=TestKind.UNIT,
            description=description,
            inputs=inputs,
            expected_outputs=tuple(outputs),
            setup=tuple(plan.receiver_setup) + tuple(input_declarations(plan, inputs)),
            comments=tuple(comments),
            error_expectation=expectation,
            error_value=error_value,
        )
        _, assertions = call_and_assert(plan, case, [p.var for p in plan.params], self.options.testing_framework)
        return dataclasses.replace(case, assertions=tuple(assertions))

    def _integration_case(
        self, fn: FunctionAnalysis, ctx: _SuiteContext, plan: CallPlan, mock_values: dict[str, str]
    ) -> TestCase:
        inputs = self._sample_inputs(fn, ctx, mock_values)
        packages = ", ".join(d.package for d in fn.dependencies if d.is_external)
        comments = (f"exercises {fn.name} against {packages}",) if self.options.include_comments else ()
        case = TestCase(
            name=f"Test{fn.qualified_name}_Integration",
            function_name=fn.qualified_name,
            kind=TestKind.INTEGRATION,
            description=f"integration: {fn.name}",
            inputs=inputs,
            setup=tuple(plan.receiver_setup) + tuple(input_declarations(plan, inputs)),
            comments=comments,
            error_expectation=ErrorExpectation.UNKNOWN,
        )
        return dataclasses.replace(case, code=render_integration(plan, case))
