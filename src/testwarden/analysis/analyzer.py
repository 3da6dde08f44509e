"""SourceAnalyzer: turns a source model into per-function analyses.

For each testable function the analyzer derives:
    - parameter/return shapes (from type strings)
    - cyclomatic-style complexity (1 + if/loop/switch/case)
    - error paths: returns of a non-nil error, with solved guard inputs
    - happy paths: other returns, with inputs that avoid solvable error guards
    - edge cases: boundary values per parameter kind and per guard constant
    - dependencies: package calls, interface parameters, receiver fields

Usage:
    analyzer = SourceAnalyzer()
    file_analysis = analyzer.analyze_file(Path("pkg/calc.go"))
    for fn in file_analysis.functions:
        print(fn.name, fn.complexity, len(fn.error_paths))
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from ..exceptions import FileAccessError, UnsupportedLanguageError
from ..logging_config import get_logger
from .go_model import GoSourceModel
from .guards import Bindings, Guard, Value, default_binding, evaluate, merge, solve
from .models import (
    DependencyInfo,
    EdgeCase,
    ErrorKind,
    ErrorPath,
    FileAnalysis,
    FunctionAnalysis,
    HappyPath,
    ParameterInfo,
    ReturnInfo,
    TestInput,
    TestOutput,
)
from .source_model import (
    BINARY,
    BLOCK,
    CALL,
    CASE,
    IDENTIFIER,
    IF,
    LITERAL,
    LOOP,
    NIL,
    RETURN,
    SELECTOR,
    SWITCH,
    ControlFlowNode,
    Expr,
    Field,
    FunctionSignature,
    InterfaceDecl,
    MethodSpec,
    SourceModel,
)
from .treesitter_parser import TreeSitterParser
from .types import (
    INTEGER_TYPES,
    UNSIGNED_TYPES,
    TypeKind,
    base_type_name,
    classify_type,
    default_value,
    is_integer,
    is_numeric,
    normalize_type,
    slice_literal_type,
)

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = [".go"]

_GENERATED_PREFIXES = ("Test", "Benchmark", "Example")
_ERROR_CONSTRUCTORS = ("errors.New", "fmt.Errorf")
_NO_EDGE_TYPES = frozenset({"context.Context", "error"})

# Standard-library interfaces with a known method set
WELL_KNOWN_INTERFACES: dict[str, InterfaceDecl] = {
    "io.Reader": InterfaceDecl(
        "Reader",
        (MethodSpec("Read", (Field("p", "[]byte"),), (Field("n", "int"), Field("err", "error"))),),
        package="io",
    ),
    "io.Writer": InterfaceDecl(
        "Writer",
        (MethodSpec("Write", (Field("p", "[]byte"),), (Field("n", "int"), Field("err", "error"))),),
        package="io",
    ),
    "io.Closer": InterfaceDecl("Closer", (MethodSpec("Close", (), (Field("", "error"),)),), package="io"),
    "io.ReadCloser": InterfaceDecl(
        "ReadCloser",
        (
            MethodSpec("Read", (Field("p", "[]byte"),), (Field("n", "int"), Field("err", "error"))),
            MethodSpec("Close", (), (Field("", "error"),)),
        ),
        package="io",
    ),
    "io.WriteCloser": InterfaceDecl(
        "WriteCloser",
        (
            MethodSpec("Write", (Field("p", "[]byte"),), (Field("n", "int"), Field("err", "error"))),
            MethodSpec("Close", (), (Field("", "error"),)),
        ),
        package="io",
    ),
    "io.ReadWriter": InterfaceDecl(
        "ReadWriter",
        (
            MethodSpec("Read", (Field("p", "[]byte"),), (Field("n", "int"), Field("err", "error"))),
            MethodSpec("Write", (Field("p", "[]byte"),), (Field("n", "int"), Field("err", "error"))),
        ),
        package="io",
    ),
    "fmt.Stringer": InterfaceDecl("Stringer", (MethodSpec("String", (), (Field("", "string"),)),), package="fmt"),
}


def should_generate_tests_for(name: str) -> bool:
    """Exported, not ``init``, and not itself a test, benchmark or example."""
    if not name or name == "init":
        return False
    if not name[0].isupper():
        return False
    return not name.startswith(_GENERATED_PREFIXES)


def count_complexity(body: Optional[ControlFlowNode]) -> int:
    """1 + number of if, loop, switch and case-clause nodes."""
    if body is None:
        return 1
    return 1 + sum(1 for node in body.walk() if node.kind in (IF, LOOP, SWITCH, CASE))


def error_message_prefix(format_string: str) -> str:
    """Literal text of an error message up to its first format verb.

    >>> error_message_prefix("invalid id %d: %w")
    'invalid id'
    """
    prefix = format_string.split("%", 1)[0]
    return prefix.rstrip().rstrip(":").rstrip()


def classify_error(expr: Expr) -> tuple[ErrorKind, str]:
    """How a returned error value is built, and its message or sentinel."""
    if expr.kind == CALL and expr.callee in _ERROR_CONSTRUCTORS and expr.operands:
        first = expr.operands[0]
        if first.kind == LITERAL and first.literal_type == "string":
            message = error_message_prefix(first.value or "")
            if message:
                return ErrorKind.MESSAGE, message
        return ErrorKind.PROPAGATED, ""
    if expr.kind in (IDENTIFIER, SELECTOR):
        name = expr.text.rsplit(".", 1)[-1]
        if name.startswith("Err") or name == "EOF":
            return ErrorKind.SENTINEL, expr.text
    return ErrorKind.PROPAGATED, ""


class SourceAnalyzer:
    """Analyzes source models into FunctionAnalysis records.

    A parser is created lazily and reused; use one analyzer per thread.
    """

    def __init__(self, analyze_dependencies: bool = True) -> None:
        self.analyze_dependencies = analyze_dependencies
        self._parser: Optional[TreeSitterParser] = None

    # ── entry points ───────────────────────────────────────────────

    def analyze_file(self, path: Union[str, Path]) -> FileAnalysis:
        """Read, parse and analyze one source file.

        Raises:
            UnsupportedLanguageError: Not a Go file
            FileAccessError: File cannot be read
            ParsingError: File contains syntax errors
        """
        path = Path(path)
        if path.suffix not in SUPPORTED_EXTENSIONS:
            raise UnsupportedLanguageError(path, SUPPORTED_EXTENSIONS)
        try:
            content = path.read_bytes()
        except OSError as e:
            raise FileAccessError(path, str(e))
        return self.analyze_source(content, str(path))

    def analyze_source(self, source: Union[str, bytes], path: str = "<memory>") -> FileAnalysis:
        """Parse and analyze Go source text.

        Raises:
            ParsingError: Source contains syntax errors
        """
        if self._parser is None:
            self._parser = TreeSitterParser()
        model = GoSourceModel.parse(source, path, parser=self._parser)
        return FileAnalysis(
            path=path,
            package_name=model.package_name,
            functions=tuple(self.analyze(model)),
            imports=dict(model.imports),
            local_types=model.type_kinds(),
            interfaces=model.interfaces(),
        )

    def analyze(self, model: SourceModel) -> list[FunctionAnalysis]:
        """Analyze every testable function in a source model."""
        local_types = model.type_kinds()
        interfaces = model.interfaces()
        results = []
        for fn in model.functions():
            if not should_generate_tests_for(fn.name):
                continue
            results.append(self._analyze_function(model, fn, local_types, interfaces))
        logger.debug(f"{model.path}: analyzed {len(results)} functions")
        return results

    # ── per function ───────────────────────────────────────────────

    def _analyze_function(
        self,
        model: SourceModel,
        fn: FunctionSignature,
        local_types: Mapping[str, str],
        interfaces: Mapping[str, InterfaceDecl],
    ) -> FunctionAnalysis:
        parameters = tuple(
            ParameterInfo(name=p.name if p.name and p.name != "_" else f"arg{i}", type=p.type)
            for i, p in enumerate(fn.parameters)
        )
        returns = tuple(ReturnInfo(type=r.type, name=r.name) for r in fn.results)
        body = model.body(fn)

        context = _PathContext(parameters, returns, local_types)
        returns_found: list[tuple[ControlFlowNode, tuple[Guard, ...]]] = []
        fall_through_guards: Optional[tuple[Guard, ...]] = None
        if body is not None:
            terminated, final_guards = _walk(body.body, (), returns_found)
            if not terminated:
                fall_through_guards = final_guards

        error_paths = context.error_paths(returns_found)
        happy_paths = context.happy_paths(returns_found, fall_through_guards)
        edge_cases = context.edge_cases(body, error_paths)

        receiver_type = fn.receiver.type if fn.receiver else ""
        dependencies: tuple[DependencyInfo, ...] = ()
        if self.analyze_dependencies:
            dependencies = tuple(_dependencies(model, fn, parameters, body, interfaces))

        return FunctionAnalysis(
            name=fn.name,
            package=model.package_name,
            exported=fn.name[:1].isupper(),
            is_method=fn.is_method,
            receiver_type=receiver_type,
            receiver_name=fn.receiver.name if fn.receiver else "",
            receiver_value=default_value(receiver_type, local_types) if receiver_type else "",
            parameters=parameters,
            returns=returns,
            dependencies=dependencies,
            complexity=count_complexity(body),
            documentation=fn.documentation,
            happy_paths=tuple(happy_paths),
            error_paths=tuple(error_paths),
            edge_cases=tuple(edge_cases),
            start_line=fn.start_line,
            end_line=fn.end_line,
            has_type_parameters=fn.has_type_parameters,
            source_path=model.path,
        )


def _walk(
    nodes: Iterable[ControlFlowNode],
    guards: tuple[Guard, ...],
    out: list[tuple[ControlFlowNode, tuple[Guard, ...]]],
) -> tuple[bool, tuple[Guard, ...]]:
    """Collect returns with their guard stacks.

    An ``if`` whose consequence always returns narrows the guards of the
    statements after it.

    Returns:
        (sequence always returns, guards in force at its end)
    """
    for node in nodes:
        if node.kind == RETURN:
            out.append((node, guards))
            return True, guards

        if node.kind == IF:
            condition = node.condition
            then_guards = guards + (Guard(condition, True),) if condition is not None else guards
            else_guards = guards + (Guard(condition, False),) if condition is not None else guards
            then_returns, _ = _walk(node.body, then_guards, out)
            else_returns = _walk(node.orelse, else_guards, out)[0] if node.orelse else False
            if then_returns and else_returns:
                return True, guards
            if then_returns:
                guards = else_guards
            elif else_returns:
                guards = then_guards

        elif node.kind == SWITCH:
            every_case_returns = True
            has_default = False
            for case in node.body:
                has_default = has_default or case.is_default
                case_guards = guards + (Guard(case.condition, True),) if case.condition is not None else guards
                if not _walk(case.body, case_guards, out)[0]:
                    every_case_returns = False
            if every_case_returns and has_default:
                return True, guards

        elif node.kind == LOOP:
            _walk(node.body, guards, out)

        elif node.kind == BLOCK:
            if node.text == "select":
                for arm in node.body:
                    _walk(arm.body, guards, out)
            elif _walk(node.body, guards, out)[0]:
                return True, guards

    return False, guards


class _PathContext:
    """Input synthesis for one function's paths."""

    def __init__(
        self,
        parameters: tuple[ParameterInfo, ...],
        returns: tuple[ReturnInfo, ...],
        local_types: Mapping[str, str],
    ) -> None:
        self.parameters = parameters
        self.returns = returns
        self.local_types = local_types
        self.param_types = {p.name: normalize_type(p.type) for p in parameters}
        self.defaults: Bindings = {p.name: default_binding(p.type, local_types) for p in parameters}
        self.returns_error = bool(returns) and returns[-1].is_error

    # ── inputs ─────────────────────────────────────────────────────

    def solve_guards(self, guards: Iterable[Guard]) -> tuple[Bindings, bool]:
        """Bindings satisfying as many guards as possible, and whether all were solved."""
        bindings: Bindings = {}
        solved = True
        for guard in guards:
            solution = solve(guard.condition, guard.expected, self.param_types, self.local_types)
            merged = merge(bindings, solution) if solution is not None else None
            if merged is None:
                solved = False
                continue
            bindings = merged
        return bindings, solved

    def inputs(self, bindings: Mapping[str, Value], descriptions: Optional[Mapping[str, str]] = None) -> tuple[TestInput, ...]:
        descriptions = descriptions or {}
        result = []
        for p in self.parameters:
            value = bindings.get(p.name, self.defaults[p.name])
            result.append(
                TestInput(
                    name=p.name,
                    type=p.type,
                    value=value.expr,
                    description=descriptions.get(p.name, ""),
                    constrained=p.name in bindings,
                )
            )
        return tuple(result)

    # ── paths ──────────────────────────────────────────────────────

    def _is_error_return(self, node: ControlFlowNode, guards: tuple[Guard, ...]) -> Optional[bool]:
        """True for error returns, False for success, None when undecidable.

        A plain variable such as ``err`` only counts as an error when an
        enclosing guard established that it is non-nil.
        """
        if not self.returns_error:
            return False
        if len(node.values) != len(self.returns):
            return None
        last = node.values[-1]
        if last.kind == NIL:
            return False
        if last.kind == IDENTIFIER and not last.text.startswith("Err"):
            return True if any(_proves_non_nil(g, last.text) for g in guards) else None
        return True

    def error_paths(self, returns_found) -> list[ErrorPath]:
        paths: list[ErrorPath] = []
        seen: set[tuple[str, str]] = set()
        for node, guards in returns_found:
            if self._is_error_return(node, guards) is not True:
                continue
            kind, value = classify_error(node.values[-1])
            condition = " && ".join(g.describe() for g in guards) or "always"
            if (condition, value) in seen:
                continue
            seen.add((condition, value))
            bindings, solved = self.solve_guards(guards)
            paths.append(
                ErrorPath(
                    condition=condition,
                    error_kind=kind,
                    error_value=value,
                    inputs=self.inputs(bindings),
                    line=node.line,
                    solved=solved,
                )
            )
        return paths

    def happy_paths(self, returns_found, fall_through_guards: Optional[tuple[Guard, ...]]) -> list[HappyPath]:
        candidates: list[tuple[tuple[Guard, ...], int, bool]] = []
        for node, guards in returns_found:
            verdict = self._is_error_return(node, guards)
            if verdict is True:
                continue
            candidates.append((guards, node.line, verdict is None))
        if fall_through_guards is not None and (not self.returns or not returns_found):
            candidates.append((fall_through_guards, 0, bool(self.returns)))

        paths: list[HappyPath] = []
        seen: set[tuple[str, ...]] = set()
        error_guards = [g for node, g in returns_found if self._is_error_return(node, g) is True]
        for guards, line, may_error in candidates:
            bindings, _ = self.solve_guards(guards)
            bindings = self._avoid_errors(bindings, error_guards)
            inputs = self.inputs(bindings)
            key = tuple(i.value for i in inputs)
            if key in seen:
                continue
            seen.add(key)
            where = f"return at line {line}" if line else "completes"
            condition = " && ".join(g.describe() for g in guards)
            description = f"{where} when {condition}" if condition else where
            paths.append(
                HappyPath(
                    description=description,
                    inputs=inputs,
                    expected_outputs=self._expected_outputs(),
                    line=line,
                    may_error=may_error,
                )
            )
        return paths

    def _avoid_errors(self, bindings: Bindings, error_guards: list[tuple[Guard, ...]]) -> Bindings:
        """Adjust free parameters so no solvable error path is taken."""
        locked = set(bindings)
        current = dict(self.defaults)
        current.update(bindings)
        for _ in range(3):
            changed = False
            for guards in error_guards:
                if not guards or not all(evaluate(g.condition, current) is g.expected for g in guards):
                    continue
                for guard in reversed(guards):
                    solution = solve(guard.condition, not guard.expected, self.param_types, self.local_types)
                    if solution and not (set(solution) & locked):
                        current.update(solution)
                        locked |= set(solution)
                        changed = True
                        break
            if not changed:
                break
        return {name: value for name, value in current.items() if name in locked}

    def _expected_outputs(self) -> tuple[TestOutput, ...]:
        outputs = []
        for i, r in enumerate(self.returns):
            if r.is_error and i == len(self.returns) - 1:
                outputs.append(TestOutput("err", r.type, "no-error"))
            else:
                name = "got" if i == 0 else f"got{i}"
                outputs.append(TestOutput(name, r.type, "non-nil"))
        return tuple(outputs)

    # ── edge cases ─────────────────────────────────────────────────

    def edge_cases(self, body: Optional[ControlFlowNode], error_paths: list[ErrorPath]) -> list[EdgeCase]:
        covered = {
            (i.name, i.value) for path in error_paths for i in path.inputs if i.constrained
        }
        candidates: list[tuple[str, str, str]] = []
        for p in self.parameters:
            candidates.extend((p.name, value, desc) for value, desc in self._kind_edges(p))
        candidates.extend(self._guard_edges(body))

        cases: list[EdgeCase] = []
        seen: set[tuple[str, str]] = set()
        for name, value, description in candidates:
            key = (name, value)
            if key in seen or key in covered or self.defaults[name].expr == value:
                continue
            seen.add(key)
            inputs = self.inputs({name: Value(value)}, {name: description})
            cases.append(EdgeCase(description=f"{name}: {description}", parameter=name, inputs=inputs))
        return cases

    def _kind_edges(self, p: ParameterInfo) -> list[tuple[str, str]]:
        t = normalize_type(p.type)
        if t in _NO_EDGE_TYPES:
            return []
        if t == "string":
            return [('""', "empty string")]
        if t in INTEGER_TYPES:
            edges = [("0", "zero value")]
            if t not in UNSIGNED_TYPES:
                edges.append(("-1", "negative value"))
            return edges
        if is_numeric(t):
            return [("0", "zero value")]
        kind = classify_type(t)
        if kind == TypeKind.SLICE:
            return [("nil", "nil slice"), (f"{slice_literal_type(t)}{{}}", "empty slice")]
        if kind == TypeKind.MAP:
            return [("nil", "nil map"), (f"{t}{{}}", "empty map")]
        if kind == TypeKind.POINTER:
            return [("nil", "nil pointer")]
        if kind == TypeKind.INTERFACE:
            return [("nil", "nil interface")]
        return []

    def _guard_edges(self, body: Optional[ControlFlowNode]) -> list[tuple[str, str, str]]:
        if body is None:
            return []
        edges: list[tuple[str, str, str]] = []
        for node in body.walk():
            if node.condition is None or node.kind not in (IF, CASE):
                continue
            for comparison in _comparisons(node.condition):
                left, right = comparison.operands
                for subject, literal in ((left, right), (right, left)):
                    if subject.kind != IDENTIFIER or literal.kind != LITERAL:
                        continue
                    t = self.param_types.get(subject.text)
                    if t is None or not is_integer(t) or literal.literal_type != "int":
                        continue
                    edges.append((subject.text, literal.value or literal.text, f"boundary value {literal.text}"))
        return edges


def _proves_non_nil(guard: Guard, name: str) -> bool:
    condition = guard.condition
    if condition.kind != BINARY or condition.operator not in ("==", "!="):
        return False
    left, right = condition.operands
    names = {left.text, right.text}
    if name not in names or not (left.kind == NIL or right.kind == NIL):
        return False
    return (condition.operator == "!=") == guard.expected


def _comparisons(condition: Expr) -> Iterable[Expr]:
    if condition.kind == BINARY and condition.operator in ("&&", "||"):
        for operand in condition.operands:
            yield from _comparisons(operand)
    elif condition.kind == BINARY and condition.operator in ("==", "!=", "<", "<=", ">", ">="):
        yield condition
    elif condition.operands and condition.operator == "!":
        yield from _comparisons(condition.operands[0])


def _dependencies(
    model: SourceModel,
    fn: FunctionSignature,
    parameters: tuple[ParameterInfo, ...],
    body: Optional[ControlFlowNode],
    interfaces: Mapping[str, InterfaceDecl],
) -> list[DependencyInfo]:
    found: dict[tuple[str, str], DependencyInfo] = {}
    param_names = {p.name for p in parameters}

    calls = [call for node in body.walk() for call in node.calls] if body is not None else []

    package_methods: dict[str, list[str]] = {}
    for call in calls:
        qualifier = call.qualifier
        if qualifier in model.imports and qualifier not in param_names:
            member = call.callee.split(".")[1].split("(", 1)[0]
            methods = package_methods.setdefault(qualifier, [])
            if member not in methods:
                methods.append(member)
    for alias, methods in package_methods.items():
        found[("package", alias)] = DependencyInfo(
            name=alias, type="package", package=model.imports[alias], methods=tuple(methods)
        )

    for p in parameters:
        type_name = base_type_name(p.type)
        decl = interfaces.get(type_name) or WELL_KNOWN_INTERFACES.get(type_name)
        if decl is None or ("interface", type_name) in found:
            continue
        found[("interface", type_name)] = DependencyInfo(
            name=type_name,
            type="interface",
            package=decl.package,
            is_interface=True,
            methods=tuple(m.name for m in decl.methods),
            can_be_mocked=bool(decl.methods),
            interface=decl,
        )

    receiver = fn.receiver.name if fn.receiver else ""
    if receiver:
        field_methods: dict[str, list[str]] = {}
        for call in calls:
            parts = call.callee.split(".")
            if len(parts) >= 3 and parts[0] == receiver:
                methods = field_methods.setdefault(parts[1], [])
                if parts[-1] not in methods:
                    methods.append(parts[-1])
        for field_name, methods in field_methods.items():
            found[("field", field_name)] = DependencyInfo(name=field_name, type="field", methods=tuple(methods))

    return list(found.values())
