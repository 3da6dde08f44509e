"""Go source rendering for synthesized tests.

Pure functions from a ``CallPlan`` (how to call the function under test) and
case data to Go source text. Nothing here decides *what* to test.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from ..analysis.models import TestInput
from ..analysis.source_model import InterfaceDecl
from ..analysis.types import can_be_nil, classify_type, is_error_type, normalize_type, slice_literal_type, zero_value
from .models import ErrorExpectation, TestCase

TAB = "\t"

# Identifiers generated code declares itself; parameters with these names are renamed
RESERVED_NAMES = frozenset(
    {
        "t", "b", "i", "m", "tt", "tests", "got", "err", "args",
        "name", "wantErr", "errContains", "errIs", "mayErr",
    }
)

_BASIC_VAR_TYPES = frozenset({"int", "string", "bool", "float64"})
_STRING_LITERAL = re.compile(r'"(?:\\.|[^"\\])*"|`[^`]*`')
_QUALIFIER = re.compile(r"(?<![\w.])([A-Za-z_]\w*)\.[A-Za-z_]")
_MOCK_GETTERS = {"error": "Error", "string": "String", "int": "Int", "bool": "Bool"}


@dataclass(frozen=True)
class Param:
    name: str
    var: str
    type: str
    variadic: bool = False

    @property
    def declared_type(self) -> str:
        return slice_literal_type(self.type) if self.variadic else self.type


@dataclass(frozen=True)
class CallPlan:
    """How generated code calls one function.

    Attributes:
        function_name: Qualified name used in test identifiers
        display_name: Name used in messages
        callee: Expression called (``Divide``, ``calc.Divide``, ``s.Process``)
        receiver_setup: Lines constructing the receiver
        params: Parameters with their local variable names
        results: Result types in order
    """

    function_name: str
    display_name: str
    callee: str
    receiver_setup: tuple[str, ...] = ()
    params: tuple[Param, ...] = ()
    results: tuple[str, ...] = ()

    @property
    def returns_error(self) -> bool:
        return bool(self.results) and is_error_type(self.results[-1])

    def result_names(self) -> list[str]:
        names = []
        for i, result in enumerate(self.results):
            if i == len(self.results) - 1 and is_error_type(result):
                names.append("err")
            else:
                names.append("got" if i == 0 else f"got{i}")
        return names

    def call(self, args: Sequence[str]) -> str:
        rendered = list(args)
        if rendered and self.params and self.params[-1].variadic:
            rendered[-1] = rendered[-1] + "..."
        return f"{self.callee}({', '.join(rendered)})"

    def discard(self, call: str) -> str:
        """Call statement ignoring every result."""
        if not self.results:
            return call
        return f"{', '.join('_' for _ in self.results)} = {call}"


def go_string(text: str) -> str:
    """Quote arbitrary text as a Go interpreted string literal."""
    return json.dumps(text, ensure_ascii=False)


def indent(lines: Iterable[str], depth: int = 1) -> list[str]:
    prefix = TAB * depth
    return [prefix + line if line else line for line in lines]


def declare(var: str, type_str: str, value: str) -> str:
    """Local variable declaration keeping the parameter's exact type."""
    if value == "nil":
        return f"var {var} {type_str}"
    if type_str in _BASIC_VAR_TYPES:
        return f"{var} := {value}"
    return f"var {var} {type_str} = {value}"


def input_declarations(plan: CallPlan, inputs: Sequence[TestInput]) -> list[str]:
    values = {i.name: i.value for i in inputs}
    return [declare(p.var, p.declared_type, values.get(p.name, "nil")) for p in plan.params]


def _assign(names: Sequence[str], call: str) -> str:
    if not names:
        return call
    operator = "=" if all(n == "_" for n in names) else ":="
    return f"{', '.join(names)} {operator} {call}"


def panic_check(plan: CallPlan, call: str, framework: str) -> list[str]:
    """Lines asserting that a call does not panic."""
    if framework == "testify":
        return ["assert.NotPanics(t, func() {", TAB + plan.discard(call), "})"]
    return [
        "defer func() {",
        TAB + "if r := recover(); r != nil {",
        TAB * 2 + f't.Errorf("{plan.display_name} panicked: %v", r)',
        TAB + "}",
        "}()",
        plan.discard(call),
    ]


def error_assertions(expectation: ErrorExpectation, value: str, framework: str) -> list[str]:
    """Lines checking ``err`` against an error expectation."""
    if framework == "testify":
        lines = ["require.Error(t, err)"]
        if expectation == ErrorExpectation.CONTAINS:
            lines.append(f'assert.Contains(t, err.Error(), "{value}")')
        elif expectation == ErrorExpectation.IS:
            lines.append(f"assert.ErrorIs(t, err, {value})")
        return lines

    lines = ["if err == nil {", TAB + 't.Fatal("expected an error, got nil")', "}"]
    if expectation == ErrorExpectation.CONTAINS:
        lines += [
            f'if !strings.Contains(err.Error(), "{value}") {{',
            TAB + f't.Errorf("error %q does not contain %q", err.Error(), "{value}")',
            "}",
        ]
    elif expectation == ErrorExpectation.IS:
        lines += [
            f"if !errors.Is(err, {value}) {{",
            TAB + f't.Errorf("expected error %v, got %v", {value}, err)',
            "}",
        ]
    return lines


def success_assertions(plan: CallPlan, framework: str) -> list[str]:
    """Lines checking a successful call's results."""
    lines: list[str] = []
    for name, result in zip(plan.result_names(), plan.results):
        if name == "err":
            if framework == "testify":
                lines.append("require.NoError(t, err)")
            else:
                lines += ["if err != nil {", TAB + 't.Fatalf("unexpected error: %v", err)', "}"]
        elif framework == "testify":
            lines.append(f"assert.NotNil(t, {name})")
        elif can_be_nil(result):
            lines += [f"if {name} == nil {{", TAB + 't.Error("expected a non-nil result")', "}"]
        else:
            lines.append(f"_ = {name}")
    return lines


def call_and_assert(plan: CallPlan, case: TestCase, args: Sequence[str], framework: str) -> tuple[list[str], list[str]]:
    """(call lines, assertion lines) for one unit case."""
    call = plan.call(args)
    if case.error_expectation == ErrorExpectation.UNKNOWN:
        return panic_check(plan, call, framework), []
    if case.expects_error:
        names = ["err" if n == "err" else "_" for n in plan.result_names()]
        return [_assign(names, call)], error_assertions(case.error_expectation, case.error_value, framework)
    return [_assign(plan.result_names(), call)], success_assertions(plan, framework)


# ── test functions ─────────────────────────────────────────────────


def render_unit(plan: CallPlan, case: TestCase, framework: str) -> str:
    lines = [f"func {case.name}(t *testing.T) {{"]
    lines += indent(f"// {c}" for c in case.comments)
    lines += indent(case.setup)
    call_lines, _ = call_and_assert(plan, case, [p.var for p in plan.params], framework)
    lines += indent(call_lines)
    lines += indent(case.assertions)
    lines += indent(case.teardown)
    lines.append("}")
    return "\n".join(lines)


def render_integration(plan: CallPlan, case: TestCase) -> str:
    names = plan.result_names()
    lines = [
        f"func {case.name}(t *testing.T) {{",
        TAB + "if testing.Short() {",
        TAB * 2 + 't.Skip("skipping integration test in short mode")',
        TAB + "}",
    ]
    lines += indent(f"// {c}" for c in case.comments)
    lines += indent(case.setup)
    lines.append(TAB + _assign(names, plan.call([p.var for p in plan.params])))
    for name in names:
        if name == "err":
            lines += indent(
                ["if err != nil {", TAB + f't.Logf("{plan.display_name} returned an error: %v", err)', "}"]
            )
        else:
            lines.append(TAB + f"_ = {name}")
    lines.append("}")
    return "\n".join(lines)


def table_fields(plan: CallPlan, rows: Sequence[TestCase]) -> list[tuple[str, str]]:
    """Struct fields of a table-driven test, in declaration order."""
    fields = [("name", "string")]
    fields += [(p.var, p.declared_type) for p in plan.params]
    if plan.returns_error:
        fields.append(("wantErr", "bool"))
        if any(r.error_expectation == ErrorExpectation.CONTAINS for r in rows):
            fields.append(("errContains", "string"))
        if any(r.error_expectation == ErrorExpectation.IS for r in rows):
            fields.append(("errIs", "error"))
    if any(r.error_expectation == ErrorExpectation.UNKNOWN for r in rows):
        fields.append(("mayErr", "bool"))
    return fields


def _row(plan: CallPlan, row: TestCase, field_names: set[str]) -> list[str]:
    values = {i.name: i.value for i in row.inputs}
    lines = ["{", TAB + f"name: {go_string(row.name)},"]
    for p in plan.params:
        value = values.get(p.name, "nil")
        if value != "nil":
            lines.append(TAB + f"{p.var}: {value},")
    if row.expects_error:
        lines.append(TAB + "wantErr: true,")
        if row.error_expectation == ErrorExpectation.CONTAINS and "errContains" in field_names:
            lines.append(TAB + f'errContains: "{row.error_value}",')
        if row.error_expectation == ErrorExpectation.IS and "errIs" in field_names:
            lines.append(TAB + f"errIs: {row.error_value},")
    if row.error_expectation == ErrorExpectation.UNKNOWN:
        lines.append(TAB + "mayErr: true,")
    lines.append("},")
    return lines


def render_table(plan: CallPlan, case: TestCase, framework: str) -> str:
    fields = table_fields(plan, case.rows)
    field_names = {name for name, _ in fields}
    args = [f"tt.{p.var}" for p in plan.params]
    call = plan.call(args)
    names = plan.result_names()

    lines = [f"func {case.name}(t *testing.T) {{"]
    lines += indent(f"// {c}" for c in case.comments)
    lines.append(TAB + "tests := []struct {")
    lines += indent((f"{name} {type_str}" for name, type_str in fields), 2)
    lines.append(TAB + "}{")
    for row in case.rows:
        lines += indent(_row(plan, row, field_names), 2)
    lines.append(TAB + "}")
    lines.append("")

    body: list[str] = list(plan.receiver_setup)
    if "mayErr" in field_names:
        body += ["if tt.mayErr {"] + indent(panic_check(plan, call, framework)) + [TAB + "return", "}"]
    body.append(_assign(names, call))
    if plan.returns_error:
        body.append("if tt.wantErr {")
        if framework == "testify":
            body.append(TAB + "require.Error(t, err)")
            if "errContains" in field_names:
                body += [
                    TAB + 'if tt.errContains != "" {',
                    TAB * 2 + "assert.Contains(t, err.Error(), tt.errContains)",
                    TAB + "}",
                ]
            if "errIs" in field_names:
                body += [TAB + "if tt.errIs != nil {", TAB * 2 + "assert.ErrorIs(t, err, tt.errIs)", TAB + "}"]
        else:
            body += [TAB + "if err == nil {", TAB * 2 + 't.Fatal("expected an error, got nil")', TAB + "}"]
            if "errContains" in field_names:
                body += [
                    TAB + 'if tt.errContains != "" && !strings.Contains(err.Error(), tt.errContains) {',
                    TAB * 2 + 't.Errorf("error %q does not contain %q", err.Error(), tt.errContains)',
                    TAB + "}",
                ]
            if "errIs" in field_names:
                body += [
                    TAB + "if tt.errIs != nil && !errors.Is(err, tt.errIs) {",
                    TAB * 2 + 't.Errorf("expected error %v, got %v", tt.errIs, err)',
                    TAB + "}",
                ]
        body.append(TAB + "return")
        body.append("}")
    body += success_assertions(plan, framework)

    lines.append(TAB + "for _, tt := range tests {")
    lines.append(TAB * 2 + "t.Run(tt.name, func(t *testing.T) {")
    lines += indent(body, 3)
    lines.append(TAB * 2 + "})")
    lines.append(TAB + "}")
    lines.append("}")
    return "\n".join(lines)


def render_benchmark(plan: CallPlan, name: str, inputs: Sequence[TestInput]) -> str:
    lines = [f"func {name}(b *testing.B) {{"]
    lines += indent(plan.receiver_setup)
    lines += indent(input_declarations(plan, inputs))
    lines += [
        TAB + "b.ResetTimer()",
        TAB + "for i := 0; i < b.N; i++ {",
        TAB * 2 + plan.discard(plan.call([p.var for p in plan.params])),
        TAB + "}",
        "}",
    ]
    return "\n".join(lines)


def render_example(plan: CallPlan, name: str, inputs: Sequence[TestInput]) -> str:
    lines = [f"func {name}() {{"]
    lines += indent(plan.receiver_setup)
    lines += indent(input_declarations(plan, inputs))
    call = plan.call([p.var for p in plan.params])
    names = plan.result_names()
    if names:
        lines.append(TAB + _assign(names, call))
        lines.append(TAB + f"fmt.Println({', '.join(names)})")
    else:
        lines.append(TAB + call)
    lines.append("}")
    return "\n".join(lines)


# ── scaffolding ────────────────────────────────────────────────────


def render_helper(name: str, return_type: str, value: str, type_label: str) -> str:
    return "\n".join(
        [
            f"// {name} returns a {type_label} ready for use in tests.",
            f"func {name}() {return_type} {{",
            TAB + f"return {value}",
            "}",
        ]
    )


def _mock_param_name(name: str, index: int) -> str:
    if not name or name == "_" or name in ("m", "args"):
        return f"arg{index}"
    return name


def _mock_return(index: int, type_str: str) -> tuple[list[str], str]:
    """(setup lines, expression) extracting result ``index`` from testify args."""
    getter = _MOCK_GETTERS.get(normalize_type(type_str))
    if getter is not None:
        return [], f"args.{getter}({index})"
    if can_be_nil(type_str) or classify_type(type_str).value in ("channel", "function"):
        var = f"r{index}"
        return [
            f"var {var} {type_str}",
            f"if v := args.Get({index}); v != nil {{",
            TAB + f"{var} = v.({type_str})",
            "}",
        ], var
    return [], f"args.Get({index}).({type_str})"


def _stub_value(type_str: str, local_types) -> str:
    """Typed zero value stored in a mock's default Return()."""
    t = normalize_type(type_str)
    value = zero_value(t, local_types)
    if value == "0" and t not in ("int",):
        return f"{t}(0)"
    return value


def render_mock(
    decl: InterfaceDecl,
    mock_name: str,
    constructor: str,
    qualify: Callable[[str], str],
    local_types,
) -> str:
    """testify mock struct, its methods and a constructor with permissive stubs."""
    lines = [
        f"// {mock_name} is a testify mock of {decl.name}.",
        f"type {mock_name} struct {{",
        TAB + "mock.Mock",
        "}",
    ]
    stubs = []
    for method in decl.methods:
        params = [
            (_mock_param_name(p.name, i), qualify(p.type)) for i, p in enumerate(method.parameters)
        ]
        results = [qualify(r.type) for r in method.results]
        signature = ", ".join(f"{n} {t}" for n, t in params)
        if len(results) == 0:
            result_sig = ""
        elif len(results) == 1:
            result_sig = " " + results[0]
        else:
            result_sig = " (" + ", ".join(results) + ")"

        call_args = ", ".join(n for n, _ in params)
        lines.append("")
        lines.append(f"func (m *{mock_name}) {method.name}({signature}){result_sig} {{")
        if results:
            lines.append(TAB + f"args := m.Called({call_args})")
            expressions = []
            for i, result in enumerate(results):
                setup, expr = _mock_return(i, result)
                lines += indent(setup)
                expressions.append(expr)
            lines.append(TAB + f"return {', '.join(expressions)}")
        else:
            lines.append(TAB + f"m.Called({call_args})")
        lines.append("}")

        on_args = ", ".join([f'"{method.name}"'] + ["mock.Anything"] * len(params))
        stub_values = ", ".join(qualify(_stub_value(r.type, local_types)) for r in method.results)
        stubs.append(f"m.On({on_args}).Return({stub_values}).Maybe()")

    lines += [
        "",
        f"// {constructor} returns a {mock_name} whose methods return zero values.",
        f"func {constructor}() *{mock_name} {{",
        TAB + f"m := new({mock_name})",
    ]
    lines += indent(stubs)
    lines += [TAB + "return m", "}"]
    return "\n".join(lines)


def referenced_packages(code: str) -> set[str]:
    """Identifiers used as package qualifiers in Go code, ignoring string contents."""
    stripped = _STRING_LITERAL.sub('""', code)
    stripped = "\n".join(line.split("//", 1)[0] for line in stripped.splitlines())
    return set(_QUALIFIER.findall(stripped))
