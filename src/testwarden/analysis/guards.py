"""Guard solving: pick parameter values that steer a call down a given path.

A guard is a branch condition paired with the truth value a path requires.
The solver understands comparisons between a parameter (or ``len(param)``)
and a literal, combined with ``&&``, ``||`` and ``!``; anything else is
reported as unsolvable rather than guessed.

Example:
    >>> params = {"x": "int"}
    >>> cond = Expr("binary", "x < 0", operator="<",
    ...             operands=(Expr("identifier", "x"), Expr("literal", "0", value="0", literal_type="int")))
    >>> solve(cond, True, params)["x"].expr
    '-1'
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from .source_model import BINARY, CALL, IDENTIFIER, LITERAL, NIL, UNARY, Expr
from .types import (
    FLOAT_TYPES,
    UNSIGNED_TYPES,
    TypeKind,
    can_be_nil,
    classify_type,
    default_value,
    element_type,
    is_integer,
    is_numeric,
    map_types,
    normalize_type,
    slice_literal_type,
)

_COMPARISONS = {"==", "!=", "<", "<=", ">", ">="}
_FLIPPED = {"<": ">", "<=": ">=", ">": "<", ">=": "<=", "==": "==", "!=": "!="}
_NEGATED = {"<": ">=", "<=": ">", ">": "<=", ">=": "<", "==": "!=", "!=": "=="}

# Longest string or slice the solver writes out element by element
_MAX_INLINE_LENGTH = 16

Bindings = dict[str, "Value"]


@dataclass(frozen=True)
class Value:
    """A Go value expression plus what the solver knows about it.

    Attributes:
        expr: Go expression text
        is_nil: Value is nil
        number: Numeric value for numeric types
        text: Go-escaped contents for strings
        truth: Boolean value for bools
        length: len() of strings, slices and maps when known
    """

    expr: str
    is_nil: bool = False
    number: Optional[float] = None
    text: Optional[str] = None
    truth: Optional[bool] = None
    length: Optional[int] = None


@dataclass(frozen=True)
class Guard:
    """A branch condition and the truth value a path needs from it."""

    condition: Expr
    expected: bool

    def describe(self) -> str:
        return self.condition.text if self.expected else f"!({self.condition.text})"


def default_binding(type_str: str, local_types: Mapping[str, str]) -> Value:
    """The value a parameter gets when no guard constrains it."""
    t = normalize_type(type_str)
    expr = default_value(t, local_types)
    if expr == "nil":
        return Value(expr, is_nil=True)
    if t == "bool":
        return Value(expr, truth=True)
    if t == "string":
        return Value(expr, text="test", length=4)
    if is_numeric(t):
        return Value(expr, number=float(expr))
    kind = classify_type(t)
    if kind in (TypeKind.SLICE, TypeKind.MAP):
        return Value(expr, length=1)
    return Value(expr)


def solve(
    condition: Expr,
    expected: bool,
    params: Mapping[str, str],
    local_types: Optional[Mapping[str, str]] = None,
) -> Optional[Bindings]:
    """Find parameter values making ``condition`` evaluate to ``expected``.

    Args:
        condition: Branch condition
        expected: Required truth value
        params: Parameter name -> normalized type
        local_types: Declared type name -> underlying type, for default values

    Returns:
        Parameter bindings (possibly empty when the condition does not
        depend on parameters in a way the solver can see), or None if the
        condition cannot be solved
    """
    if condition.kind == UNARY and condition.operator == "!" and condition.operands:
        return solve(condition.operands[0], not expected, params, local_types)

    if condition.kind == BINARY and condition.operator in ("&&", "||"):
        left, right = condition.operands
        conjunctive = (condition.operator == "&&") == expected
        if conjunctive:
            left_solution = solve(left, expected, params, local_types)
            right_solution = solve(right, expected, params, local_types)
            if left_solution is None or right_solution is None:
                return None
            return merge(left_solution, right_solution)
        for side in (left, right):
            solution = solve(side, expected, params, local_types)
            if solution is not None:
                return solution
        return None

    if condition.kind == IDENTIFIER and params.get(condition.text) == "bool":
        return {condition.text: Value("true" if expected else "false", truth=expected)}

    if condition.kind == BINARY and condition.operator in _COMPARISONS:
        return _solve_comparison(condition, expected, params, local_types or {})

    return None


def merge(first: Bindings, second: Bindings) -> Optional[Bindings]:
    """Combine two binding sets; None if they assign a parameter differently."""
    merged = dict(first)
    for name, value in second.items():
        if name in merged and merged[name].expr != value.expr:
            return None
        merged[name] = value
    return merged


def _subject(expr: Expr, params: Mapping[str, str]) -> Optional[tuple[str, bool]]:
    """(parameter name, is_len) when ``expr`` is a parameter or len(parameter)."""
    if expr.kind == IDENTIFIER and expr.text in params:
        return expr.text, False
    if expr.kind == CALL and expr.callee == "len" and len(expr.operands) == 1:
        arg = expr.operands[0]
        if arg.kind == IDENTIFIER and arg.text in params:
            return arg.text, True
    return None


def _solve_comparison(
    condition: Expr, expected: bool, params: Mapping[str, str], local_types: Mapping[str, str]
) -> Optional[Bindings]:
    left, right = condition.operands
    operator = condition.operator
    subject = _subject(left, params)
    other = right
    if subject is None:
        subject = _subject(right, params)
        other = left
        operator = _FLIPPED[operator]
    if subject is None:
        return None
    if not expected:
        operator = _NEGATED[operator]

    name, is_len = subject
    type_str = params[name]

    if is_len:
        if other.kind != LITERAL or other.literal_type != "int":
            return None
        bound = _parse_int(other.value)
        target = _integer_target(operator, bound) if bound is not None else None
        if target is None or target < 0:
            return None
        value = _value_of_length(type_str, target, local_types)
        return {name: value} if value is not None else None

    if other.kind == NIL:
        if not can_be_nil(type_str) or operator not in ("==", "!="):
            return None
        if operator == "==":
            return {name: Value("nil", is_nil=True)}
        if classify_type(type_str) == TypeKind.INTERFACE or type_str == "error":
            return None
        return {name: default_binding(type_str, local_types)}

    if other.kind != LITERAL:
        return None

    if is_numeric(type_str) and other.literal_type in ("int", "float"):
        return _solve_numeric(name, type_str, operator, other)

    if type_str == "string" and other.literal_type == "string":
        if operator == "==":
            return {name: _string_value(other.value or "")}
        if operator == "!=":
            replacement = "test" if other.value == "" else ""
            return {name: _string_value(replacement)}
        return None

    if type_str == "bool" and other.literal_type == "bool" and operator in ("==", "!="):
        truth = (other.value == "true") == (operator == "==")
        return {name: Value("true" if truth else "false", truth=truth)}

    return None


def _parse_int(text: Optional[str]) -> Optional[int]:
    """Parse a Go integer literal (decimal, 0x, 0o, 0b or legacy leading-zero octal)."""
    if not text:
        return None
    if len(text) > 1 and text[0] == "0" and text[1].isdigit():
        text = "0o" + text[1:]
    try:
        return int(text, 0)
    except ValueError:
        return None


def _integer_target(operator: str, bound: int) -> Optional[int]:
    return {
        "<": bound - 1,
        "<=": bound,
        ">": bound + 1,
        ">=": bound,
        "==": bound,
        "!=": bound + 1,
    }.get(operator)


def _solve_numeric(name: str, type_str: str, operator: str, literal: Expr) -> Optional[Bindings]:
    if is_integer(type_str):
        bound = _parse_int(literal.value)
        target = _integer_target(operator, bound) if bound is not None else None
        if target is None or (target < 0 and type_str in UNSIGNED_TYPES):
            return None
        return {name: Value(str(target), number=float(target))}

    if type_str in FLOAT_TYPES:
        if literal.literal_type == "int":
            parsed = _parse_int(literal.value)
            if parsed is None:
                return None
            bound_f = float(parsed)
        else:
            try:
                bound_f = float(literal.value or "0")
            except ValueError:
                return None
        step = {"<": -1.0, "<=": 0.0, ">": 1.0, ">=": 0.0, "==": 0.0, "!=": 1.0}[operator]
        target_f = bound_f + step
        return {name: Value(repr(target_f), number=target_f)}
    return None


def _string_value(contents: str) -> Value:
    return Value(f'"{contents}"', text=contents, length=len(contents))


def _value_of_length(type_str: str, length: int, local_types: Mapping[str, str]) -> Optional[Value]:
    t = normalize_type(type_str)
    if t == "string":
        if length <= _MAX_INLINE_LENGTH:
            return _string_value("a" * length)
        return Value(f'strings.Repeat("a", {length})', text="a" * length, length=length)

    kind = classify_type(t)
    if kind == TypeKind.SLICE:
        literal_type = slice_literal_type(t)
        if length == 0:
            return Value(f"{literal_type}{{}}", length=0)
        if length > _MAX_INLINE_LENGTH:
            return Value(f"make({literal_type}, {length})", length=length)
        element = default_value(element_type(t), local_types)
        return Value(f"{literal_type}{{{', '.join([element] * length)}}}", length=length)

    if kind == TypeKind.MAP:
        if length == 0:
            return Value(f"{t}{{}}", length=0)
        if length == 1:
            key, value = map_types(t)
            return Value(f"{t}{{{default_value(key, local_types)}: {default_value(value, local_types)}}}", length=1)
    return None


def evaluate(condition: Expr, bindings: Mapping[str, Value]) -> Optional[bool]:
    """Evaluate a condition under concrete bindings.

    Returns:
        True/False when the outcome follows from the bindings, None when it
        depends on something the bindings do not describe
    """
    if condition.kind == UNARY and condition.operator == "!" and condition.operands:
        inner = evaluate(condition.operands[0], bindings)
        return None if inner is None else not inner

    if condition.kind == BINARY and condition.operator in ("&&", "||"):
        left = evaluate(condition.operands[0], bindings)
        right = evaluate(condition.operands[1], bindings)
        if condition.operator == "&&":
            if left is False or right is False:
                return False
            return True if left and right else None
        if left or right:
            return True
        return False if left is False and right is False else None

    if condition.kind == IDENTIFIER and condition.text in bindings:
        return bindings[condition.text].truth

    if condition.kind == BINARY and condition.operator in _COMPARISONS:
        left = _concrete(condition.operands[0], bindings)
        right = _concrete(condition.operands[1], bindings)
        if left is _UNKNOWN or right is _UNKNOWN:
            return None
        return _compare(left, condition.operator, right)

    return None


_UNKNOWN = object()
_NIL = object()
_NON_NIL = object()


def _concrete(expr: Expr, bindings: Mapping[str, Value]):
    if expr.kind == NIL:
        return _NIL
    if expr.kind == LITERAL:
        if expr.literal_type in ("int", "float"):
            try:
                if expr.literal_type == "int":
                    bound = _parse_int(expr.value)
                    return float(bound) if bound is not None else _UNKNOWN
                return float(expr.value)
            except (TypeError, ValueError):
                return _UNKNOWN
        if expr.literal_type == "string":
            return expr.value
        if expr.literal_type == "bool":
            return expr.value == "true"
        return _UNKNOWN
    if expr.kind == IDENTIFIER and expr.text in bindings:
        value = bindings[expr.text]
        if value.is_nil:
            return _NIL
        for known in (value.number, value.text, value.truth):
            if known is not None:
                return known
        return _NON_NIL
    if expr.kind == CALL and expr.callee == "len" and len(expr.operands) == 1:
        arg = expr.operands[0]
        if arg.kind == IDENTIFIER and arg.text in bindings:
            value = bindings[arg.text]
            if value.is_nil:
                return 0.0
            if value.length is not None:
                return float(value.length)
    return _UNKNOWN


def _compare(left, operator: str, right) -> Optional[bool]:
    if left is _NIL or right is _NIL:
        if operator not in ("==", "!="):
            return None
        same = left is right
        return same if operator == "==" else not same
    if left is _NON_NIL or right is _NON_NIL:
        return None
    if type(left) is not type(right):
        return None
    if operator == "==":
        return left == right
    if operator == "!=":
        return left != right
    if isinstance(left, bool):
        return None
    return {
        "<": left < right,
        "<=": left <= right,
        ">": left > right,
        ">=": left >= right,
    }[operator]
