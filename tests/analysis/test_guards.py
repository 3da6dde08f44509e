"""Tests for guard solving and evaluation."""

from testwarden.analysis.guards import Value, evaluate, merge, solve
from testwarden.analysis.source_model import Expr


def ident(name):
    return Expr("identifier", name)


def int_lit(text):
    return Expr("literal", text, value=text, literal_type="int")


def str_lit(contents):
    return Expr("literal", f'"{contents}"', value=contents, literal_type="string")


def compare(left, operator, right):
    return Expr("binary", f"{left.text} {operator} {right.text}", operator=operator, operands=(left, right))


def length(name):
    return Expr("call", f"len({name})", callee="len", operands=(ident(name),))


class TestSolveComparisons:
    """Single comparisons between a parameter and a literal."""

    def test_integer_below_bound(self):
        bindings = solve(compare(ident("x"), "<", int_lit("0")), True, {"x": "int"})
        assert bindings["x"].expr == "-1"
        assert bindings["x"].number == -1.0

    def test_negated_guard_picks_the_boundary(self):
        bindings = solve(compare(ident("x"), "<", int_lit("0")), False, {"x": "int"})
        assert bindings["x"].expr == "0"

    def test_literal_on_the_left_is_flipped(self):
        bindings = solve(compare(int_lit("10"), ">", ident("n")), True, {"n": "int"})
        assert bindings["n"].expr == "9"

    def test_hex_literal(self):
        bindings = solve(compare(ident("x"), ">=", int_lit("0x10")), True, {"x": "int"})
        assert bindings["x"].expr == "16"

    def test_unsigned_cannot_go_negative(self):
        assert solve(compare(ident("x"), "<", int_lit("0")), True, {"x": "uint"}) is None

    def test_empty_string(self):
        condition = compare(ident("s"), "==", str_lit(""))
        assert solve(condition, True, {"s": "string"})["s"].expr == '""'
        assert solve(condition, False, {"s": "string"})["s"].expr == '"test"'

    def test_string_length(self):
        bindings = solve(compare(length("s"), "==", int_lit("0")), True, {"s": "string"})
        assert bindings["s"].expr == '""'
        assert bindings["s"].length == 0

    def test_slice_length(self):
        bindings = solve(compare(length("items"), ">", int_lit("3")), True, {"items": "[]int"})
        assert bindings["items"].length == 4

    def test_nil_pointer(self):
        condition = compare(ident("cfg"), "==", Expr("nil", "nil"))
        bindings = solve(condition, True, {"cfg": "*Config"})
        assert bindings["cfg"].is_nil

    def test_unknown_subject_is_unsolvable(self):
        condition = compare(ident("other"), "<", int_lit("0"))
        assert solve(condition, True, {"x": "int"}) is None


class TestSolveCombinations:
    """Boolean structure around comparisons."""

    def test_negation(self):
        condition = Expr("unary", "!ok", operator="!", operands=(ident("ok"),))
        bindings = solve(condition, True, {"ok": "bool"})
        assert bindings["ok"].truth is False

    def test_conflicting_conjunction(self):
        condition = Expr(
            "binary",
            "x < 0 && x > 5",
            operator="&&",
            operands=(compare(ident("x"), "<", int_lit("0")), compare(ident("x"), ">", int_lit("5"))),
        )
        assert solve(condition, True, {"x": "int"}) is None

    def test_disjunction_takes_first_solvable_side(self):
        condition = Expr(
            "binary",
            "y < 0 || x < 0",
            operator="||",
            operands=(compare(ident("y"), "<", int_lit("0")), compare(ident("x"), "<", int_lit("0"))),
        )
        bindings = solve(condition, True, {"x": "int"})
        assert set(bindings) == {"x"}

    def test_merge_conflict(self):
        assert merge({"x": Value("1")}, {"x": Value("2")}) is None
        assert set(merge({"x": Value("1")}, {"y": Value("2")})) == {"x", "y"}


class TestEvaluate:
    """Conditions evaluated under concrete bindings."""

    def test_known_outcome(self):
        condition = compare(ident("x"), "<", int_lit("0"))
        assert evaluate(condition, {"x": Value("-1", number=-1.0)}) is True
        assert evaluate(condition, {"x": Value("3", number=3.0)}) is False

    def test_unbound_parameter_is_unknown(self):
        assert evaluate(compare(ident("x"), "<", int_lit("0")), {}) is None

    def test_nil_length_is_zero(self):
        condition = compare(length("items"), "==", int_lit("0"))
        assert evaluate(condition, {"items": Value("nil", is_nil=True)}) is True
