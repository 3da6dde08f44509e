"""Language-neutral source model consumed by the analyzer.

A ``SourceModel`` exposes the declarations of one source file and a small
control-flow IR per function body:

    - ``ControlFlowNode``: block / if / loop / switch / case / return / statement
    - ``Expr``: the handful of expression shapes the guard solver understands
    - ``Call``: a call site, recorded on the statement that contains it

Anything the IR does not model collapses to ``Expr(kind="other")`` or a
plain ``statement`` node, so a new language only has to provide the shapes it
can recognise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

# Expr kinds
BINARY = "binary"
UNARY = "unary"
IDENTIFIER = "identifier"
LITERAL = "literal"
CALL = "call"
SELECTOR = "selector"
NIL = "nil"
OTHER = "other"

# ControlFlowNode kinds
BLOCK = "block"
IF = "if"
LOOP = "loop"
SWITCH = "switch"
CASE = "case"
RETURN = "return"
STATEMENT = "statement"


@dataclass(frozen=True)
class Expr:
    """An expression.

    Attributes:
        kind: One of the Expr kind constants
        text: Source text
        operator: Operator for binary/unary expressions
        operands: Operands (binary: left, right; unary: operand; call: arguments)
        callee: Called function text for calls (e.g. "errors.New")
        value: Decoded literal value (string contents without quotes)
        literal_type: "int", "float", "string", "bool", "rune" for literals
    """

    kind: str
    text: str
    operator: str = ""
    operands: tuple[Expr, ...] = ()
    callee: str = ""
    value: Optional[str] = None
    literal_type: str = ""

    @property
    def left(self) -> Optional[Expr]:
        return self.operands[0] if self.operands else None

    @property
    def right(self) -> Optional[Expr]:
        return self.operands[1] if len(self.operands) > 1 else None


@dataclass(frozen=True)
class Call:
    """A call site inside a function body."""

    callee: str
    line: int
    arguments: tuple[Expr, ...] = ()

    @property
    def qualifier(self) -> str:
        """Leading identifier of a dotted callee ("fmt" for "fmt.Errorf")."""
        return self.callee.split(".", 1)[0] if "." in self.callee else ""


@dataclass(frozen=True)
class ControlFlowNode:
    """A statement in the control-flow IR.

    ``if`` nodes keep the consequence in ``body`` and the alternative in
    ``orelse``. ``switch`` nodes hold ``case`` nodes in ``body``; a case's
    ``condition`` is the boolean it is equivalent to, or None for
    ``default`` and cases that cannot be expressed as one.

    ``closures`` holds the bodies of function literals appearing in the
    statement itself (``go func() {...}()``, callbacks, ``f := func...``).
    They count toward complexity and calls but are not part of the
    enclosing function's control flow: a ``return`` inside one does not
    return from the function.
    """

    kind: str
    text: str = ""
    line: int = 0
    body: tuple[ControlFlowNode, ...] = ()
    orelse: tuple[ControlFlowNode, ...] = ()
    condition: Optional[Expr] = None
    values: tuple[Expr, ...] = ()
    calls: tuple[Call, ...] = ()
    is_default: bool = False
    closures: tuple[ControlFlowNode, ...] = ()

    def walk(self):
        """Yield this node and every nested node, depth first, closures included."""
        yield self
        for child in self.body:
            yield from child.walk()
        for child in self.orelse:
            yield from child.walk()
        for closure in self.closures:
            yield from closure.walk()


@dataclass(frozen=True)
class Field:
    """A named, typed slot: parameter, result or struct field."""

    name: str
    type: str


@dataclass(frozen=True)
class FunctionSignature:
    """A top-level function or method declaration."""

    name: str
    parameters: tuple[Field, ...] = ()
    results: tuple[Field, ...] = ()
    receiver: Optional[Field] = None
    documentation: str = ""
    start_line: int = 0
    end_line: int = 0
    has_type_parameters: bool = False

    @property
    def is_method(self) -> bool:
        return self.receiver is not None


@dataclass(frozen=True)
class MethodSpec:
    """One method of an interface declaration."""

    name: str
    parameters: tuple[Field, ...] = ()
    results: tuple[Field, ...] = ()


@dataclass(frozen=True)
class InterfaceDecl:
    name: str
    methods: tuple[MethodSpec, ...] = ()
    package: str = ""


class SourceModel(Protocol):
    """What the analyzer needs to know about one source file."""

    path: str
    package_name: str
    imports: dict[str, str]

    def functions(self) -> list[FunctionSignature]:
        """Top-level functions and methods in declaration order."""
        ...

    def body(self, fn: FunctionSignature) -> Optional[ControlFlowNode]:
        """Control-flow IR of a function body (None for bodyless declarations)."""
        ...

    def interfaces(self) -> dict[str, InterfaceDecl]:
        """Interfaces declared in the file, by name."""
        ...

    def type_kinds(self) -> dict[str, str]:
        """Declared type name -> underlying type text.

        Struct types map to "struct{}" and interface types to
        "interface{}".
        """
        ...
