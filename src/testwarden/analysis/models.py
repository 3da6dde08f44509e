"""Analysis results: what the analyzer learned about each function.

Type flags on ParameterInfo / ReturnInfo are derived from the type string,
so they can never disagree with it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..serialization import Serializable
from .source_model import InterfaceDecl
from .types import TypeKind, can_be_nil, classify_type, is_error_type, normalize_type

# Standard-library packages whose use means a function touches the outside world
_IO_PACKAGES = frozenset({"net", "net/http", "database/sql", "os", "os/exec", "io/ioutil"})


class _TypedSlot:
    type: str

    @property
    def kind(self) -> TypeKind:
        return classify_type(self.type)

    @property
    def is_pointer(self) -> bool:
        return self.kind == TypeKind.POINTER

    @property
    def is_slice(self) -> bool:
        return self.kind == TypeKind.SLICE

    @property
    def is_map(self) -> bool:
        return self.kind == TypeKind.MAP

    @property
    def is_interface(self) -> bool:
        return self.kind == TypeKind.INTERFACE

    @property
    def can_be_nil(self) -> bool:
        return can_be_nil(self.type)


@dataclass(frozen=True)
class ParameterInfo(_TypedSlot, Serializable):
    name: str
    type: str

    @property
    def is_variadic(self) -> bool:
        return normalize_type(self.type).startswith("...")


@dataclass(frozen=True)
class ReturnInfo(_TypedSlot, Serializable):
    type: str
    name: str = ""

    @property
    def is_error(self) -> bool:
        return is_error_type(self.type)


@dataclass(frozen=True)
class DependencyInfo(Serializable):
    """Something a function reaches outside itself for.

    Attributes:
        name: Package alias, interface type or receiver field name
        type: "package", "interface" or "field"
        package: Import path for package dependencies
        is_interface: Dependency is an interface type
        methods: Functions or methods used
        can_be_mocked: A mock can be generated (method set is known)
        interface: Method set of mockable interfaces
    """

    name: str
    type: str
    package: str = ""
    is_interface: bool = False
    methods: tuple[str, ...] = ()
    can_be_mocked: bool = False
    interface: Optional[InterfaceDecl] = None

    @property
    def is_external(self) -> bool:
        """Package dependency outside the standard library, or one doing I/O."""
        if self.type != "package":
            return False
        first = self.package.split("/", 1)[0]
        return "." in first or self.package in _IO_PACKAGES


@dataclass(frozen=True)
class TestInput(Serializable):
    """An argument value for one parameter.

    ``constrained`` marks values chosen to reach a path, as opposed to
    defaults that only have to be valid.
    """

    __test__ = False

    name: str
    type: str
    value: str
    description: str = ""
    constrained: bool = False


@dataclass(frozen=True)
class TestOutput(Serializable):
    """Expectation on one result: "no-error", "error" or "non-nil"."""

    __test__ = False

    name: str
    type: str
    expectation: str


class ErrorKind(str, Enum):
    MESSAGE = "message"
    SENTINEL = "sentinel"
    PROPAGATED = "propagated"


@dataclass(frozen=True)
class ErrorPath(Serializable):
    """A return of a non-nil error.

    Attributes:
        condition: Guards leading to the return, joined with ``&&``
        error_kind: How the error value is built
        error_value: Message prefix (MESSAGE) or sentinel expression (SENTINEL)
        inputs: Arguments that satisfy the guards as far as they are solvable
        line: Line of the return statement
        solved: Every guard was solved from the parameters
    """

    condition: str
    error_kind: ErrorKind
    error_value: str
    inputs: tuple[TestInput, ...]
    line: int = 0
    solved: bool = True


@dataclass(frozen=True)
class HappyPath(Serializable):
    description: str
    inputs: tuple[TestInput, ...]
    expected_outputs: tuple[TestOutput, ...] = ()
    line: int = 0
    may_error: bool = False


@dataclass(frozen=True)
class EdgeCase(Serializable):
    description: str
    parameter: str
    inputs: tuple[TestInput, ...]


@dataclass(frozen=True)
class FunctionAnalysis(Serializable):
    """Everything known about one function or method.

    Attributes:
        receiver_type: Receiver type text for methods (e.g. "*Service")
        receiver_value: Go expression constructing a receiver instance
        complexity: 1 + branches (if, loop, switch, case clause)
    """

    name: str
    package: str
    exported: bool
    is_method: bool = False
    receiver_type: str = ""
    receiver_name: str = ""
    receiver_value: str = ""
    parameters: tuple[ParameterInfo, ...] = ()
    returns: tuple[ReturnInfo, ...] = ()
    dependencies: tuple[DependencyInfo, ...] = ()
    complexity: int = 1
    documentation: str = ""
    happy_paths: tuple[HappyPath, ...] = ()
    error_paths: tuple[ErrorPath, ...] = ()
    edge_cases: tuple[EdgeCase, ...] = ()
    start_line: int = 0
    end_line: int = 0
    has_type_parameters: bool = False
    source_path: str = ""

    @property
    def returns_error(self) -> bool:
        return bool(self.returns) and self.returns[-1].is_error

    @property
    def qualified_name(self) -> str:
        """Name used in generated identifiers ("Service_Process" for methods)."""
        if self.is_method:
            receiver = self.receiver_type.lstrip("*").split("[", 1)[0]
            return f"{receiver}_{self.name}"
        return self.name


@dataclass(frozen=True)
class FileAnalysis(Serializable):
    """Analysis of one source file plus the declarations synthesis needs."""

    path: str
    package_name: str
    functions: tuple[FunctionAnalysis, ...] = ()
    imports: dict[str, str] = field(default_factory=dict)
    local_types: dict[str, str] = field(default_factory=dict)
    interfaces: dict[str, InterfaceDecl] = field(default_factory=dict)
