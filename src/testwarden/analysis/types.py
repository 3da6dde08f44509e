"""Go type-string classification and representative values.

Everything here works on the whitespace-normalized type text produced by the
source model, e.g. ``*Config``, ``[]string``, ``map[string]int``,
``...int``, ``<-chan error``.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Mapping, Optional


class TypeKind(str, Enum):
    POINTER = "pointer"
    SLICE = "slice"
    ARRAY = "array"
    MAP = "map"
    INTERFACE = "interface"
    CHANNEL = "channel"
    FUNCTION = "function"
    STRUCT = "struct"
    NAMED = "named"


INTEGER_TYPES = frozenset(
    {
        "int", "int8", "int16", "int32", "int64",
        "uint", "uint8", "uint16", "uint32", "uint64", "uintptr",
        "byte", "rune",
    }
)
UNSIGNED_TYPES = frozenset({"uint", "uint8", "uint16", "uint32", "uint64", "uintptr", "byte"})
FLOAT_TYPES = frozenset({"float32", "float64"})
COMPLEX_TYPES = frozenset({"complex64", "complex128"})
BUILTIN_TYPES = INTEGER_TYPES | FLOAT_TYPES | COMPLEX_TYPES | {"bool", "string", "error", "any"}

# Named types whose useful value is not a composite literal
WELL_KNOWN_VALUES = {
    "context.Context": "context.Background()",
    "time.Duration": "time.Second",
    "time.Time": "time.Now()",
}

_SPACE_AFTER = re.compile(r"([\[(*])\s+")
_SPACE_BEFORE = re.compile(r"\s+([\])])")
_IDENTIFIER = re.compile(r"(?<![\w.])([A-Za-z_]\w*)(?![\w.])")


def normalize_type(text: str) -> str:
    """Collapse whitespace in a type expression.

    >>> normalize_type("map[string] *Item")
    'map[string]*Item'
    """
    collapsed = " ".join(text.split())
    collapsed = _SPACE_AFTER.sub(r"\1", collapsed)
    collapsed = _SPACE_BEFORE.sub(r"\1", collapsed)
    return collapsed.replace("] *", "]*").replace("] ", "]")


def classify_type(type_str: str) -> TypeKind:
    """Classify a type string into its structural form."""
    t = normalize_type(type_str)
    if t.startswith("*"):
        return TypeKind.POINTER
    if t.startswith("[]") or t.startswith("..."):
        return TypeKind.SLICE
    if t.startswith("["):
        return TypeKind.ARRAY
    if t.startswith("map["):
        return TypeKind.MAP
    if t.startswith("interface") or t == "any":
        return TypeKind.INTERFACE
    if t.startswith("chan") or t.startswith("<-chan"):
        return TypeKind.CHANNEL
    if t.startswith("func"):
        return TypeKind.FUNCTION
    if t.startswith("struct{") or t.startswith("struct {"):
        return TypeKind.STRUCT
    return TypeKind.NAMED


def can_be_nil(type_str: str) -> bool:
    """True for pointer, slice, map and interface types, and exactly ``error``."""
    if normalize_type(type_str) == "error":
        return True
    return classify_type(type_str) in (
        TypeKind.POINTER,
        TypeKind.SLICE,
        TypeKind.MAP,
        TypeKind.INTERFACE,
    )


def is_error_type(type_str: str) -> bool:
    return normalize_type(type_str) == "error"


def is_integer(type_str: str) -> bool:
    return normalize_type(type_str) in INTEGER_TYPES


def is_numeric(type_str: str) -> bool:
    t = normalize_type(type_str)
    return t in INTEGER_TYPES or t in FLOAT_TYPES


def element_type(type_str: str) -> str:
    """Element type of pointer, slice, variadic, array and channel types."""
    t = normalize_type(type_str)
    if t.startswith("..."):
        return t[3:]
    if t.startswith("*"):
        return t[1:]
    if t.startswith("[]"):
        return t[2:]
    if t.startswith("["):
        return t[_matching_bracket(t, 0) + 1 :]
    for prefix in ("<-chan ", "chan<- ", "chan "):
        if t.startswith(prefix):
            return t[len(prefix) :]
    return t


def map_types(type_str: str) -> tuple[str, str]:
    """(key, value) types of a map type."""
    t = normalize_type(type_str)
    close = _matching_bracket(t, 3)
    return t[4:close], t[close + 1 :]


def array_length(type_str: str) -> str:
    t = normalize_type(type_str)
    return t[1 : _matching_bracket(t, 0)]


def slice_literal_type(type_str: str) -> str:
    """Slice type usable in a composite literal (``...T`` becomes ``[]T``)."""
    t = normalize_type(type_str)
    return "[]" + t[3:] if t.startswith("...") else t


def base_type_name(type_str: str) -> str:
    """Named type behind pointers and type arguments (``*List[T]`` -> ``List``)."""
    t = normalize_type(type_str).lstrip("*")
    return t.split("[", 1)[0]


def qualify_type(type_str: str, local_names: set[str], package: str) -> str:
    """Prefix locally declared type names with ``package.``.

    >>> qualify_type("map[string]*Item", {"Item"}, "store")
    'map[string]*store.Item'
    """
    if not package or not local_names:
        return type_str
    return _IDENTIFIER.sub(
        lambda m: f"{package}.{m.group(1)}" if m.group(1) in local_names else m.group(1), type_str
    )


def _matching_bracket(text: str, start: int) -> int:
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "[":
            depth += 1
        elif text[i] == "]":
            depth -= 1
            if depth == 0:
                return i
    return len(text) - 1


def basic_default(type_str: str) -> Optional[str]:
    """Representative non-zero value for built-in scalar types."""
    t = normalize_type(type_str)
    if t == "bool":
        return "true"
    if t == "string":
        return '"test"'
    if t in INTEGER_TYPES or t in COMPLEX_TYPES:
        return "1"
    if t in FLOAT_TYPES:
        return "1.5"
    return None


def zero_value(type_str: str, local_types: Mapping[str, str]) -> str:
    """Go zero value for a type, as used in mock return stubs."""
    t = normalize_type(type_str)
    if t == "bool":
        return "false"
    if t == "string":
        return '""'
    if t in INTEGER_TYPES or t in FLOAT_TYPES or t in COMPLEX_TYPES:
        return "0"
    if can_be_nil(t) or classify_type(t) in (TypeKind.CHANNEL, TypeKind.FUNCTION):
        return "nil"
    if classify_type(t) == TypeKind.ARRAY:
        return f"{t}{{}}"
    underlying = local_types.get(t)
    if underlying == "interface{}":
        return "nil"
    if underlying is not None and underlying != "struct{}":
        return f"{t}({zero_value(underlying, {})})"
    return f"{t}{{}}"


def default_value(type_str: str, local_types: Mapping[str, str]) -> str:
    """Representative, valid, preferably non-zero Go value for a type.

    Args:
        type_str: Normalized Go type
        local_types: Declared type name -> underlying type (from the source model)

    Examples:
        >>> default_value("[]string", {})
        '[]string{"test"}'
        >>> default_value("*Config", {"Config": "struct{}"})
        '&Config{}'
    """
    t = normalize_type(type_str)
    basic = basic_default(t)
    if basic is not None:
        return basic
    if t in WELL_KNOWN_VALUES:
        return WELL_KNOWN_VALUES[t]

    kind = classify_type(t)
    if t == "error" or kind in (TypeKind.INTERFACE, TypeKind.FUNCTION):
        return "nil"
    if kind == TypeKind.POINTER:
        elem = element_type(t)
        underlying = local_types.get(elem)
        if elem in BUILTIN_TYPES or classify_type(elem) != TypeKind.NAMED:
            return f"new({elem})"
        if underlying is not None and underlying != "struct{}":
            return f"new({elem})"
        return f"&{elem}{{}}"
    if kind == TypeKind.SLICE:
        elem = element_type(t)
        return f"{slice_literal_type(t)}{{{default_value(elem, local_types)}}}"
    if kind == TypeKind.MAP:
        key, value = map_types(t)
        return (
            f"{t}{{{default_value(key, local_types)}: "
            f"{default_value(value, local_types)}}}"
        )
    if kind == TypeKind.ARRAY:
        return f"{t}{{}}"
    if kind == TypeKind.CHANNEL:
        return f"make(chan {element_type(t)}, 1)"
    if kind == TypeKind.STRUCT:
        return f"{t}{{}}"

    underlying = local_types.get(t)
    if underlying == "interface{}":
        return "nil"
    if underlying is not None and underlying != "struct{}":
        inner = basic_default(underlying)
        if inner is None:
            inner = default_value(underlying, local_types)
        return f"{t}({inner})"
    return f"{t}{{}}"
