"""Go implementation of the source model, built from a tree-sitter syntax tree.

The walk is manual rather than query-based: every construct the analyzer
needs is reachable through field names of the Go grammar, and the node types
used here have been stable across grammar releases (``statement_list`` is
flattened where newer grammars emit it).
"""

from __future__ import annotations

import re
from typing import Any, Iterator, Optional, Union

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
    OTHER,
    RETURN,
    SELECTOR,
    STATEMENT,
    SWITCH,
    UNARY,
    Call,
    ControlFlowNode,
    Expr,
    Field,
    FunctionSignature,
    InterfaceDecl,
    MethodSpec,
)
from .treesitter_parser import TreeSitterParser, node_text
from .types import normalize_type

_MAJOR_VERSION = re.compile(r"^v\d+$")
_GOPKG_VERSION = re.compile(r"\.v\d+$")

_SKIPPED_STATEMENTS = frozenset({"comment", "empty_statement"})


def default_import_alias(path: str) -> str:
    """Name a package is referred to by when imported without an alias.

    >>> default_import_alias("github.com/stretchr/testify/assert")
    'assert'
    >>> default_import_alias("github.com/go-chi/chi/v5")
    'chi'
    >>> default_import_alias("gopkg.in/yaml.v3")
    'yaml'
    """
    parts = [p for p in path.split("/") if p]
    if not parts:
        return path
    last = parts[-1]
    if _MAJOR_VERSION.match(last) and len(parts) > 1:
        last = parts[-2]
    last = _GOPKG_VERSION.sub("", last)
    if last.startswith("go-"):
        last = last[3:]
    return last.replace("-", "_")


def _key(node: Any) -> tuple[int, int, str]:
    return (node.start_byte, node.end_byte, node.type)


def _line(node: Any) -> int:
    return node.start_point[0] + 1


def _first_line(node: Any) -> str:
    return node_text(node).split("\n", 1)[0].strip()


def _go_escape(raw: str) -> str:
    return raw.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\t", "\\t")


class GoSourceModel:
    """Source model of one Go file.

    Example:
        >>> model = GoSourceModel.parse(b"package calc\\nfunc Add(a, b int) int { return a + b }\\n")
        >>> [fn.name for fn in model.functions()]
        ['Add']
    """

    language = "go"

    def __init__(
        self,
        path: str,
        package_name: str,
        imports: dict[str, str],
        functions: list[FunctionSignature],
        bodies: dict[tuple[str, int], ControlFlowNode],
        interfaces: dict[str, InterfaceDecl],
        type_kinds: dict[str, str],
    ) -> None:
        self.path = path
        self.package_name = package_name
        self.imports = imports
        self._functions = functions
        self._bodies = bodies
        self._interfaces = interfaces
        self._type_kinds = type_kinds

    @classmethod
    def parse(
        cls,
        source: Union[str, bytes],
        path: str = "<memory>",
        parser: Optional[TreeSitterParser] = None,
    ) -> GoSourceModel:
        """Parse Go source into a model.

        Raises:
            ParsingError: If the source contains syntax errors
        """
        code = source.encode("utf-8") if isinstance(source, str) else source
        tree = (parser or TreeSitterParser()).parse(code, path)
        return _ModelBuilder(path).build(tree.root_node)

    def functions(self) -> list[FunctionSignature]:
        return list(self._functions)

    def body(self, fn: FunctionSignature) -> Optional[ControlFlowNode]:
        return self._bodies.get((fn.name, fn.start_line))

    def interfaces(self) -> dict[str, InterfaceDecl]:
        return dict(self._interfaces)

    def type_kinds(self) -> dict[str, str]:
        return dict(self._type_kinds)


class _ModelBuilder:
    """Single-use walker that turns a Go syntax tree into a GoSourceModel."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.package_name = ""
        self.imports: dict[str, str] = {}
        self.functions: list[FunctionSignature] = []
        self.bodies: dict[tuple[str, int], ControlFlowNode] = {}
        self.interfaces: dict[str, InterfaceDecl] = {}
        self.type_kinds: dict[str, str] = {}

    def build(self, root: Any) -> GoSourceModel:
        for child in root.named_children:
            if child.type == "package_clause":
                for part in child.named_children:
                    if part.type == "package_identifier":
                        self.package_name = node_text(part)
            elif child.type == "import_declaration":
                self._collect_imports(child)
            elif child.type in ("function_declaration", "method_declaration"):
                self._collect_function(child)
            elif child.type == "type_declaration":
                self._collect_types(child)

        return GoSourceModel(
            path=self.path,
            package_name=self.package_name,
            imports=self.imports,
            functions=self.functions,
            bodies=self.bodies,
            interfaces=self.interfaces,
            type_kinds=self.type_kinds,
        )

    # ── declarations ───────────────────────────────────────────────

    def _collect_imports(self, node: Any) -> None:
        for spec in _descendants(node, "import_spec"):
            path_node = spec.child_by_field_name("path")
            if path_node is None:
                continue
            import_path = node_text(path_node).strip('"`')
            name_node = spec.child_by_field_name("name")
            if name_node is None:
                alias = default_import_alias(import_path)
            elif name_node.type == "package_identifier":
                alias = node_text(name_node)
            else:
                # blank and dot imports are not referenced by name
                continue
            self.imports[alias] = import_path

    def _collect_function(self, node: Any) -> None:
        name = node_text(node.child_by_field_name("name"))
        receiver = None
        generic = node.child_by_field_name("type_parameters") is not None

        receiver_node = node.child_by_field_name("receiver")
        if receiver_node is not None:
            receiver_fields = _parameter_fields(receiver_node)
            if receiver_fields:
                receiver = receiver_fields[0]
                generic = generic or "[" in receiver.type

        fn = FunctionSignature(
            name=name,
            parameters=tuple(_parameter_fields(node.child_by_field_name("parameters"))),
            results=tuple(_result_fields(node.child_by_field_name("result"))),
            receiver=receiver,
            documentation=_doc_comment(node),
            start_line=_line(node),
            end_line=node.end_point[0] + 1,
            has_type_parameters=generic,
        )
        self.functions.append(fn)

        body = node.child_by_field_name("body")
        if body is not None:
            self.bodies[(fn.name, fn.start_line)] = _block(body)

    def _collect_types(self, node: Any) -> None:
        for spec in node.named_children:
            if spec.type not in ("type_spec", "type_alias"):
                continue
            name = node_text(spec.child_by_field_name("name"))
            type_node = spec.child_by_field_name("type")
            if not name or type_node is None:
                continue
            if type_node.type == "struct_type":
                self.type_kinds[name] = "struct{}"
            elif type_node.type == "interface_type":
                self.type_kinds[name] = "interface{}"
                self.interfaces[name] = InterfaceDecl(
                    name=name,
                    methods=tuple(_interface_methods(type_node)),
                    package=self.package_name,
                )
            else:
                self.type_kinds[name] = normalize_type(node_text(type_node))


def _descendants(node: Any, node_type: str) -> Iterator[Any]:
    for child in node.named_children:
        if child.type == node_type:
            yield child
        else:
            yield from _descendants(child, node_type)


def _parameter_fields(node: Any) -> list[Field]:
    if node is None:
        return []
    fields: list[Field] = []
    for decl in node.named_children:
        if decl.type not in ("parameter_declaration", "variadic_parameter_declaration"):
            continue
        type_text = normalize_type(node_text(decl.child_by_field_name("type")))
        if decl.type == "variadic_parameter_declaration":
            type_text = "..." + type_text
        names = [node_text(n) for n in decl.children_by_field_name("name")]
        if not names:
            fields.append(Field("", type_text))
        else:
            fields.extend(Field(n, type_text) for n in names)
    return fields


def _result_fields(node: Any) -> list[Field]:
    if node is None:
        return []
    if node.type == "parameter_list":
        return _parameter_fields(node)
    return [Field("", normalize_type(node_text(node)))]


def _interface_methods(node: Any) -> Iterator[MethodSpec]:
    for elem in node.named_children:
        if elem.type not in ("method_elem", "method_spec"):
            continue
        yield MethodSpec(
            name=node_text(elem.child_by_field_name("name")),
            parameters=tuple(_parameter_fields(elem.child_by_field_name("parameters"))),
            results=tuple(_result_fields(elem.child_by_field_name("result"))),
        )


def _doc_comment(node: Any) -> str:
    lines: list[str] = []
    expected_row = node.start_point[0] - 1
    sibling = node.prev_named_sibling
    while sibling is not None and sibling.type == "comment" and sibling.end_point[0] == expected_row:
        text = node_text(sibling)
        if text.startswith("//"):
            text = text[2:]
        elif text.startswith("/*"):
            text = text[2:-2]
        lines.append(text.strip())
        expected_row = sibling.start_point[0] - 1
        sibling = sibling.prev_named_sibling
    return "\n".join(reversed(lines))


# ── statements ─────────────────────────────────────────────────────


def _statement_nodes(node: Any, skip: frozenset = frozenset()) -> Iterator[Any]:
    for child in node.named_children:
        if child.type == "statement_list":
            yield from _statement_nodes(child)
        elif child.type in _SKIPPED_STATEMENTS or _key(child) in skip:
            continue
        else:
            yield child


def _statements(node: Any, skip: frozenset = frozenset()) -> tuple[ControlFlowNode, ...]:
    result = []
    for child in _statement_nodes(node, skip):
        converted = _statement(child)
        if converted is not None:
            result.append(converted)
    return tuple(result)


def _block(node: Any) -> ControlFlowNode:
    return ControlFlowNode(kind=BLOCK, line=_line(node), body=_statements(node))


def _closures(*nodes: Any) -> tuple[ControlFlowNode, ...]:
    """Bodies of the outermost function literals under ``nodes``.

    Literals nested in one of these are picked up when its body is built.
    """
    found = []
    stack = [n for n in reversed(nodes) if n is not None]
    while stack:
        current = stack.pop()
        if current.type == "func_literal":
            body = current.child_by_field_name("body")
            if body is not None:
                found.append(
                    ControlFlowNode(kind=BLOCK, text="func literal", line=_line(current), body=_statements(body))
                )
            continue
        stack.extend(reversed(current.named_children))
    return tuple(found)


def _statement(node: Any) -> Optional[ControlFlowNode]:
    kind = node.type

    if kind == "block":
        return _block(node)

    if kind == "if_statement":
        return _if_statement(node)

    if kind == "for_statement":
        body = node.child_by_field_name("body")
        header = [child for child in node.named_children if body is None or _key(child) != _key(body)]
        header_calls = tuple(call for child in header for call in _calls(child))
        return ControlFlowNode(
            kind=LOOP,
            text=_first_line(node).rstrip("{").strip(),
            line=_line(node),
            body=_block(body).body if body is not None else (),
            calls=header_calls,
            closures=_closures(*header),
        )

    if kind == "expression_switch_statement":
        return _expression_switch(node)

    if kind == "type_switch_statement":
        return _type_switch(node)

    if kind == "select_statement":
        arms = []
        for case in node.named_children:
            if case.type not in ("communication_case", "default_case"):
                continue
            skip = _field_keys(case, "communication")
            arms.append(ControlFlowNode(kind=BLOCK, line=_line(case), body=_statements(case, skip)))
        return ControlFlowNode(kind=BLOCK, text="select", line=_line(node), body=tuple(arms))

    if kind == "return_statement":
        values: list[Expr] = []
        for child in node.named_children:
            if child.type == "expression_list":
                values.extend(_expr(v) for v in child.named_children)
            elif child.type != "comment":
                values.append(_expr(child))
        return ControlFlowNode(
            kind=RETURN,
            text=node_text(node),
            line=_line(node),
            values=tuple(values),
            calls=tuple(_calls(node)),
            closures=_closures(node),
        )

    if kind == "labeled_statement":
        inner = [c for c in node.named_children if c.type not in ("label_name", "comment")]
        return _statement(inner[-1]) if inner else None

    return ControlFlowNode(
        kind=STATEMENT,
        text=_first_line(node),
        line=_line(node),
        calls=tuple(_calls(node)),
        closures=_closures(node),
    )


def _if_statement(node: Any) -> ControlFlowNode:
    condition_node = node.child_by_field_name("condition")
    condition = _expr(condition_node) if condition_node is not None else None
    calls = list(_calls(condition_node)) if condition_node is not None else []
    initializer = node.child_by_field_name("initializer")
    if initializer is not None:
        calls = list(_calls(initializer)) + calls

    consequence = node.child_by_field_name("consequence")
    alternative = node.child_by_field_name("alternative")
    if alternative is None:
        orelse: tuple[ControlFlowNode, ...] = ()
    elif alternative.type == "if_statement":
        orelse = (_if_statement(alternative),)
    else:
        orelse = _block(alternative).body

    return ControlFlowNode(
        kind=IF,
        text=f"if {node_text(condition_node)}",
        line=_line(node),
        body=_block(consequence).body if consequence is not None else (),
        orelse=orelse,
        condition=condition,
        calls=tuple(calls),
        closures=_closures(initializer, condition_node),
    )


def _expression_switch(node: Any) -> ControlFlowNode:
    tag_node = node.child_by_field_name("value")
    tag = _expr(tag_node) if tag_node is not None else None
    header_calls = list(_calls(tag_node)) if tag_node is not None else []
    initializer = node.child_by_field_name("initializer")
    if initializer is not None:
        header_calls = list(_calls(initializer)) + header_calls

    cases = []
    for case in node.named_children:
        if case.type == "default_case":
            cases.append(
                ControlFlowNode(
                    kind=CASE, text="default", line=_line(case), body=_statements(case), is_default=True
                )
            )
        elif case.type == "expression_case":
            value_node = case.child_by_field_name("value")
            values = tuple(_expr(v) for v in value_node.named_children) if value_node is not None else ()
            if tag is not None:
                clauses = [
                    Expr(BINARY, f"{tag.text} == {v.text}", operator="==", operands=(tag, v)) for v in values
                ]
            else:
                clauses = list(values)
            cases.append(
                ControlFlowNode(
                    kind=CASE,
                    text=f"case {node_text(value_node)}",
                    line=_line(case),
                    body=_statements(case, _field_keys(case, "value")),
                    condition=_join(clauses, "||"),
                    values=values,
                )
            )

    return ControlFlowNode(
        kind=SWITCH,
        text=_first_line(node).rstrip("{").strip(),
        line=_line(node),
        body=tuple(cases),
        condition=tag,
        calls=tuple(header_calls),
        closures=_closures(initializer, tag_node),
    )


def _type_switch(node: Any) -> ControlFlowNode:
    cases = []
    for case in node.named_children:
        if case.type == "default_case":
            cases.append(
                ControlFlowNode(
                    kind=CASE, text="default", line=_line(case), body=_statements(case), is_default=True
                )
            )
        elif case.type == "type_case":
            types = case.children_by_field_name("type")
            cases.append(
                ControlFlowNode(
                    kind=CASE,
                    text="case " + ", ".join(node_text(t) for t in types),
                    line=_line(case),
                    body=_statements(case, frozenset(_key(t) for t in types)),
                )
            )
    value_node = node.child_by_field_name("value")
    return ControlFlowNode(
        kind=SWITCH,
        text=_first_line(node).rstrip("{").strip(),
        line=_line(node),
        body=tuple(cases),
        calls=tuple(_calls(value_node)) if value_node is not None else (),
        closures=_closures(value_node),
    )


def _field_keys(node: Any, field_name: str) -> frozenset:
    return frozenset(_key(n) for n in node.children_by_field_name(field_name))


def _join(clauses: list[Expr], operator: str) -> Optional[Expr]:
    if not clauses:
        return None
    result = clauses[0]
    for clause in clauses[1:]:
        result = Expr(
            BINARY, f"{result.text} {operator} {clause.text}", operator=operator, operands=(result, clause)
        )
    return result


# ── expressions ────────────────────────────────────────────────────


def _calls(node: Any) -> Iterator[Call]:
    if node is None:
        return
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "call_expression":
            yield _call(current)
        if current.type == "func_literal":
            continue
        stack.extend(reversed(current.named_children))


def _call(node: Any) -> Call:
    arguments = node.child_by_field_name("arguments")
    args = tuple(_expr(a) for a in arguments.named_children) if arguments is not None else ()
    return Call(callee=node_text(node.child_by_field_name("function")), line=_line(node), arguments=args)


def _expr(node: Any) -> Expr:
    kind = node.type
    text = node_text(node)

    if kind == "parenthesized_expression":
        inner = [c for c in node.named_children if c.type != "comment"]
        return _expr(inner[0]) if inner else Expr(OTHER, text)

    if kind == "binary_expression":
        operator = node.child_by_field_name("operator")
        return Expr(
            BINARY,
            text,
            operator=operator.type if operator is not None else "",
            operands=(_expr(node.child_by_field_name("left")), _expr(node.child_by_field_name("right"))),
        )

    if kind == "unary_expression":
        operator = node.child_by_field_name("operator")
        return Expr(
            UNARY,
            text,
            operator=operator.type if operator is not None else "",
            operands=(_expr(node.child_by_field_name("operand")),),
        )

    if kind in ("identifier", "field_identifier", "package_identifier", "type_identifier"):
        return Expr(IDENTIFIER, text)

    if kind == "nil":
        return Expr(NIL, text)

    if kind in ("true", "false"):
        return Expr(LITERAL, text, value=text, literal_type="bool")

    if kind == "int_literal":
        return Expr(LITERAL, text, value=text.replace("_", ""), literal_type="int")

    if kind == "float_literal":
        return Expr(LITERAL, text, value=text.replace("_", ""), literal_type="float")

    if kind == "rune_literal":
        return Expr(LITERAL, text, value=text, literal_type="rune")

    if kind == "interpreted_string_literal":
        return Expr(LITERAL, text, value=text[1:-1], literal_type="string")

    if kind == "raw_string_literal":
        return Expr(LITERAL, text, value=_go_escape(text[1:-1]), literal_type="string")

    if kind == "call_expression":
        call = _call(node)
        return Expr(CALL, text, operands=call.arguments, callee=call.callee)

    if kind == "selector_expression":
        return Expr(SELECTOR, text)

    return Expr(OTHER, text)
