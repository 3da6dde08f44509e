"""Tree-sitter parser wrapper for Go sources.

Usage:
    parser = TreeSitterParser()
    tree = parser.parse(code_bytes, path="pkg/calc.go")
    for node in tree.root_node.named_children:
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import tree_sitter
import tree_sitter_go

from ..exceptions import ParsingError

if TYPE_CHECKING:

    class Node:
        text: bytes | None
        type: str
        start_point: tuple[int, int]
        end_point: tuple[int, int]
        children: list[Node]
        named_children: list[Node]
        has_error: bool

    class Tree:
        root_node: Node


def node_text(node: Any) -> str:
    """Decoded source text of a node ("" for None)."""
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def find_error_line(node: Any) -> int | None:
    """1-indexed line of the first ERROR or MISSING node under ``node``."""
    if node.type == "ERROR" or node.is_missing:
        return node.start_point[0] + 1
    for child in node.children:
        if child.has_error or child.is_missing:
            line = find_error_line(child)
            if line is not None:
                return line
    return None


class TreeSitterParser:
    """Wrapper around tree-sitter with the Go grammar loaded.

    One parser instance is not safe to share across threads; the
    generator creates one per worker.
    """

    language_name = "go"

    def __init__(self) -> None:
        # tree-sitter >= 0.23 returns a PyCapsule; wrap in Language()
        self._language = tree_sitter.Language(tree_sitter_go.language())
        self._parser = tree_sitter.Parser(self._language)

    def parse(self, code: bytes, path: str = "<memory>") -> Tree:
        """Parse code and return the syntax tree.

        Raises:
            ParsingError: If the tree contains syntax errors
        """
        tree: Tree = self._parser.parse(code)
        if tree.root_node.has_error:
            line = find_error_line(tree.root_node)
            reason = f"syntax error near line {line}" if line else "syntax error"
            raise ParsingError(path, self.language_name, reason)
        return tree
