"""Tree-sitter helpers for Go source files.

Only top-level declarations are inspected: Go has no nested named
functions, and function literals never appear in coverage function tables.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from functools import lru_cache

import tree_sitter
import tree_sitter_go

_FUNC_NODE_TYPES = ("function_declaration", "method_declaration")


@dataclass(frozen=True, slots=True)
class GoFunction:
    """A top-level function or method declaration."""

    name: str  # "Foo" or "(*T).Foo"
    start_line: int  # 1-based, line of the func keyword
    end_line: int  # 1-based, line of the closing brace
    node: tree_sitter.Node


@lru_cache(maxsize=1)
def _go_language() -> tree_sitter.Language:
    return tree_sitter.Language(tree_sitter_go.language())


def parse_go(source: bytes | str) -> tree_sitter.Tree:
    """Parse Go source. Syntax errors yield a tree with ERROR nodes, never raise."""
    if isinstance(source, str):
        source = source.encode()
    parser = tree_sitter.Parser(_go_language())
    return parser.parse(source)


def _text(node: tree_sitter.Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode(errors="replace")


def receiver_type_name(type_node: tree_sitter.Node | None) -> str:
    """Render a receiver type the way `go tool cover -func` names methods.

    ``T`` -> ``T``, ``*T`` -> ``*T``, ``T[K]`` -> ``T[K]``; receivers with
    several type parameters collapse to the bare type name.
    """
    if type_node is None:
        return "?"
    if type_node.type == "type_identifier":
        return _text(type_node)
    if type_node.type == "pointer_type":
        inner = type_node.named_children[0] if type_node.named_children else None
        return "*" + receiver_type_name(inner)
    if type_node.type == "parenthesized_type":
        inner = type_node.named_children[0] if type_node.named_children else None
        return receiver_type_name(inner)
    if type_node.type == "generic_type":
        base = receiver_type_name(type_node.child_by_field_name("type"))
        args = type_node.child_by_field_name("type_arguments")
        params = args.named_children if args is not None else []
        if len(params) == 1:
            return f"{base}[{_text(params[0])}]"
        return base
    return "?"


def _function_name(node: tree_sitter.Node) -> str:
    name = _text(node.child_by_field_name("name"))
    if node.type != "method_declaration":
        return name

    receiver = node.child_by_field_name("receiver")
    params = [c for c in receiver.named_children if c.type == "parameter_declaration"] if receiver else []
    if not params:
        return name
    recv_type = receiver_type_name(params[0].child_by_field_name("type"))
    return f"({recv_type}).{name}"


def iter_functions(tree: tree_sitter.Tree) -> Iterator[GoFunction]:
    """Yield top-level function and method declarations in source order."""
    for node in tree.root_node.children:
        if node.type not in _FUNC_NODE_TYPES:
            continue
        yield GoFunction(
            name=_function_name(node),
            start_line=node.start_point[0] + 1,
            end_line=node.end_point[0] + 1,
            node=node,
        )


def walk(node: tree_sitter.Node) -> Iterator[tree_sitter.Node]:
    """Depth-first pre-order traversal."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))
