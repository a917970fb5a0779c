"""Parallel-safety detection for Go tests.

A test is treated as parallel-safe when its body calls ``<x>.Parallel()``.
Such tests already declare that they tolerate running alongside others, so
their coverage runs may share the machine.
"""

from __future__ import annotations

import tree_sitter

from covtrim.analysis.gosource import iter_functions, parse_go, walk


def _is_parallel_call(node: tree_sitter.Node) -> bool:
    if node.type != "call_expression":
        return False
    callee = node.child_by_field_name("function")
    if callee is None or callee.type != "selector_expression":
        return False
    field = callee.child_by_field_name("field")
    return field is not None and field.text == b"Parallel"


def has_parallel_call(body: tree_sitter.Node | None) -> bool:
    """True if any call inside body is a selector call to Parallel()."""
    if body is None:
        return False
    return any(_is_parallel_call(n) for n in walk(body))


def parallel_test_names(source: bytes | str) -> set[str]:
    """Names of Test* functions in a _test.go source that call Parallel()."""
    tree = parse_go(source)
    return {
        fn.name
        for fn in iter_functions(tree)
        if fn.node.type == "function_declaration"
        and fn.name.startswith("Test")
        and has_parallel_call(fn.node.child_by_field_name("body"))
    }


def is_parallel_safe(source: bytes | str, test_name: str) -> bool:
    """Pure check: does test_name in this source declare itself parallel?"""
    return test_name in parallel_test_names(source)
