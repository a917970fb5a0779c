"""Static analysis of Go sources (tree-sitter)."""

from covtrim.analysis.gosource import GoFunction, iter_functions, parse_go, receiver_type_name
from covtrim.analysis.parallel import has_parallel_call, is_parallel_safe, parallel_test_names

__all__ = [
    "GoFunction",
    "has_parallel_call",
    "is_parallel_safe",
    "iter_functions",
    "parallel_test_names",
    "parse_go",
    "receiver_type_name",
]
