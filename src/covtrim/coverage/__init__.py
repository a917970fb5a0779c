"""Go coverage data: profiles, block aggregates and function maps.

Usage:
    from covtrim.coverage import BlockSet, build_function_map, read_profile

    # Load one test's profile
    blocks = BlockSet.from_profile(read_profile(Path("TestFoo.out")))

    # Union with another run
    blocks.merge(other)

    # Per-function percent
    funcs = build_function_map(Path("."))
    percents = blocks.function_coverage(funcs)
"""

from covtrim.coverage.blockset import BlockInfo, BlockSet, FunctionLocator, FunctionStats
from covtrim.coverage.funcmap import (
    FunctionBounds,
    FunctionMap,
    build_function_map,
    extract_module_path,
    parse_function_coverage,
)
from covtrim.coverage.models import BlockKey, CoverageBlock, CoverageProfile
from covtrim.coverage.profile import (
    DEFAULT_EXCLUDED_SUFFIXES,
    format_block,
    format_profile,
    merge_profiles,
    parse_block,
    parse_block_id,
    parse_profile,
    read_profile,
    write_profile,
)

__all__ = [
    # Models
    "BlockKey",
    "CoverageBlock",
    "CoverageProfile",
    # Profiles
    "DEFAULT_EXCLUDED_SUFFIXES",
    "format_block",
    "format_profile",
    "merge_profiles",
    "parse_block",
    "parse_block_id",
    "parse_profile",
    "read_profile",
    "write_profile",
    # Aggregates
    "BlockInfo",
    "BlockSet",
    "FunctionLocator",
    "FunctionStats",
    # Function map
    "FunctionBounds",
    "FunctionMap",
    "build_function_map",
    "extract_module_path",
    "parse_function_coverage",
]
