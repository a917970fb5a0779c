"""Independent check of a selection.

Coverage of the kept set is rebuilt from scratch rather than reusing the
selector's running aggregate, so a bug in incremental merging shows up
as a shortfall instead of a silently wrong report.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TypeVar

import structlog

from covtrim.core.errors import ErrorCode
from covtrim.selection.models import KeptTest, Shortfall, TestIdentity
from covtrim.selection.selector import CoverageModel

log = structlog.get_logger()

S = TypeVar("S")
C = TypeVar("C")


def validate_selection(
    model: CoverageModel[S, C],
    coverage_by_test: Mapping[TestIdentity, C],
    kept: Iterable[KeptTest | TestIdentity],
    targets: Iterable[str],
    threshold: float,
) -> list[Shortfall]:
    """Return every target the kept tests cover below threshold, sorted by function."""
    state = model.empty()
    for entry in kept:
        test = entry.test if isinstance(entry, KeptTest) else entry
        coverage = coverage_by_test.get(test)
        if coverage is None:
            log.warning("kept_test_without_coverage", test=test.qualified_name)
            continue
        state = model.merge(state, coverage)

    percentages = model.percentages(state)
    shortfalls = [
        Shortfall(function=func, percent=pct, threshold=threshold)
        for func in sorted(set(targets))
        if (pct := percentages.get(func, 0.0)) < threshold
    ]
    for s in shortfalls:
        log.warning(
            "coverage_shortfall",
            code=ErrorCode.VALIDATION_SHORTFALL.name,
            function=s.function,
            percent=round(s.percent, 2),
            deficit=round(s.deficit, 2),
        )
    return shortfalls
