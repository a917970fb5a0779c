"""Greedy, gap-driven test selection.

Selection works on target functions: functions that reach the threshold
when every candidate test's coverage is merged. Starting from empty
coverage, each iteration scores every remaining candidate by how many
open gaps its coverage would improve, commits the best one, and closes
the gaps that now reach the threshold. Baseline candidates are scored
first; non-baseline candidates are only considered when no baseline test
improves anything.

How coverage is represented is left to a CoverageModel, so the same loop
drives block-level data from real runs and plain per-function percent
maps.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

import structlog

from covtrim.core.errors import ErrorCode
from covtrim.coverage.blockset import BlockSet, FunctionLocator, FunctionStats
from covtrim.coverage.models import BlockKey
from covtrim.selection.models import KeptTest, SelectionResult, TestIdentity

log = structlog.get_logger()

S = TypeVar("S")
C = TypeVar("C")
C_contra = TypeVar("C_contra", contravariant=True)


class CoverageModel(Protocol[S, C_contra]):
    """How per-test coverage is accumulated and measured.

    States are treated as immutable: merge returns a new state.
    """

    def empty(self) -> S:
        """State with nothing covered."""
        ...

    def merge(self, state: S, coverage: C_contra) -> S:
        """Union of state and one test's coverage. Inputs are not mutated."""
        ...

    def percentages(self, state: S) -> dict[str, float]:
        """Percent per function; functions without statements are absent."""
        ...

    def merged_percentages(
        self, state: S, coverage: C_contra, functions: Iterable[str]
    ) -> dict[str, float]:
        """percentages(merge(state, coverage)) restricted to functions.

        Functions with no data may be absent.
        """
        ...


# =============================================================================
# Block-level model
# =============================================================================


@dataclass(frozen=True)
class BlockState:
    """Running block aggregate plus its per-function statement counts."""

    blocks: BlockSet
    stats: Mapping[str, FunctionStats]


class BlockSetModel:
    """CoverageModel over per-test BlockSets and a function map."""

    def __init__(self, locator: FunctionLocator) -> None:
        self._locator = locator
        self._functions: dict[BlockKey, str | None] = {}

    def _function_of(self, key: BlockKey) -> str | None:
        # Scoring threads may race here; they all store the same value
        try:
            return self._functions[key]
        except KeyError:
            func = self._locator.find_function(key.file, key.start_line)
            self._functions[key] = func
            return func

    def _deltas(self, state: BlockState, coverage: BlockSet) -> dict[str, FunctionStats]:
        """Per-function statement counts coverage would add to state."""
        deltas: dict[str, FunctionStats] = {}
        for key, info in coverage.blocks.items():
            existing = state.blocks.blocks.get(key)
            if existing is not None and (existing.covered or not info.covered):
                continue
            func = self._function_of(key)
            if func is None:
                continue
            delta = deltas.setdefault(func, FunctionStats())
            if existing is None:
                delta.total += info.statements
            if info.covered:
                delta.covered += info.statements
        return deltas

    def empty(self) -> BlockState:
        return BlockState(blocks=BlockSet(), stats={})

    def merge(self, state: BlockState, coverage: BlockSet) -> BlockState:
        stats = dict(state.stats)
        for func, delta in self._deltas(state, coverage).items():
            prev = stats.get(func, FunctionStats())
            stats[func] = FunctionStats(
                covered=prev.covered + delta.covered, total=prev.total + delta.total
            )
        return BlockState(blocks=state.blocks.merged(coverage), stats=stats)

    def percentages(self, state: BlockState) -> dict[str, float]:
        return {
            func: pct for func, s in state.stats.items() if (pct := s.percent) is not None
        }

    def merged_percentages(
        self, state: BlockState, coverage: BlockSet, functions: Iterable[str]
    ) -> dict[str, float]:
        deltas = self._deltas(state, coverage)
        result: dict[str, float] = {}
        for func in functions:
            prev = state.stats.get(func, FunctionStats())
            delta = deltas.get(func)
            merged = (
                FunctionStats(covered=prev.covered + delta.covered, total=prev.total + delta.total)
                if delta is not None
                else prev
            )
            pct = merged.percent
            if pct is not None:
                result[func] = pct
        return result


# =============================================================================
# Percent-map model
# =============================================================================


class PercentMapModel:
    """CoverageModel over ``{function: percent}`` maps.

    Merging takes the per-function maximum, which treats each map as an
    opaque measurement rather than a set of statements.
    """

    def empty(self) -> dict[str, float]:
        return {}

    def merge(self, state: Mapping[str, float], coverage: Mapping[str, float]) -> dict[str, float]:
        merged = dict(state)
        for func, pct in coverage.items():
            if pct > merged.get(func, -1.0):
                merged[func] = pct
        return merged

    def percentages(self, state: Mapping[str, float]) -> dict[str, float]:
        return dict(state)

    def merged_percentages(
        self, state: Mapping[str, float], coverage: Mapping[str, float], functions: Iterable[str]
    ) -> dict[str, float]:
        result: dict[str, float] = {}
        for func in functions:
            values = [m[func] for m in (state, coverage) if func in m]
            if values:
                result[func] = max(values)
        return result


# =============================================================================
# Selection
# =============================================================================


def compute_targets(percentages: Mapping[str, float], threshold: float) -> set[str]:
    """Functions at or above threshold. These must not regress."""
    return {func for func, pct in percentages.items() if pct >= threshold}


@dataclass
class _Candidate(Generic[C]):
    test: TestIdentity
    coverage: C
    is_baseline: bool


class GreedySelector(Generic[S, C]):
    """Selects an ordered, near-minimal set of tests that keeps every target covered.

    Args:
        model: Coverage representation.
        threshold: Percent (inclusive) a target must reach.
        max_workers: Threads used to score candidates. Scores are gathered
            in candidate order, so the choice never depends on scheduling.
        include_all_baseline: Commit every baseline test before filling gaps,
            even those that improve nothing.
    """

    def __init__(
        self,
        model: CoverageModel[S, C],
        *,
        threshold: float,
        max_workers: int = 1,
        include_all_baseline: bool = False,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.model = model
        self.threshold = threshold
        self.max_workers = max_workers
        self.include_all_baseline = include_all_baseline

    def _improvement(
        self,
        state: S,
        coverage: C,
        remaining: Sequence[str],
        current: Mapping[str, float],
    ) -> int:
        merged = self.model.merged_percentages(state, coverage, remaining)
        return sum(1 for func in remaining if merged.get(func, 0.0) > current.get(func, 0.0))

    def _best(
        self,
        candidates: Sequence[_Candidate[C]],
        state: S,
        remaining: Sequence[str],
        current: Mapping[str, float],
        executor: ThreadPoolExecutor | None,
    ) -> tuple[_Candidate[C] | None, int]:
        """Highest-scoring candidate; first in order wins ties. (None, 0) if none helps."""
        if not candidates:
            return None, 0

        def score(candidate: _Candidate[C]) -> int:
            return self._improvement(state, candidate.coverage, remaining, current)

        if executor is not None and len(candidates) > 1:
            scores = list(executor.map(score, candidates))
        else:
            scores = [score(c) for c in candidates]

        best: _Candidate[C] | None = None
        best_score = 0
        for candidate, s in zip(candidates, scores, strict=True):
            if s > best_score:
                best, best_score = candidate, s
        return best, best_score

    def select(
        self,
        coverage_by_test: Mapping[TestIdentity, C],
        baseline: Sequence[TestIdentity],
        non_baseline: Sequence[TestIdentity],
        targets: Iterable[str],
    ) -> SelectionResult:
        """Run greedy selection.

        Tests missing from coverage_by_test (failed runs) are neither kept
        nor redundant.
        """
        baseline_set = set(baseline)
        pool = [
            _Candidate(test=t, coverage=coverage_by_test[t], is_baseline=t in baseline_set)
            for t in dict.fromkeys([*baseline, *non_baseline])
            if t in coverage_by_test
        ]

        state = self.model.empty()
        current = self.model.percentages(state)
        remaining = sorted(f for f in set(targets) if current.get(f, 0.0) < self.threshold)
        kept: list[KeptTest] = []
        kept_ids: set[TestIdentity] = set()

        def commit(candidate: _Candidate[C], gaps_filled: int) -> None:
            nonlocal state, current, remaining
            state = self.model.merge(state, candidate.coverage)
            current = self.model.percentages(state)
            kept.append(KeptTest(candidate.test, candidate.is_baseline, gaps_filled))
            kept_ids.add(candidate.test)
            remaining = [f for f in remaining if current.get(f, 0.0) < self.threshold]
            log.debug(
                "test_kept",
                test=candidate.test.qualified_name,
                baseline=candidate.is_baseline,
                gaps_filled=gaps_filled,
                remaining=len(remaining),
            )

        if self.include_all_baseline:
            for candidate in pool:
                if candidate.is_baseline:
                    commit(candidate, self._improvement(state, candidate.coverage, remaining, current))

        executor = ThreadPoolExecutor(self.max_workers) if self.max_workers > 1 else None
        try:
            while remaining:
                open_baseline = [c for c in pool if c.is_baseline and c.test not in kept_ids]
                best, best_score = self._best(open_baseline, state, remaining, current, executor)
                if best is None:
                    open_other = [c for c in pool if not c.is_baseline and c.test not in kept_ids]
                    best, best_score = self._best(open_other, state, remaining, current, executor)
                if best is None:
                    break
                commit(best, best_score)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        unreachable = {f: current.get(f, 0.0) for f in remaining}
        if unreachable:
            log.warning(
                "targets_unreachable",
                code=ErrorCode.UNREACHABLE_TARGET.name,
                count=len(unreachable),
                functions=sorted(unreachable)[:20],
            )

        redundant = [c.test for c in pool if c.test not in kept_ids]
        ordered = {t: i for i, t in enumerate(coverage_by_test)}
        redundant.sort(key=lambda t: ordered[t])
        return SelectionResult(
            kept=kept,
            redundant=redundant,
            redundant_is_baseline={t: t in baseline_set for t in redundant},
            unreachable=unreachable,
        )
