"""Tests for selection/selector.py - greedy, gap-driven selection."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from covtrim.coverage.blockset import BlockSet
from covtrim.coverage.funcmap import FunctionBounds, FunctionMap
from covtrim.selection.models import TestIdentity
from covtrim.selection.selector import (
    BlockSetModel,
    GreedySelector,
    PercentMapModel,
    compute_targets,
)


def T(name: str, package: str = "example.com/shop") -> TestIdentity:
    return TestIdentity(package=package, name=name)


def _select(
    coverage: dict[TestIdentity, dict[str, float]],
    *,
    baseline: list[TestIdentity] | None = None,
    targets: set[str] | None = None,
    threshold: float = 80.0,
    **kwargs: object,
):
    baseline = baseline or []
    non_baseline = [t for t in coverage if t not in baseline]
    if targets is None:
        model = PercentMapModel()
        total = model.empty()
        for c in coverage.values():
            total = model.merge(total, c)
        targets = compute_targets(total, threshold)
    selector = GreedySelector(PercentMapModel(), threshold=threshold, **kwargs)  # type: ignore[arg-type]
    return selector.select(coverage, baseline, non_baseline, targets)


# =============================================================================
# Concrete scenarios
# =============================================================================


class TestScenarios:
    """Small end-to-end selections with known answers."""

    def test_identical_tests_keep_first(self) -> None:
        a, b = T("TestA"), T("TestB")
        result = _select({a: {"f1": 100}, b: {"f1": 100}}, targets={"f1"})
        assert result.kept_tests == [a.qualified_name]
        assert result.redundant_tests == [b.qualified_name]

    def test_big_test_dominates_small(self) -> None:
        big, small = T("TestBig"), T("TestSmall")
        result = _select({big: {"f1": 100, "f2": 100, "f3": 100}, small: {"f1": 100}})
        assert result.kept_tests == [big.qualified_name]
        assert result.redundant_tests == [small.qualified_name]

    def test_partial_alone_never_satisfies_gap(self) -> None:
        partial, full = T("TestPartial"), T("TestFull")
        result = _select({partial: {"f1": 50}, full: {"f1": 100}})
        assert full.qualified_name in result.kept_tests
        assert result.unreachable == {}

        alone = _select({partial: {"f1": 50}}, targets={"f1"})
        assert alone.unreachable == {"f1": 50}

    def test_empty_input(self) -> None:
        result = _select({}, targets=set())
        assert result.kept_tests == []
        assert result.redundant_tests == []
        assert result.unreachable == {}


# =============================================================================
# Properties
# =============================================================================


class TestSelectionProperties:
    """Invariants of the greedy selection."""

    def test_baseline_with_distinct_coverage_is_kept(self) -> None:
        base, unit = T("TestE2E", "example.com/shop/e2e"), T("TestUnit")
        result = _select(
            {unit: {"f1": 100, "f2": 100}, base: {"f3": 100}},
            baseline=[base],
        )
        assert base.qualified_name in result.kept_tests
        assert result.kept[0].is_baseline

    def test_baseline_is_preferred_over_better_unit(self) -> None:
        base, unit = T("TestE2E", "example.com/shop/e2e"), T("TestUnit")
        result = _select(
            {unit: {"f1": 100, "f2": 100}, base: {"f1": 100}},
            baseline=[base],
        )
        assert result.kept_tests == [base.qualified_name, unit.qualified_name]

    def test_full_redundancy_keeps_exactly_one(self) -> None:
        a, b = T("TestA"), T("TestB")
        cov = {"f1": 90.0, "f2": 85.0}
        result = _select({a: dict(cov), b: dict(cov)})
        assert len(result.kept) == 1
        assert len(result.redundant) == 1

    def test_unique_contributions_are_kept(self) -> None:
        a, b = T("TestA"), T("TestB")
        result = _select({a: {"f1": 100}, b: {"f2": 100}})
        assert sorted(result.kept_tests) == sorted([a.qualified_name, b.qualified_name])
        assert result.redundant == []

    def test_dominated_test_is_not_kept(self) -> None:
        small, big = T("TestSmall"), T("TestBig")
        result = _select({small: {"f1": 100}, big: {"f1": 100, "f2": 100}})
        assert result.kept_tests == [big.qualified_name]
        assert small in result.redundant

    def test_partial_coverage_completed_later(self) -> None:
        a, b = T("TestA"), T("TestB")
        model = BlockSetModel(FunctionMap(files={"m/a.go": [FunctionBounds("F", 1, 20)]}))
        cov = {
            a: BlockSet.load_from_record("mode: set\nm/a.go:2.1,3.2 1 1\nm/a.go:4.1,5.2 1 0\n"),
            b: BlockSet.load_from_record("mode: set\nm/a.go:2.1,3.2 1 0\nm/a.go:4.1,5.2 1 1\n"),
        }
        selector = GreedySelector(model, threshold=100)
        result = selector.select(cov, [], [a, b], {"m/a.go:F"})
        assert result.kept_tests == [a.qualified_name, b.qualified_name]
        assert result.unreachable == {}

    def test_failed_tests_are_neither_kept_nor_redundant(self) -> None:
        a, failed = T("TestA"), T("TestFailed")
        selector = GreedySelector(PercentMapModel(), threshold=80)
        result = selector.select({a: {"f1": 100}}, [], [a, failed], {"f1"})
        assert failed.qualified_name not in result.kept_tests
        assert failed.qualified_name not in result.redundant_tests


class TestThresholdBoundary:
    """Reaching the threshold is inclusive."""

    def test_exact_threshold_closes_gap(self) -> None:
        a, b = T("TestA"), T("TestB")
        result = _select({a: {"f1": 80.0}, b: {"f1": 100.0}}, targets={"f1"})
        assert result.kept_tests == [a.qualified_name]

    def test_just_below_threshold_keeps_gap_open(self) -> None:
        a, b = T("TestA"), T("TestB")
        result = _select({a: {"f1": 79.999}, b: {"f1": 100.0}}, targets={"f1"})
        assert result.kept_tests == [a.qualified_name, b.qualified_name]

    def test_compute_targets_is_inclusive(self) -> None:
        assert compute_targets({"a": 80.0, "b": 79.9, "c": 100.0}, 80) == {"a", "c"}

    def test_zero_threshold_targets_start_closed(self) -> None:
        a, b = T("TestA"), T("TestB")
        result = _select({a: {"f1": 0.0}, b: {"f1": 0.0}}, threshold=0.0)
        assert result.kept == []
        assert result.unreachable == {}
        assert result.redundant_tests == [a.qualified_name, b.qualified_name]


class TestUnreachable:
    """Targets no candidate can improve."""

    def test_stops_and_reports(self) -> None:
        a = T("TestA")
        result = _select({a: {"f1": 50}}, targets={"f1", "f2"})
        assert result.kept_tests == [a.qualified_name]
        assert result.unreachable == {"f1": 50, "f2": 0.0}

    def test_warning_carries_error_code(self) -> None:
        with capture_logs() as logs:
            _select({T("TestA"): {"f1": 50}}, targets={"f1"})
        warning = next(e for e in logs if e["event"] == "targets_unreachable")
        assert warning["code"] == "UNREACHABLE_TARGET"
        assert warning["log_level"] == "warning"


class TestConfiguration:
    """Selector options."""

    def test_include_all_baseline_keeps_useless_baseline(self) -> None:
        base, unit = T("TestE2E", "example.com/shop/e2e"), T("TestUnit")
        result = _select(
            {base: {"f9": 10}, unit: {"f1": 100}},
            baseline=[base],
            targets={"f1"},
            include_all_baseline=True,
        )
        assert result.kept_tests == [base.qualified_name, unit.qualified_name]
        assert result.kept[0].gaps_filled == 0

    def test_default_policy_trims_useless_baseline(self) -> None:
        base, unit = T("TestE2E", "example.com/shop/e2e"), T("TestUnit")
        result = _select(
            {base: {"f9": 10}, unit: {"f1": 100}},
            baseline=[base],
            targets={"f1"},
        )
        assert result.kept_tests == [unit.qualified_name]
        assert result.redundant_baseline == [base]

    def test_thread_fan_out_matches_serial(self) -> None:
        tests = [T(f"Test{i:02d}") for i in range(12)]
        coverage = {t: {f"f{i % 5}": 100.0, f"g{i % 3}": 90.0} for i, t in enumerate(tests)}
        serial = _select(coverage)
        threaded = _select(coverage, max_workers=4)
        assert threaded.kept_tests == serial.kept_tests
        assert threaded.redundant_tests == serial.redundant_tests

    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValueError):
            GreedySelector(PercentMapModel(), threshold=80, max_workers=0)


class TestResultPartition:
    """Redundant tests split into baseline and non-baseline."""

    def test_sorted_by_package_then_name(self) -> None:
        keep = T("TestKeep", "p/a")
        z, a2, b1 = T("TestZ", "p/a"), T("TestA", "p/b"), T("TestB", "p/a")
        result = _select(
            {keep: {"f1": 100}, z: {"f1": 100}, a2: {"f1": 100}, b1: {"f1": 100}},
            targets={"f1"},
        )
        assert result.redundant_non_baseline == [b1, z, a2]
        # Discovery order is kept in the flat list
        assert result.redundant == [z, a2, b1]


# =============================================================================
# Block-level model
# =============================================================================


class TestBlockSetModel:
    """Tests for BlockSetModel."""

    @pytest.fixture
    def model(self) -> BlockSetModel:
        return BlockSetModel(
            FunctionMap(
                files={"m/a.go": [FunctionBounds("F", 1, 10), FunctionBounds("G", 12, 20)]}
            )
        )

    def test_merge_is_non_mutating(self, model: BlockSetModel) -> None:
        state = model.empty()
        cov = BlockSet.load_from_record("mode: set\nm/a.go:2.1,3.2 2 1\n")
        merged = model.merge(state, cov)
        assert model.percentages(state) == {}
        assert model.percentages(merged) == {"m/a.go:F": 100.0}

    def test_merged_percentages_matches_merge(self, model: BlockSetModel) -> None:
        first = BlockSet.load_from_record(
            "mode: set\nm/a.go:2.1,3.2 2 1\nm/a.go:4.1,5.2 2 0\nm/a.go:13.1,14.2 1 0\n"
        )
        second = BlockSet.load_from_record(
            "mode: set\nm/a.go:4.1,5.2 2 1\nm/a.go:13.1,14.2 1 0\nm/a.go:15.1,16.2 3 1\n"
        )
        state = model.merge(model.empty(), first)
        expected = model.percentages(model.merge(state, second))
        assert model.merged_percentages(state, second, ["m/a.go:F", "m/a.go:G"]) == expected
        assert expected == {"m/a.go:F": 100.0, "m/a.go:G": 75.0}

    def test_selection_over_blocks(self, model: BlockSetModel) -> None:
        a, b, c = T("TestA"), T("TestB"), T("TestC")
        cov = {
            a: BlockSet.load_from_record("mode: set\nm/a.go:2.1,3.2 2 1\n"),
            b: BlockSet.load_from_record("mode: set\nm/a.go:2.1,3.2 2 1\nm/a.go:13.1,14.2 1 1\n"),
            c: BlockSet.load_from_record("mode: set\nm/a.go:13.1,14.2 1 1\n"),
        }
        total = model.empty()
        for blocks in cov.values():
            total = model.merge(total, blocks)
        targets = compute_targets(model.percentages(total), 80)

        result = GreedySelector(model, threshold=80).select(cov, [], [a, b, c], targets)
        assert result.kept_tests == [b.qualified_name]
        assert result.redundant_tests == [a.qualified_name, c.qualified_name]
