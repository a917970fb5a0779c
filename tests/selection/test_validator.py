"""Tests for selection/validator.py and the selection result models."""

import pytest
from structlog.testing import capture_logs

from covtrim.selection.models import (
    BaselineSet,
    KeptTest,
    SelectionResult,
    Shortfall,
    TestIdentity,
)
from covtrim.selection.selector import GreedySelector, PercentMapModel
from covtrim.selection.validator import validate_selection

A = TestIdentity("example.com/shop", "TestA")
B = TestIdentity("example.com/shop", "TestB")


class TestValidateSelection:
    """Tests for validate_selection."""

    def test_passing_selection(self) -> None:
        cov = {A: {"f1": 100.0}, B: {"f2": 90.0}}
        kept = [KeptTest(A, False, 1), KeptTest(B, False, 1)]
        assert validate_selection(PercentMapModel(), cov, kept, {"f1", "f2"}, 80) == []

    def test_reports_shortfalls_sorted(self) -> None:
        cov = {A: {"f2": 50.0}, B: {"f1": 100.0}}
        shortfalls = validate_selection(PercentMapModel(), cov, [A], {"f1", "f2"}, 80)
        assert shortfalls == [
            Shortfall("f1", 0.0, 80),
            Shortfall("f2", 50.0, 80),
        ]
        assert shortfalls[1].deficit == 30.0

    def test_recomputes_from_scratch(self) -> None:
        cov = {A: {"f1": 100.0}, B: {"f1": 10.0}}
        # Only B is kept: the answer must not depend on any earlier state
        shortfalls = validate_selection(PercentMapModel(), cov, [B], {"f1"}, 80)
        assert [s.function for s in shortfalls] == ["f1"]

    def test_shortfall_warning_carries_error_code(self) -> None:
        with capture_logs() as logs:
            validate_selection(PercentMapModel(), {A: {"f1": 50.0}}, [A], {"f1"}, 80)
        warning = next(e for e in logs if e["event"] == "coverage_shortfall")
        assert warning["code"] == "VALIDATION_SHORTFALL"
        assert warning["deficit"] == 30.0

    def test_kept_test_without_coverage_is_skipped(self) -> None:
        missing = TestIdentity("example.com/shop", "TestGone")
        cov = {A: {"f1": 100.0}}
        assert validate_selection(PercentMapModel(), cov, [missing, A], {"f1"}, 80) == []

    def test_selector_output_always_validates(self) -> None:
        cov = {
            A: {"f1": 100.0, "f2": 40.0},
            B: {"f2": 100.0},
            TestIdentity("example.com/shop", "TestC"): {"f1": 85.0, "f3": 95.0},
        }
        targets = {"f1", "f2", "f3"}
        result = GreedySelector(PercentMapModel(), threshold=80).select(
            cov, [], list(cov), targets
        )
        assert validate_selection(PercentMapModel(), cov, result.kept, targets, 80) == []


class TestModels:
    """Tests for identity and baseline models."""

    def test_qualified_name(self) -> None:
        assert A.qualified_name == "example.com/shop:TestA"
        assert str(A) == "example.com/shop:TestA"

    def test_parse_round_trip(self) -> None:
        assert TestIdentity.parse(A.qualified_name) == A

    @pytest.mark.parametrize("name", ["TestA", ":TestA", "pkg:"])
    def test_parse_rejects_bad_names(self, name: str) -> None:
        with pytest.raises(ValueError):
            TestIdentity.parse(name)

    def test_identity_hash_uses_both_fields(self) -> None:
        assert len({A, TestIdentity("example.com/other", "TestA"), A}) == 2

    def test_baseline_exact_and_prefix(self) -> None:
        baseline = BaselineSet.of([A])
        baseline.add_pattern("example.com/e2e", "TestCheckout")

        assert baseline.is_baseline(A)
        assert not baseline.is_baseline(B)
        assert baseline.is_baseline(TestIdentity("example.com/e2e", "TestCheckoutFlow"))
        assert not baseline.is_baseline(TestIdentity("example.com/e2e", "TestLogin"))
        assert not baseline.is_baseline(TestIdentity("example.com/shop", "TestCheckoutFlow"))

    def test_empty_baseline_is_falsy(self) -> None:
        assert not BaselineSet()

    def test_kept_kind(self) -> None:
        assert KeptTest(A, True, 3).kind == "baseline"
        assert KeptTest(A, False, 3).kind == "unit"

    def test_result_validated(self) -> None:
        assert SelectionResult().validated
        assert not SelectionResult(shortfalls=[Shortfall("f", 1.0, 2.0)]).validated
