"""Tests for pipeline.py - end-to-end analysis with fake go tooling."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from covtrim.config.models import (
    BaselineTestSpec,
    CovtrimConfig,
    ExecutionConfig,
    RedundancyConfig,
)
from covtrim.core.errors import (
    DiscoveryError,
    NoUsableCoverageError,
    OperationCancelledError,
    PipelineError,
    TestRunFailure,
)
from covtrim.coverage.funcmap import FunctionBounds, FunctionMap
from covtrim.discovery import GoToolchain
from covtrim.execution.orchestrator import coverage_artifact_name
from covtrim.pipeline import find_redundant_tests
from covtrim.reporting import report_to_dict
from covtrim.selection.models import TestIdentity

SHOP = "example.com/shop"
E2E = "example.com/shop/e2e"
FILE = "example.com/shop/cart.go"

PROFILES = {
    "TestCheckout": f"mode: set\n{FILE}:23.1,24.2 2 1\n",
    "TestBig": f"mode: set\n{FILE}:2.1,3.2 3 1\n{FILE}:13.1,14.2 1 1\n",
    "TestSmall": f"mode: set\n{FILE}:2.1,3.2 3 1\n{FILE}:13.1,14.2 1 0\n",
}


class FakeToolchain(GoToolchain):
    """GoToolchain answering from a canned table."""

    def __init__(self, responses: dict[tuple[str, ...], str | Exception]) -> None:
        super().__init__()
        self.responses = responses

    async def output(self, *args: str) -> str:
        value = self.responses[args]
        if isinstance(value, Exception):
            raise value
        return value


class FakeRunner:
    async def run(self, test: TestIdentity, output_path: Path) -> str:
        if test.name not in PROFILES:
            raise TestRunFailure.for_test(test.qualified_name, "exit code 1")
        output_path.write_text(PROFILES[test.name])
        return PROFILES[test.name]


@pytest.fixture
def toolchain(tmp_path: Path) -> FakeToolchain:
    (tmp_path / "shop").mkdir()
    (tmp_path / "e2e").mkdir()
    return FakeToolchain(
        {
            ("list", "./e2e"): E2E,
            ("list", "./..."): f"{SHOP}\n{E2E}\n",
            ("test", "-list", ".", SHOP): "TestBig\nTestSmall\nTestFail\n",
            ("test", "-list", ".", E2E): "TestCheckout\n",
            ("list", "-f", "{{.Dir}}", SHOP): str(tmp_path / "shop"),
            ("list", "-f", "{{.Dir}}", E2E): str(tmp_path / "e2e"),
        }
    )


@pytest.fixture
def function_map() -> FunctionMap:
    return FunctionMap(
        files={
            FILE: [
                FunctionBounds("Total", 1, 10),
                FunctionBounds("(*Cart).Add", 12, 20),
                FunctionBounds("Checkout", 22, 30),
            ]
        }
    )


def _config(tmp_path: Path) -> CovtrimConfig:
    return CovtrimConfig(
        redundancy=RedundancyConfig(baseline_tests=[BaselineTestSpec(package="./e2e")]),
        execution=ExecutionConfig(artifact_dir=str(tmp_path / "artifacts")),
    )


class TestFindRedundantTests:
    """End-to-end runs of find_redundant_tests."""

    @pytest.mark.asyncio
    async def test_full_run(
        self, tmp_path: Path, toolchain: FakeToolchain, function_map: FunctionMap
    ) -> None:
        report = await find_redundant_tests(
            _config(tmp_path),
            toolchain=toolchain,
            runner=FakeRunner(),
            function_map=function_map,
            show_progress=False,
        )

        sel = report.selection
        assert sel.kept_tests == [f"{E2E}:TestCheckout", f"{SHOP}:TestBig"]
        assert sel.redundant_tests == [f"{SHOP}:TestSmall"]
        assert [f.test.name for f in report.failures] == ["TestFail"]
        assert report.total_tests == 4
        assert report.baseline_count == 1
        assert report.target_functions == sorted(
            [f"{FILE}:Total", f"{FILE}:(*Cart).Add", f"{FILE}:Checkout"]
        )
        assert sel.validated
        assert any("failed to run" in w for w in report.warnings)
        artifact = coverage_artifact_name(TestIdentity(SHOP, "TestBig"))
        assert (tmp_path / "artifacts" / artifact).exists()

    @pytest.mark.asyncio
    async def test_json_surface(
        self, tmp_path: Path, toolchain: FakeToolchain, function_map: FunctionMap
    ) -> None:
        report = await find_redundant_tests(
            _config(tmp_path),
            toolchain=toolchain,
            runner=FakeRunner(),
            function_map=function_map,
            show_progress=False,
        )
        data = report_to_dict(report)
        assert data["keptTests"] == [f"{E2E}:TestCheckout", f"{SHOP}:TestBig"]
        assert data["redundantTests"] == [f"{SHOP}:TestSmall"]
        assert data["redundantNonBaselineTests"] == [f"{SHOP}:TestSmall"]
        assert data["failedTests"] == [
            {"test": f"{SHOP}:TestFail", "reason": f"{SHOP}:TestFail: exit code 1"}
        ]
        assert data["validated"] is True

    @pytest.mark.asyncio
    async def test_discovery_failure_is_wrapped(
        self, tmp_path: Path, function_map: FunctionMap
    ) -> None:
        toolchain = FakeToolchain(
            {("list", "./..."): DiscoveryError.listing_failed("list ./...", "go.mod not found")}
        )
        config = CovtrimConfig(
            execution=ExecutionConfig(artifact_dir=str(tmp_path / "artifacts")),
        )
        with pytest.raises(PipelineError) as exc_info:
            await find_redundant_tests(
                config, toolchain=toolchain, runner=FakeRunner(), function_map=function_map
            )
        assert exc_info.value.details["stage"] == "test discovery"

    @pytest.mark.asyncio
    async def test_no_usable_coverage_propagates(
        self, tmp_path: Path, function_map: FunctionMap
    ) -> None:
        toolchain = FakeToolchain(
            {
                ("list", "./..."): SHOP,
                ("test", "-list", ".", SHOP): "TestFail\n",
                ("list", "-f", "{{.Dir}}", SHOP): str(tmp_path),
            }
        )
        config = CovtrimConfig(
            execution=ExecutionConfig(artifact_dir=str(tmp_path / "artifacts")),
        )
        with pytest.raises(NoUsableCoverageError):
            await find_redundant_tests(
                config,
                toolchain=toolchain,
                runner=FakeRunner(),
                function_map=function_map,
                show_progress=False,
            )

    @pytest.mark.asyncio
    async def test_no_tests(self, tmp_path: Path, function_map: FunctionMap) -> None:
        toolchain = FakeToolchain({("list", "./..."): ""})
        report = await find_redundant_tests(
            CovtrimConfig(), toolchain=toolchain, runner=FakeRunner(), function_map=function_map
        )
        assert report.total_tests == 0
        assert report.selection.kept == []
        assert report.selection.redundant == []


class TestCancellation:
    """A set cancel event stops the analysis between stages."""

    @pytest.mark.asyncio
    async def test_event_set_before_start(
        self, tmp_path: Path, toolchain: FakeToolchain, function_map: FunctionMap
    ) -> None:
        event = asyncio.Event()
        event.set()
        toolchain.responses.clear()

        with pytest.raises(OperationCancelledError) as exc_info:
            await find_redundant_tests(
                _config(tmp_path),
                toolchain=toolchain,
                runner=FakeRunner(),
                function_map=function_map,
                cancel_event=event,
                show_progress=False,
            )
        assert exc_info.value.details["stage"] == "baseline resolution"

    @pytest.mark.asyncio
    async def test_event_set_mid_run_skips_collection(
        self, tmp_path: Path, toolchain: FakeToolchain, function_map: FunctionMap
    ) -> None:
        event = asyncio.Event()
        listing = toolchain.output

        async def output(*args: str) -> str:
            if args[:2] == ("test", "-list"):
                event.set()
            return await listing(*args)

        toolchain.output = output  # type: ignore[method-assign]
        runner = FakeRunner()
        runner.run = AsyncMock(side_effect=runner.run)  # type: ignore[method-assign]

        with pytest.raises(OperationCancelledError) as exc_info:
            await find_redundant_tests(
                _config(tmp_path),
                toolchain=toolchain,
                runner=runner,
                function_map=function_map,
                cancel_event=event,
                show_progress=False,
            )
        assert exc_info.value.details["stage"] == "test discovery"
        runner.run.assert_not_called()
