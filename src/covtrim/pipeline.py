"""End-to-end redundancy analysis.

Stages, in order:

1. Resolve baseline specs into a BaselineSet
2. List candidate tests and split them into baseline / non-baseline
3. Detect parallel-safe tests
4. Collect coverage for every test in isolation
5. Build the function map and compute target functions
6. Greedy selection
7. Independent validation of the kept set

Failures of a stage are wrapped in PipelineError naming the stage.
Cancellation and "no usable coverage" propagate unchanged.
"""

from __future__ import annotations

import asyncio
import tempfile
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path

import structlog

from covtrim.config.models import CovtrimConfig
from covtrim.core.errors import (
    CovtrimError,
    NoUsableCoverageError,
    OperationCancelledError,
    PipelineError,
)
from covtrim.core.progress import pluralize, status, task
from covtrim.coverage.blockset import FunctionLocator
from covtrim.coverage.funcmap import build_function_map
from covtrim.discovery import GoToolchain, detect_parallel_tests, resolve_baseline
from covtrim.execution.orchestrator import CoverageOrchestrator
from covtrim.execution.runner import GoTestRunner, TestRunner
from covtrim.selection.models import AnalysisReport, TestIdentity
from covtrim.selection.selector import BlockSetModel, GreedySelector, compute_targets
from covtrim.selection.validator import validate_selection

log = structlog.get_logger()


def _check_cancelled(cancel_event: asyncio.Event | None, stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        log.warning("analysis_cancelled", stage=stage)
        raise OperationCancelledError.during(stage)


@contextmanager
def _stage(name: str) -> Iterator[None]:
    try:
        yield
    except (NoUsableCoverageError, OperationCancelledError, PipelineError):
        raise
    except (CovtrimError, OSError, ValueError) as e:
        raise PipelineError.stage_failed(name, e) from e


async def find_redundant_tests(
    config: CovtrimConfig,
    *,
    toolchain: GoToolchain | None = None,
    runner: TestRunner | None = None,
    function_map: FunctionLocator | None = None,
    cancel_event: asyncio.Event | None = None,
    show_progress: bool = True,
) -> AnalysisReport:
    """Run the full analysis and return the report.

    Raises:
        PipelineError: A stage failed.
        NoUsableCoverageError: Every test run failed.
        OperationCancelledError: cancel_event fired or the task was cancelled.
    """
    rc = config.redundancy
    toolchain = toolchain or GoToolchain()
    runner = runner or GoTestRunner(
        rc.coverage_packages,
        timeout_sec=config.execution.timeout_sec,
        cwd=toolchain.cwd,
    )

    _check_cancelled(cancel_event, "baseline resolution")
    with _stage("baseline resolution"), task("Identifying baseline tests"):
        baseline_set = await resolve_baseline(rc.baseline_tests, toolchain)

    _check_cancelled(cancel_event, "test discovery")
    with _stage("test discovery"), task("Listing tests"):
        all_tests = await toolchain.list_tests(rc.package_to_analyze)
        parallel_safe = await detect_parallel_tests(all_tests, toolchain)

    baseline = [t for t in all_tests if baseline_set.is_baseline(t)]
    non_baseline = [t for t in all_tests if not baseline_set.is_baseline(t)]
    status(
        f"Found {pluralize(len(baseline), 'baseline test')}, "
        f"{pluralize(len(non_baseline), 'non-baseline test')} "
        f"({len(all_tests)} total, {len(parallel_safe)} parallel-safe)",
        indent=2,
    )

    report = AnalysisReport(
        threshold=rc.coverage_threshold,
        total_tests=len(all_tests),
        baseline_count=len(baseline),
    )
    if not all_tests:
        status("No tests found", style="warning")
        return report

    _check_cancelled(cancel_event, "coverage collection")
    with ExitStack() as stack:
        artifact_dir = _artifact_dir(config, stack)
        orchestrator = CoverageOrchestrator(
            runner,
            artifact_dir=artifact_dir,
            max_workers=config.execution.max_workers,
            excluded_suffixes=config.coverage.excluded_suffixes,
            show_progress=show_progress,
        )
        # Baseline tests first so discovery order matches selection preference
        ordered: list[TestIdentity] = [*baseline, *non_baseline]
        with _stage("coverage collection"), task(f"Running {pluralize(len(ordered), 'test')}"):
            collected = await orchestrator.collect(
                ordered, parallel_safe, cancel_event=cancel_event
            )

    report.failures = collected.failures
    if collected.failures:
        report.warnings.append(
            f"{pluralize(len(collected.failures), 'test')} failed to run and were excluded"
        )

    _check_cancelled(cancel_event, "target computation")
    with _stage("target computation"), task("Computing target functions"):
        if function_map is None:
            module_root = await toolchain.module_root()
            function_map = await asyncio.to_thread(build_function_map, module_root)
        model = BlockSetModel(function_map)
        total = model.empty()
        for coverage in collected.coverage.values():
            total = model.merge(total, coverage)
        targets = compute_targets(model.percentages(total), rc.coverage_threshold)
    report.target_functions = sorted(targets)
    status(
        f"{pluralize(len(targets), 'function')} at or above {rc.coverage_threshold:g}%",
        indent=2,
    )

    _check_cancelled(cancel_event, "selection")
    selector = GreedySelector(
        model,
        threshold=rc.coverage_threshold,
        max_workers=config.selection.eval_workers,
        include_all_baseline=config.selection.include_all_baseline,
    )
    with _stage("selection"), task("Selecting tests"):
        result = await asyncio.to_thread(
            selector.select, collected.coverage, baseline, non_baseline, targets
        )

    with _stage("validation"), task("Validating selection"):
        result.shortfalls = validate_selection(
            model, collected.coverage, result.kept, targets, rc.coverage_threshold
        )

    if result.unreachable:
        report.warnings.append(
            f"{pluralize(len(result.unreachable), 'target function')} could not be "
            "brought back to threshold by any remaining test"
        )
    for s in result.shortfalls:
        report.warnings.append(
            f"{s.function} at {s.percent:.1f}% (below threshold by {s.deficit:.1f}%)"
        )

    report.selection = result
    log.info(
        "analysis_done",
        kept=report.kept_count,
        redundant=report.redundant_count,
        failed=len(report.failures),
        targets=len(targets),
    )
    return report


def _artifact_dir(config: CovtrimConfig, stack: ExitStack) -> Path:
    """Per-test profile directory; temporary unless artifacts are kept."""
    ec = config.execution
    if ec.artifact_dir:
        return Path(ec.artifact_dir).expanduser()
    if ec.keep_artifacts:
        path = Path(tempfile.mkdtemp(prefix="covtrim-"))
        status(f"Keeping coverage profiles in {path}", indent=2)
        return path
    return Path(stack.enter_context(tempfile.TemporaryDirectory(prefix="covtrim-")))
