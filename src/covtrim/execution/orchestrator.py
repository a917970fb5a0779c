"""Per-test coverage collection.

Every candidate test runs on its own so its profile reflects only that
test. Tests that do not call t.Parallel() run one at a time; the rest
share a semaphore-bounded pool. Workers hand back their outcome and a
single collector records it, so the result map has exactly one writer.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import re
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from covtrim.core.errors import (
    CoverageParseError,
    NoUsableCoverageError,
    OperationCancelledError,
    TestRunFailure,
)
from covtrim.core.progress import status
from covtrim.coverage.blockset import BlockSet
from covtrim.coverage.profile import DEFAULT_EXCLUDED_SUFFIXES
from covtrim.execution.runner import TestRunner
from covtrim.selection.models import RunFailure, TestIdentity

log = structlog.get_logger()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")

Outcome = BlockSet | RunFailure


def coverage_artifact_name(test: TestIdentity) -> str:
    """File name for a test's profile.

    Unsafe characters become '_'; a digest of the qualified name keeps names
    that sanitize alike apart.
    """
    digest = hashlib.sha1(test.qualified_name.encode()).hexdigest()[:8]
    return f"{_UNSAFE_CHARS.sub('_', test.qualified_name)}-{digest}.out"


@dataclass
class CollectionResult:
    """Per-test coverage in input order, plus the runs that failed."""

    coverage: dict[TestIdentity, BlockSet] = field(default_factory=dict)
    failures: list[RunFailure] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.coverage) + len(self.failures)


class CoverageOrchestrator:
    """Collects one BlockSet per test.

    Args:
        runner: Executes a single test and returns its profile text.
        artifact_dir: Where per-test profiles are written.
        max_workers: Concurrent parallel-safe runs. Default: CPU count.
        excluded_suffixes: Profile lines for these files are dropped.
        show_progress: Print a ``[i/n] test... OK`` line per finished run.
    """

    def __init__(
        self,
        runner: TestRunner,
        *,
        artifact_dir: Path,
        max_workers: int | None = None,
        excluded_suffixes: Sequence[str] = DEFAULT_EXCLUDED_SUFFIXES,
        show_progress: bool = True,
    ) -> None:
        self.runner = runner
        self.artifact_dir = artifact_dir
        self.max_workers = max_workers or os.cpu_count() or 1
        self.excluded_suffixes = tuple(excluded_suffixes)
        self.show_progress = show_progress

    async def _run_one(self, test: TestIdentity) -> tuple[TestIdentity, Outcome]:
        output_path = self.artifact_dir / coverage_artifact_name(test)
        try:
            text = await self.runner.run(test, output_path)
            blocks = BlockSet.load_from_record(text, excluded_suffixes=self.excluded_suffixes)
        except (TestRunFailure, CoverageParseError) as e:
            return test, RunFailure(test=test, reason=e.message)
        return test, blocks

    async def collect(
        self,
        tests: Sequence[TestIdentity],
        parallel_safe: Collection[TestIdentity] = (),
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> CollectionResult:
        """Run every test and gather its coverage.

        Raises:
            NoUsableCoverageError: If tests were given and none produced coverage.
            OperationCancelledError: If cancel_event fires or the task is cancelled.
        """
        if cancel_event is None:
            return await self._collect(tests, parallel_safe)

        body = asyncio.create_task(self._collect(tests, parallel_safe))
        waiter = asyncio.create_task(cancel_event.wait())
        try:
            await asyncio.wait({body, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._abort(body, waiter)
        if not body.done():
            await self._abort(body, waiter)
        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)
        return body.result()

    @staticmethod
    async def _abort(body: asyncio.Task[CollectionResult], waiter: asyncio.Task[bool]) -> None:
        waiter.cancel()
        body.cancel()
        await asyncio.gather(body, waiter, return_exceptions=True)
        raise OperationCancelledError.during("coverage collection") from None

    async def _collect(
        self, tests: Sequence[TestIdentity], parallel_safe: Collection[TestIdentity]
    ) -> CollectionResult:
        ordered = list(dict.fromkeys(tests))
        safe = set(parallel_safe)
        serial = [t for t in ordered if t not in safe]
        parallel = [t for t in ordered if t in safe]
        log.info("coverage_collection_start", serial=len(serial), parallel=len(parallel))

        self.artifact_dir.mkdir(parents=True, exist_ok=True)
        outcomes: dict[TestIdentity, Outcome] = {}

        def record(test: TestIdentity, outcome: Outcome) -> None:
            outcomes[test] = outcome
            self._report(len(outcomes), len(ordered), test, outcome)

        sem = asyncio.Semaphore(self.max_workers)

        async def run_bounded(test: TestIdentity) -> tuple[TestIdentity, Outcome]:
            async with sem:
                return await self._run_one(test)

        tasks: list[asyncio.Task[tuple[TestIdentity, Outcome]]] = []
        try:
            for test in serial:
                record(*await self._run_one(test))

            tasks = [asyncio.create_task(run_bounded(t)) for t in parallel]
            for coro in asyncio.as_completed(tasks):
                record(*await coro)
        except asyncio.CancelledError:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            log.warning("coverage_collection_cancelled", completed=len(outcomes))
            raise OperationCancelledError.during("coverage collection") from None

        result = CollectionResult()
        for test in ordered:
            outcome = outcomes[test]
            if isinstance(outcome, RunFailure):
                result.failures.append(outcome)
            else:
                result.coverage[test] = outcome

        if ordered and not result.coverage:
            raise NoUsableCoverageError.after_runs(len(ordered))

        log.info(
            "coverage_collection_done",
            succeeded=len(result.coverage),
            failed=len(result.failures),
        )
        return result

    def _report(self, index: int, total: int, test: TestIdentity, outcome: Outcome) -> None:
        if isinstance(outcome, RunFailure):
            log.warning("test_run_failed", test=test.qualified_name, reason=outcome.reason)
            verdict = "[red]FAILED[/red]"
        else:
            verdict = "[green]OK[/green]"
        if self.show_progress:
            status(f"[{index}/{total}] {test.qualified_name}... {verdict}", indent=2)
