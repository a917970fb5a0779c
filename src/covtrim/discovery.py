"""Go test discovery through the go toolchain.

Packages come from ``go list``, tests from ``go test -list .``, and
parallel-safety from a static scan of each package's ``_test.go`` files.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Iterable, Sequence
from pathlib import Path

import structlog

from covtrim.analysis.parallel import parallel_test_names
from covtrim.config.models import BaselineTestSpec
from covtrim.core.errors import DiscoveryError
from covtrim.selection.models import BaselineSet, TestIdentity

log = structlog.get_logger()


def parse_test_list_output(package: str, output: str) -> list[TestIdentity]:
    """Parse ``go test -list .`` output. Only lines starting with "Test" are tests."""
    tests = []
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("Test"):
            tests.append(TestIdentity(package=package, name=line))
    return tests


class GoToolchain:
    """Thin async wrapper over the go command."""

    def __init__(self, cwd: Path | None = None, *, go: str = "go") -> None:
        self.cwd = cwd
        self.go = go

    async def output(self, *args: str) -> str:
        """Run go with args and return stripped stdout.

        Raises:
            DiscoveryError: If go cannot be started or exits non-zero.
        """
        pattern = " ".join(args)
        try:
            proc = await asyncio.create_subprocess_exec(
                self.go,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
            stdout_bytes, stderr_bytes = await proc.communicate()
        except OSError as e:
            raise DiscoveryError.listing_failed(pattern, str(e)) from e

        if proc.returncode != 0:
            stderr = stderr_bytes.decode(errors="replace").strip()
            raise DiscoveryError.listing_failed(pattern, stderr or f"exit code {proc.returncode}")
        return stdout_bytes.decode(errors="replace").strip()

    async def list_packages(self, pattern: str) -> list[str]:
        out = await self.output("list", pattern)
        return [line.strip() for line in out.splitlines() if line.strip()]

    async def resolve_package(self, path: str) -> str:
        """Import path of a package given as a relative path or pattern."""
        return await self.output("list", path)

    async def list_tests(self, pattern: str) -> list[TestIdentity]:
        """All Test* functions in packages matching pattern, in package order.

        Packages whose tests cannot be listed (build errors, no test files)
        are skipped with a warning.
        """
        tests: list[TestIdentity] = []
        for package in await self.list_packages(pattern):
            try:
                out = await self.output("test", "-list", ".", package)
            except DiscoveryError as e:
                log.warning("test_listing_failed", package=package, reason=e.details["reason"])
                continue
            tests.extend(parse_test_list_output(package, out))
        return tests

    async def package_dir(self, package: str) -> Path:
        return Path(await self.output("list", "-f", "{{.Dir}}", package))

    async def module_root(self) -> Path:
        return Path(await self.output("list", "-m", "-f", "{{.Dir}}"))


def _scan_package_dir(pkg_dir: Path) -> set[str]:
    names: set[str] = set()
    for path in sorted(pkg_dir.glob("*_test.go")):
        try:
            names |= parallel_test_names(path.read_bytes())
        except OSError as e:
            log.warning("test_source_unreadable", path=str(path), error=str(e))
    return names


async def detect_parallel_tests(
    tests: Iterable[TestIdentity], toolchain: GoToolchain
) -> set[TestIdentity]:
    """Tests whose body calls Parallel(). Packages that cannot be located are treated as serial."""
    by_package: dict[str, set[str]] = defaultdict(set)
    for t in tests:
        by_package[t.package].add(t.name)

    parallel: set[TestIdentity] = set()
    for package, names in by_package.items():
        try:
            pkg_dir = await toolchain.package_dir(package)
        except DiscoveryError as e:
            log.warning("package_dir_unknown", package=package, reason=e.details["reason"])
            continue
        found = await asyncio.to_thread(_scan_package_dir, pkg_dir)
        parallel.update(TestIdentity(package, name) for name in names & found)

    log.debug("parallel_tests_detected", count=len(parallel))
    return parallel


async def resolve_baseline(
    specs: Sequence[BaselineTestSpec], toolchain: GoToolchain
) -> BaselineSet:
    """Turn baseline specs into a BaselineSet.

    A spec without a name pattern marks every test in its package. A spec
    with a pattern marks tests in the resolved package whose name starts
    with the pattern.

    Raises:
        DiscoveryError: If a package with a name pattern cannot be resolved.
    """
    baseline = BaselineSet()
    for spec in specs:
        if spec.name_pattern:
            package = await toolchain.resolve_package(spec.package)
            baseline.add_pattern(package, spec.name_pattern)
            continue
        try:
            tests = await toolchain.list_tests(spec.package)
        except DiscoveryError as e:
            log.warning("baseline_listing_failed", package=spec.package, reason=e.details["reason"])
            continue
        baseline.exact.update(t.qualified_name for t in tests)
    return baseline
