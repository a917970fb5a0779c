"""Runs a single Go test with coverage enabled."""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import Protocol

import structlog

from covtrim.core.errors import TestRunFailure
from covtrim.selection.models import TestIdentity

log = structlog.get_logger()

# go test prints this when -coverpkg matches packages the test does not import
_NOISE_PREFIXES = ("warning: no packages being tested depend on matches",)


class TestRunner(Protocol):
    """Runs one test in isolation and returns its coverage profile text."""

    async def run(self, test: TestIdentity, output_path: Path) -> str:
        """Raises TestRunFailure when the run fails or produces no profile."""
        ...


def _tail(stderr: str, limit: int = 5) -> str:
    lines = [
        line
        for line in stderr.splitlines()
        if line.strip() and not line.startswith(_NOISE_PREFIXES)
    ]
    return "\n".join(lines[-limit:])


class GoTestRunner:
    """``go test -count=1 -coverprofile=<out> -coverpkg=<pkgs> -run ^Name$ <pkg>``."""

    def __init__(
        self,
        coverage_packages: str = "./...",
        *,
        timeout_sec: float = 600.0,
        cwd: Path | None = None,
        go: str = "go",
    ) -> None:
        self.coverage_packages = coverage_packages or "./..."
        self.timeout_sec = timeout_sec
        self.cwd = cwd
        self.go = go

    def build_command(self, test: TestIdentity, output_path: Path) -> list[str]:
        return [
            self.go,
            "test",
            "-count=1",
            f"-coverprofile={output_path}",
            f"-coverpkg={self.coverage_packages}",
            "-run",
            f"^{test.name}$",
            test.package,
        ]

    async def run(self, test: TestIdentity, output_path: Path) -> str:
        cmd = self.build_command(test, output_path)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            raise TestRunFailure.for_test(test.qualified_name, f"could not start go: {e}") from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout_sec
            )
        except TimeoutError as e:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise TestRunFailure.for_test(
                test.qualified_name, f"timed out after {self.timeout_sec:g}s"
            ) from e
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            detail = _tail(stderr_bytes.decode(errors="replace")) or _tail(
                stdout_bytes.decode(errors="replace")
            )
            reason = f"exit code {proc.returncode}"
            raise TestRunFailure.for_test(
                test.qualified_name, f"{reason}: {detail}" if detail else reason
            )

        try:
            return output_path.read_text()
        except (OSError, UnicodeDecodeError) as e:
            raise TestRunFailure.for_test(test.qualified_name, f"unreadable profile: {e}") from e
