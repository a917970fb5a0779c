"""Function boundaries for mapping coverage blocks to functions.

Coverage profiles name files by import path (``<module>/<dir>/<file>.go``),
so the map is keyed the same way: the module path from go.mod joined with
the file's path relative to the module root.

Function identifiers are ``<file>:<Name>`` where methods render as
``(*T).Name``, matching the names printed by ``go tool cover -func``.
"""

from __future__ import annotations

import bisect
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from covtrim.analysis.gosource import iter_functions, parse_go

log = structlog.get_logger()

_SKIP_DIRS = frozenset({"vendor", "testdata"})


@dataclass(frozen=True, slots=True)
class FunctionBounds:
    """Line range of one function in a source file (1-based, inclusive)."""

    name: str
    start_line: int
    end_line: int


@dataclass
class FunctionMap:
    """Maps coverage file paths to their function bounds, sorted by start line."""

    files: dict[str, list[FunctionBounds]] = field(default_factory=dict)
    _ends: dict[str, list[int]] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        for path, bounds in list(self.files.items()):
            self.add_file(path, bounds)

    def add_file(self, path: str, bounds: Iterable[FunctionBounds]) -> None:
        ordered = sorted(bounds, key=lambda b: b.start_line)
        if ordered:
            self.files[path] = ordered
            self._ends[path] = [b.end_line for b in ordered]

    def find_function(self, file: str, line: int) -> str | None:
        """Return ``file:Name`` of the function containing line, or None."""
        bounds = self.files.get(file)
        if not bounds:
            return None

        # First function whose end is at or after the line
        idx = bisect.bisect_left(self._ends[file], line)
        if idx < len(bounds) and bounds[idx].start_line <= line <= bounds[idx].end_line:
            return f"{file}:{bounds[idx].name}"
        return None

    @property
    def function_count(self) -> int:
        return sum(len(b) for b in self.files.values())


def extract_module_path(go_mod: str) -> str | None:
    """Return the module path declared in go.mod content."""
    for line in go_mod.splitlines():
        line = line.strip()
        if line.startswith("module "):
            return line.removeprefix("module ").strip().strip('"') or None
    return None


def function_bounds(source: bytes | str) -> list[FunctionBounds]:
    """Function bounds declared in one Go source file."""
    return [
        FunctionBounds(name=fn.name, start_line=fn.start_line, end_line=fn.end_line)
        for fn in iter_functions(parse_go(source))
    ]


def build_function_map(module_root: Path) -> FunctionMap:
    """Parse every non-test Go file under module_root.

    Skips vendor/, testdata/ and hidden directories.

    Raises:
        FileNotFoundError: If go.mod is missing.
        ValueError: If go.mod declares no module path.
    """
    go_mod = module_root / "go.mod"
    module_path = extract_module_path(go_mod.read_text())
    if not module_path:
        raise ValueError(f"could not extract module path from {go_mod}")

    func_map = FunctionMap()
    for dirpath, dirnames, filenames in os.walk(module_root):
        dirnames[:] = sorted(
            d for d in dirnames if d not in _SKIP_DIRS and not d.startswith(".")
        )
        for filename in sorted(filenames):
            if not filename.endswith(".go") or filename.endswith("_test.go"):
                continue
            path = Path(dirpath) / filename
            try:
                source = path.read_bytes()
            except OSError as e:
                log.warning("go_source_unreadable", path=str(path), error=str(e))
                continue
            rel = path.relative_to(module_root).as_posix()
            func_map.add_file(f"{module_path}/{rel}", function_bounds(source))

    log.debug("function_map_built", module=module_path, files=len(func_map.files))
    return func_map


def parse_function_coverage(text: str) -> dict[str, float]:
    """Parse ``go tool cover -func`` output into {"file:line: name": percent}.

    Lines look like ``pkg/file.go:12:\\tName\\t85.7%``; the ``total:`` trailer
    and lines that do not parse are skipped.
    """
    result: dict[str, float] = {}
    for line in text.splitlines():
        if not line.strip() or line.startswith("total:"):
            continue
        fields = line.split()
        if len(fields) < 3:
            continue
        try:
            percent = float(fields[-1].removesuffix("%"))
        except ValueError:
            continue
        result[" ".join(fields[:-1])] = percent
    return result
