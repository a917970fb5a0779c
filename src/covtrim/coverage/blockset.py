"""In-memory coverage aggregate keyed by block range.

A BlockSet answers "which statements has any merged run covered". Merging
ORs the covered flags, so it is idempotent, commutative and associative,
and a block's covered flag never flips back to False.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from covtrim.coverage.models import BlockKey, CoverageBlock, CoverageProfile
from covtrim.coverage.profile import DEFAULT_EXCLUDED_SUFFIXES, parse_profile


class FunctionLocator(Protocol):
    """Maps a source position to its enclosing function."""

    def find_function(self, file: str, line: int) -> str | None: ...


@dataclass(frozen=True, slots=True)
class BlockInfo:
    """Merged state of one block."""

    statements: int
    covered: bool


@dataclass(slots=True)
class FunctionStats:
    """Covered/total statement counts for one function."""

    covered: int = 0
    total: int = 0

    @property
    def percent(self) -> float | None:
        """Coverage percent, or None for a function with no statements."""
        if self.total == 0:
            return None
        return self.covered * 100.0 / self.total


@dataclass
class BlockSet:
    """Mapping of block key -> merged BlockInfo."""

    blocks: dict[BlockKey, BlockInfo] = field(default_factory=dict)

    # -- construction -------------------------------------------------------

    @classmethod
    def from_blocks(cls, blocks: Sequence[CoverageBlock]) -> BlockSet:
        """Build from raw blocks; duplicate ranges are unioned."""
        bs = cls()
        for block in blocks:
            bs._add(block.key, BlockInfo(statements=block.statements, covered=block.covered))
        return bs

    @classmethod
    def from_profile(cls, profile: CoverageProfile) -> BlockSet:
        return cls.from_blocks(profile.blocks)

    @classmethod
    def load_from_record(
        cls,
        text: str,
        *,
        excluded_suffixes: Sequence[str] = DEFAULT_EXCLUDED_SUFFIXES,
    ) -> BlockSet:
        """Parse profile text straight into a BlockSet."""
        return cls.from_profile(parse_profile(text, excluded_suffixes=excluded_suffixes))

    def copy(self) -> BlockSet:
        # BlockInfo is immutable, a shallow dict copy is enough
        return BlockSet(blocks=dict(self.blocks))

    # -- merging ------------------------------------------------------------

    def _add(self, key: BlockKey, info: BlockInfo) -> None:
        existing = self.blocks.get(key)
        if existing is None:
            self.blocks[key] = info
        elif info.covered and not existing.covered:
            self.blocks[key] = BlockInfo(statements=existing.statements, covered=True)

    def merge(self, other: BlockSet) -> None:
        """Union other into self in place."""
        for key, info in other.blocks.items():
            self._add(key, info)

    def merged(self, other: BlockSet) -> BlockSet:
        """Return the union of self and other without mutating either."""
        result = self.copy()
        result.merge(other)
        return result

    def count_new_statements(self, candidate: BlockSet) -> int:
        """Statements covered in candidate that are not yet covered in self."""
        new = 0
        for key, info in candidate.blocks.items():
            if not info.covered:
                continue
            existing = self.blocks.get(key)
            if existing is None or not existing.covered:
                new += info.statements
        return new

    # -- derived values -----------------------------------------------------

    @property
    def total_statements(self) -> int:
        return sum(info.statements for info in self.blocks.values())

    @property
    def covered_statements(self) -> int:
        return sum(info.statements for info in self.blocks.values() if info.covered)

    @property
    def percent(self) -> float:
        """Overall statement coverage; 0.0 for an empty set."""
        total = self.total_statements
        if total == 0:
            return 0.0
        return self.covered_statements * 100.0 / total

    def function_stats(self, locator: FunctionLocator) -> dict[str, FunctionStats]:
        """Per-function covered/total statements.

        Blocks outside any known function are left out.
        """
        stats: dict[str, FunctionStats] = {}
        for key, info in self.blocks.items():
            func = locator.find_function(key.file, key.start_line)
            if func is None:
                continue
            entry = stats.setdefault(func, FunctionStats())
            entry.total += info.statements
            if info.covered:
                entry.covered += info.statements
        return stats

    def function_coverage(self, locator: FunctionLocator) -> dict[str, float]:
        """Per-function coverage percent; zero-statement functions are absent."""
        return {
            func: pct
            for func, s in self.function_stats(locator).items()
            if (pct := s.percent) is not None
        }

    def to_profile(self, mode_line: str = "mode: set") -> CoverageProfile:
        """Render as a profile: covered blocks count 1, others 0, sorted by range."""
        return CoverageProfile(
            mode_line=mode_line,
            blocks=[
                CoverageBlock(*key, statements=info.statements, count=int(info.covered))
                for key, info in sorted(self.blocks.items())
            ],
        )

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self) -> Iterator[BlockKey]:
        return iter(self.blocks)

    def __contains__(self, key: object) -> bool:
        return key in self.blocks
