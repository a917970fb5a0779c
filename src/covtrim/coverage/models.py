"""Block-level coverage data model.

Go coverage profiles describe statement blocks, not lines. A block is
identified by its source range; the statement count is static (comes from
instrumentation) and only the execution count varies between runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple


class BlockKey(NamedTuple):
    """Unique identity of a block: the source range it spans."""

    file: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int

    @property
    def block_id(self) -> str:
        """Range as it appears in a profile: ``file:sl.sc,el.ec``."""
        return f"{self.file}:{self.start_line}.{self.start_col},{self.end_line}.{self.end_col}"


@dataclass(frozen=True, slots=True)
class CoverageBlock:
    """One line of a coverage profile."""

    file: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    statements: int
    count: int

    @property
    def key(self) -> BlockKey:
        return BlockKey(self.file, self.start_line, self.start_col, self.end_line, self.end_col)

    @property
    def covered(self) -> bool:
        return self.count > 0


@dataclass(slots=True)
class CoverageProfile:
    """A parsed profile: the mode line plus its blocks in input order.

    The mode line is kept verbatim so it survives merges unchanged.
    ``skipped`` counts malformed lines that were dropped while parsing.
    """

    mode_line: str = "mode: set"
    blocks: list[CoverageBlock] = field(default_factory=list)
    skipped: int = 0

    @property
    def mode(self) -> str:
        """Mode value: set, count or atomic."""
        return self.mode_line.partition(":")[2].strip()

    @property
    def total_statements(self) -> int:
        return sum(b.statements for b in self.blocks)
