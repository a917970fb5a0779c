"""Go coverage profile parsing, formatting and merging.

Go test produces coverage profiles with format:
mode: set|count|atomic
<package>/<file>:<startline>.<startcol>,<endline>.<endcol> <numstmt> <count>

Example:
mode: set
github.com/user/pkg/main.go:10.2,12.16 3 1
github.com/user/pkg/main.go:15.2,20.16 5 0

- numstmt: number of statements in block (static)
- count: execution count (0 = not covered)

Merging groups blocks by source range and sums their counts. Output is
sorted by file then position so that merging the same inputs always yields
byte-identical text.
"""

from collections.abc import Iterable, Sequence
from pathlib import Path

import structlog

from covtrim.core.errors import CoverageParseError, MalformedRecordError
from covtrim.coverage.models import BlockKey, CoverageBlock, CoverageProfile

log = structlog.get_logger()

DEFAULT_EXCLUDED_SUFFIXES: tuple[str, ...] = (".qtpl",)


def _parse_count(value: str, line: str, what: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise MalformedRecordError.for_line(line, f"{what} is not a non-negative integer")
    return int(value)


def _split_exactly(value: str, sep: str, line: str, what: str) -> tuple[str, str]:
    parts = value.split(sep)
    if len(parts) != 2:
        raise MalformedRecordError.for_line(line, f"expected exactly one {sep!r} in {what}")
    return parts[0], parts[1]


def parse_block_id(block_id: str) -> BlockKey:
    """Parse ``file:sl.sc,el.ec`` into a BlockKey.

    Raises:
        MalformedRecordError: If the separators are missing or repeated.
    """
    file, range_part = _split_exactly(block_id, ":", block_id, "block id")
    start, end = _split_exactly(range_part, ",", block_id, "range")
    start_line, start_col = _split_exactly(start, ".", block_id, "start position")
    end_line, end_col = _split_exactly(end, ".", block_id, "end position")

    return BlockKey(
        file=file,
        start_line=_parse_count(start_line, block_id, "start line"),
        start_col=_parse_count(start_col, block_id, "start column"),
        end_line=_parse_count(end_line, block_id, "end line"),
        end_col=_parse_count(end_col, block_id, "end column"),
    )


def parse_block(line: str) -> CoverageBlock:
    """Parse one profile line into a CoverageBlock.

    Raises:
        MalformedRecordError: If the line does not have the expected shape.
    """
    fields = line.split()
    if len(fields) != 3:
        raise MalformedRecordError.for_line(line, f"expected 3 fields, got {len(fields)}")

    key = parse_block_id(fields[0])
    return CoverageBlock(
        file=key.file,
        start_line=key.start_line,
        start_col=key.start_col,
        end_line=key.end_line,
        end_col=key.end_col,
        statements=_parse_count(fields[1], line, "statement count"),
        count=_parse_count(fields[2], line, "execution count"),
    )


def format_block(block: CoverageBlock) -> str:
    """Format a block as a profile line. Inverse of parse_block."""
    return f"{block.key.block_id} {block.statements} {block.count}"


def is_excluded_line(line: str, excluded_suffixes: Sequence[str]) -> bool:
    """True if the line references a file with one of the excluded suffixes."""
    return any(f"{suffix}:" in line for suffix in excluded_suffixes)


def parse_profile(
    text: str,
    *,
    excluded_suffixes: Sequence[str] = DEFAULT_EXCLUDED_SUFFIXES,
) -> CoverageProfile:
    """Parse profile text. Malformed lines are skipped with a warning.

    Raises:
        CoverageParseError: If the text is non-empty but has no mode line.
    """
    lines = text.splitlines()
    if not lines or not lines[0].strip():
        raise CoverageParseError.missing_mode("")

    mode_line = lines[0].strip()
    if not mode_line.startswith("mode:"):
        raise CoverageParseError.missing_mode(mode_line)

    profile = CoverageProfile(mode_line=mode_line)
    for line in lines[1:]:
        line = line.strip()
        if not line or is_excluded_line(line, excluded_suffixes):
            continue
        try:
            profile.blocks.append(parse_block(line))
        except MalformedRecordError as e:
            profile.skipped += 1
            log.warning("malformed_record_skipped", line=line, reason=e.details["reason"])

    return profile


def merge_profiles(profiles: Iterable[CoverageProfile]) -> CoverageProfile:
    """Merge profiles, summing execution counts of blocks with the same range.

    The first profile's mode line wins. Statement counts are taken from the
    first observation of each range.
    """
    profiles_list = list(profiles)
    if not profiles_list:
        return CoverageProfile()

    merged: dict[BlockKey, CoverageBlock] = {}
    skipped = 0
    for profile in profiles_list:
        skipped += profile.skipped
        for block in profile.blocks:
            existing = merged.get(block.key)
            if existing is None:
                merged[block.key] = block
                continue
            if existing.statements != block.statements:
                log.warning(
                    "statement_count_mismatch",
                    block=block.key.block_id,
                    kept=existing.statements,
                    seen=block.statements,
                )
            merged[block.key] = CoverageBlock(
                file=existing.file,
                start_line=existing.start_line,
                start_col=existing.start_col,
                end_line=existing.end_line,
                end_col=existing.end_col,
                statements=existing.statements,
                count=existing.count + block.count,
            )

    return CoverageProfile(
        mode_line=profiles_list[0].mode_line,
        blocks=[merged[key] for key in sorted(merged)],
        skipped=skipped,
    )


def format_profile(profile: CoverageProfile) -> str:
    """Render a profile as text, mode line first, with a trailing newline."""
    lines = [profile.mode_line, *(format_block(b) for b in profile.blocks)]
    return "\n".join(lines) + "\n"


def read_profile(
    path: Path,
    *,
    excluded_suffixes: Sequence[str] = DEFAULT_EXCLUDED_SUFFIXES,
) -> CoverageProfile:
    """Read and parse a profile file.

    Raises:
        CoverageParseError: If the file is missing, unreadable or has no mode line.
    """
    try:
        content = path.read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise CoverageParseError.unreadable(str(path), str(e)) from e
    return parse_profile(content, excluded_suffixes=excluded_suffixes)


def write_profile(path: Path, profile: CoverageProfile) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(format_profile(profile))
