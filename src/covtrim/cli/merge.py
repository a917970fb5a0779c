"""covtrim merge command - combine coverage profiles."""

from pathlib import Path

import click

from covtrim.core.errors import CovtrimError
from covtrim.core.progress import pluralize, status
from covtrim.coverage.profile import format_profile, merge_profiles, read_profile, write_profile


@click.command()
@click.argument(
    "profiles",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the merged profile here instead of stdout",
)
def merge_command(profiles: tuple[Path, ...], output: Path | None) -> None:
    """Merge PROFILES into one, summing counts of identical blocks.

    The mode line of the first profile is kept.
    """
    try:
        merged = merge_profiles(read_profile(p, excluded_suffixes=()) for p in profiles)
    except CovtrimError as e:
        raise click.ClickException(str(e)) from e

    if merged.skipped:
        status(f"Skipped {pluralize(merged.skipped, 'malformed line')}", style="warning")

    if output is None:
        click.echo(format_profile(merged), nl=False)
        return

    try:
        write_profile(output, merged)
    except OSError as e:
        raise click.ClickException(f"Cannot write {output}: {e}") from e
    status(
        f"Merged {pluralize(len(profiles), 'profile')} "
        f"({pluralize(len(merged.blocks), 'block')}) into {output}",
        style="success",
    )
