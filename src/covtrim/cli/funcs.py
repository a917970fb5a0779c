"""covtrim funcs command - per-function coverage of a profile."""

import json
from contextlib import nullcontext
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text

from covtrim.core.errors import CovtrimError
from covtrim.core.progress import spinner
from covtrim.coverage.blockset import BlockSet
from covtrim.coverage.funcmap import build_function_map
from covtrim.coverage.profile import read_profile


@click.command()
@click.argument("profile", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--module-root",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory containing go.mod (default: current directory)",
)
@click.option(
    "--threshold",
    "-t",
    type=click.FloatRange(0, 100),
    help="Only list functions at or above this percent",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def funcs_command(
    profile: Path, module_root: Path, threshold: float | None, as_json: bool
) -> None:
    """Print coverage percent for every function in PROFILE."""
    try:
        blocks = BlockSet.from_profile(read_profile(profile))
    except CovtrimError as e:
        raise click.ClickException(str(e)) from e

    progress = nullcontext() if as_json else spinner("Parsing Go sources")
    try:
        with progress:
            func_map = build_function_map(module_root.resolve())
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Cannot build function map: {e}") from e

    percents = blocks.function_coverage(func_map)
    if threshold is not None:
        percents = {f: p for f, p in percents.items() if p >= threshold}

    if as_json:
        click.echo(json.dumps({f: round(p, 2) for f, p in sorted(percents.items())}, indent=2))
        return

    table = Table(show_header=True, box=None, padding=(0, 2), pad_edge=False)
    table.add_column("FUNCTION", style="cyan")
    table.add_column("COVERAGE", justify="right")
    for func, pct in sorted(percents.items()):
        style = "green" if pct >= 80 else "yellow" if pct > 0 else "red"
        table.add_row(Text(func), Text(f"{pct:.1f}%", style=style))
    console = Console()
    console.print(table)
    console.print(f"total: {blocks.percent:.1f}% of statements", highlight=False)
