"""covtrim CLI - find redundant Go tests."""

import click

from covtrim.cli.find import find_command
from covtrim.cli.funcs import funcs_command
from covtrim.cli.merge import merge_command
from covtrim.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="covtrim")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """covtrim - trim Go test suites without losing function coverage."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(find_command, name="find")
cli.add_command(merge_command, name="merge")
cli.add_command(funcs_command, name="funcs")


if __name__ == "__main__":
    cli()
