"""covtrim find command - run the redundancy analysis."""

import asyncio
import json
from pathlib import Path
from typing import Any

import click

from covtrim.config.loader import load_config
from covtrim.core.errors import CovtrimError
from covtrim.core.logging import clear_run_id, configure_logging, set_run_id
from covtrim.discovery import GoToolchain
from covtrim.pipeline import find_redundant_tests
from covtrim.reporting import render_report, report_to_dict


def parse_baseline_option(values: tuple[str, ...]) -> list[dict[str, str | None]]:
    """Parse ``--baseline`` values: ``PKG`` or ``PKG=PREFIX``, comma lists allowed."""
    specs: list[dict[str, str | None]] = []
    for value in values:
        for item in value.split(","):
            item = item.strip()
            if not item:
                continue
            package, sep, prefix = item.partition("=")
            if not package.strip():
                raise click.BadParameter(f"missing package in {item!r}", param_hint="--baseline")
            specs.append(
                {"package": package.strip(), "name_pattern": prefix.strip() if sep else None}
            )
    return specs


def _overrides(
    package: str | None,
    baseline: tuple[str, ...],
    threshold: float | None,
    coverpkg: str | None,
    jobs: int | None,
    include_all_baseline: bool,
    keep_artifacts: bool,
) -> dict[str, Any]:
    """Config kwargs for the flags that were actually given."""
    redundancy: dict[str, Any] = {}
    if package:
        redundancy["package_to_analyze"] = package
    if baseline:
        redundancy["baseline_tests"] = parse_baseline_option(baseline)
    if threshold is not None:
        redundancy["coverage_threshold"] = threshold
    if coverpkg:
        redundancy["coverage_packages"] = coverpkg

    execution: dict[str, Any] = {}
    if jobs is not None:
        execution["max_workers"] = jobs
    if keep_artifacts:
        execution["keep_artifacts"] = True

    kwargs: dict[str, Any] = {}
    if redundancy:
        kwargs["redundancy"] = redundancy
    if execution:
        kwargs["execution"] = execution
    if include_all_baseline:
        kwargs["selection"] = {"include_all_baseline": True}
    return kwargs


@click.command()
@click.argument("package", required=False)
@click.option(
    "--baseline",
    "-b",
    multiple=True,
    metavar="PKG[=PREFIX]",
    help="Baseline package, optionally limited to tests starting with PREFIX. Repeatable.",
)
@click.option("--threshold", "-t", type=click.FloatRange(0, 100), help="Per-function percent to keep")
@click.option("--coverpkg", help="Packages to measure coverage for (go test -coverpkg)")
@click.option("--jobs", "-j", type=click.IntRange(min=1), help="Concurrent parallel-safe test runs")
@click.option(
    "--include-all-baseline",
    is_flag=True,
    help="Keep every baseline test, even those adding no coverage",
)
@click.option("--keep-artifacts", is_flag=True, help="Keep per-test coverage profiles")
@click.option(
    "--root",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Go module directory (default: current directory)",
)
@click.option("--json", "as_json", is_flag=True, help="Output the result as JSON")
@click.pass_context
def find_command(
    ctx: click.Context,
    package: str | None,
    baseline: tuple[str, ...],
    threshold: float | None,
    coverpkg: str | None,
    jobs: int | None,
    include_all_baseline: bool,
    keep_artifacts: bool,
    root: Path,
    as_json: bool,
) -> None:
    """Find tests that can be removed without lowering function coverage.

    PACKAGE is the package pattern whose tests are analyzed (default: ./...).
    """
    repo_root = root.resolve()
    kwargs = _overrides(
        package, baseline, threshold, coverpkg, jobs, include_all_baseline, keep_artifacts
    )
    try:
        config = load_config(repo_root, **kwargs)
    except CovtrimError as e:
        raise click.ClickException(str(e)) from e

    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    if not verbose:
        configure_logging(config=config.logging)

    set_run_id()
    try:
        report = asyncio.run(
            find_redundant_tests(
                config,
                toolchain=GoToolchain(repo_root),
                show_progress=not as_json,
            )
        )
    except CovtrimError as e:
        raise click.ClickException(str(e)) from e
    finally:
        clear_run_id()

    if as_json:
        click.echo(json.dumps(report_to_dict(report), indent=2))
    else:
        render_report(report)
