"""Rendering of analysis reports: rich tables for people, dicts for JSON."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from covtrim.core.progress import pluralize
from covtrim.selection.models import AnalysisReport, TestIdentity


def _kept_table(report: AnalysisReport) -> Table:
    table = Table(show_header=True, box=None, padding=(0, 2), pad_edge=False)
    table.add_column("TEST", style="cyan", no_wrap=True)
    table.add_column("FILLS", justify="right")
    table.add_column("TYPE")
    for kept in report.selection.kept:
        style = "green" if kept.is_baseline else "white"
        table.add_row(
            Text(kept.test.qualified_name),
            str(kept.gaps_filled),
            Text(kept.kind, style=style),
        )
    return table


def _test_list(tests: list[TestIdentity]) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 1), pad_edge=False)
    table.add_column("test", style="dim")
    for t in tests:
        table.add_row(Text(t.qualified_name))
    return table


def render_report(report: AnalysisReport, console: Console | None = None) -> None:
    """Print the human-readable report (stdout unless a console is given)."""
    c = console or Console()
    sel = report.selection

    c.print()
    c.print(
        f"[bold]Kept {pluralize(len(sel.kept), 'test')}[/bold] "
        f"covering {pluralize(len(report.target_functions), 'target function')} "
        f"at >= {report.threshold:g}%",
        highlight=False,
    )
    if sel.kept:
        c.print(_kept_table(report))

    if sel.redundant_baseline:
        c.print()
        c.print(
            f"[bold]Baseline tests that could be trimmed ({len(sel.redundant_baseline)})[/bold]",
            highlight=False,
        )
        c.print(_test_list(sel.redundant_baseline))

    if sel.redundant_non_baseline:
        c.print()
        c.print(
            f"[bold]Redundant non-baseline tests ({len(sel.redundant_non_baseline)})[/bold]",
            highlight=False,
        )
        c.print(_test_list(sel.redundant_non_baseline))

    if report.failures:
        c.print()
        c.print(f"[bold red]Failed runs ({len(report.failures)})[/bold red]", highlight=False)
        table = Table(show_header=False, box=None, padding=(0, 1), pad_edge=False)
        table.add_column("test", style="red")
        table.add_column("reason", style="dim")
        for f in report.failures:
            table.add_row(Text(f.test.qualified_name), Text(f.reason))
        c.print(table)

    c.print()
    if sel.validated:
        c.print("[green]✓[/green] Validation passed: no target function regressed")
    else:
        c.print(
            f"[red]✗[/red] Validation found {pluralize(len(sel.shortfalls), 'shortfall')}",
            highlight=False,
        )
    for warning in report.warnings:
        c.print(Text.assemble(("! ", "yellow"), warning))


def report_to_dict(report: AnalysisReport) -> dict[str, Any]:
    """JSON-serializable form. keptTests/redundantTests hold qualified names."""
    sel = report.selection
    return {
        "keptTests": sel.kept_tests,
        "redundantTests": sel.redundant_tests,
        "redundantBaselineTests": [t.qualified_name for t in sel.redundant_baseline],
        "redundantNonBaselineTests": [t.qualified_name for t in sel.redundant_non_baseline],
        "kept": [
            {
                "test": k.test.qualified_name,
                "type": k.kind,
                "gapsFilled": k.gaps_filled,
            }
            for k in sel.kept
        ],
        "failedTests": [
            {"test": f.test.qualified_name, "reason": f.reason} for f in report.failures
        ],
        "threshold": report.threshold,
        "totalTests": report.total_tests,
        "baselineTests": report.baseline_count,
        "targetFunctions": len(report.target_functions),
        "unreachable": {func: round(pct, 2) for func, pct in sorted(sel.unreachable.items())},
        "shortfalls": [
            {
                "function": s.function,
                "percent": round(s.percent, 2),
                "deficit": round(s.deficit, 2),
            }
            for s in sel.shortfalls
        ],
        "validated": sel.validated,
        "warnings": report.warnings,
    }
