"""Output formatting utilities for CLI commands."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, NoReturn

import rich_click as click
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from pathlib import Path

    from issueflow.coordinator import NodeOutcome, RunReport
    from issueflow.core.dag.graph import DAGNode

console = Console(highlight=False)

STATUS_STYLES = {
    "success": ("✅", "green"),
    "failed": ("❌", "red"),
    "cancelled": ("⏹", "yellow"),
    "skipped": ("○", "dim"),
}


def print_table(title: str | None, headers: list[str], rows: list[list[str]]) -> None:
    """Print a table with one header row.

    Args:
        title: Optional table title.
        headers: Column header strings.
        rows: List of rows, each row is a list of cell values.
    """
    table = Table(title=title, show_lines=False, header_style="bold cyan")
    for header in headers:
        table.add_column(header)
    for row in rows:
        padded_row = list(row) + [""] * (len(headers) - len(row))
        table.add_row(*padded_row[: len(headers)])
    console.print(table)


def error_exit(message: str, code: int = 1) -> NoReturn:
    """Print error message and exit with code."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def print_plan(nodes: list[DAGNode]) -> None:
    rows = [
        [str(n.level), n.id, n.title, ", ".join(n.dependencies) or "-"]
        for n in nodes
    ]
    print_table("Execution plan", ["Level", "Node", "Title", "Depends on"], rows)


def print_report(report: RunReport, report_path: Path | None) -> None:
    rows = []
    for outcome in report.nodes:
        icon, style = STATUS_STYLES.get(outcome.status, ("?", ""))
        duration = f"{outcome.duration_ms / 1000:.1f}s" if outcome.duration_ms is not None else "-"
        rows.append(
            [
                outcome.node_id,
                str(outcome.level),
                f"[{style}]{icon} {outcome.status}[/{style}]",
                duration,
                str(outcome.score) if outcome.score is not None else "-",
                outcome.pr_url or outcome.error or "",
            ]
        )
    print_table(
        f"Run {report.run_id}",
        ["Node", "Level", "Status", "Duration", "Score", "Result"],
        rows,
    )
    if report_path is not None:
        console.print(f"[dim]Report: {report_path}[/dim]")


class RunRenderer:
    """Prints scheduler and executor progress as it happens."""

    def __init__(self, out: Console | None = None) -> None:
        self._console = out or console

    def level_start(self, level: int, nodes: list[DAGNode]) -> None:
        self._console.print(
            f"\n[bold]Level {level}[/bold] ({len(nodes)} node(s)): {', '.join(n.id for n in nodes)}"
        )

    def chunk_start(self, level: int, index: int, nodes: list[DAGNode]) -> None:
        self._console.print(f"[dim]  chunk {index}: {', '.join(n.id for n in nodes)}[/dim]")

    def stage(self, node_id: str, stage: str) -> None:
        self._console.print(f"[dim]  {node_id} → {stage}[/dim]")

    def node_done(self, node_id: str, outcome: NodeOutcome) -> None:
        icon, style = STATUS_STYLES.get(outcome.status, ("?", ""))
        detail = f"score {outcome.score}" if outcome.score is not None else (outcome.error or "")
        self._console.print(f"  [{style}]{icon} {node_id}[/{style}] {detail}")

    def fatal(self, message: str) -> None:
        self._console.print(f"\n[bold red]💥 Fatal error:[/bold red] {message}")
