from __future__ import annotations

from typing import Any, Dict

from rich import box
from rich.console import Console
from rich.table import Table


def _format_rate(items: int, duration: float) -> str:
    if duration <= 0:
        return "N/A"
    return f"{items / duration:,.2f}"


def print_summary(summary: Dict[str, Any], console: Console | None = None) -> None:
    """
    Render an export summary as a rich table.

    Expects the dict produced by `ExportSummary.to_dict()`.
    """
    console = console or Console()

    if not summary:
        console.print("[yellow]No summary to display.[/yellow]")
        return

    collections = summary.get("collections") or []
    source_label = ", ".join(collections) if collections else "inline rows"

    table = Table(
        title=f"Export into {summary.get('table', '?')}\n[dim]Source: {source_label}[/dim]",
        box=box.ROUNDED,
    )
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")

    duration = summary.get("duration_seconds") or 0.0
    items = summary.get("items_loaded") or 0
    mem_bytes = summary.get("peak_rss_bytes") or 0

    if collections:
        table.add_row("Windows planned", f"{summary.get('windows_planned', 0):,}")
        table.add_row("Windows skipped (resumed)", f"{summary.get('windows_skipped', 0):,}")
        table.add_row("Windows completed", f"{summary.get('windows_completed', 0):,}")
    table.add_row("Items loaded", f"{items:,}")
    table.add_row("Statements executed", f"{summary.get('statements_executed', 0):,}")

    failed = summary.get("statements_failed", 0)
    failed_style = "bold red" if failed else "green"
    table.add_row("Statements failed", f"[{failed_style}]{failed:,}[/{failed_style}]")
    table.add_row("Rows inserted", f"{summary.get('rows_inserted', 0):,}")
    table.add_row("Rows skipped (existing)", f"{summary.get('rows_skipped', 0):,}")
    checks = summary.get("existence_checks", 0)
    if checks:
        # One SELECT round-trip per candidate row
        table.add_row("Existence checks", f"{checks:,}")
    table.add_row("Duration (s)", f"{duration:.1f}")
    table.add_row("Throughput (items/s)", _format_rate(items, duration))
    table.add_row("Peak Memory (MB)", f"{mem_bytes / (1024 * 1024):.2f}")
    growth = summary.get("rss_growth_bytes")
    if growth is not None:
        table.add_row("Memory Growth (MB)", f"{growth / (1024 * 1024):.2f}")

    console.print(table)


__all__ = ["print_summary"]
