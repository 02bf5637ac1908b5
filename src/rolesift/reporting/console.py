"""Rich-powered console output."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from rolesift.events import (
    DETAIL_ACCEPTED,
    DETAIL_FAILED,
    DETAIL_REJECTED,
    KEYWORD_FAILED,
    KEYWORD_SCRAPED,
    TITLE_BATCH_FAILED,
    TITLE_REJECTED,
    PipelineEvent,
)
from rolesift.models import RunMetrics

_console = Console()


def print_banner() -> None:
    """Display the startup banner."""
    _console.print(
        Panel.fit(
            "[bold cyan]RoleSift[/bold cyan]  —  Job Board Scrape & AI Triage",
            border_style="cyan",
        )
    )


class ConsoleEventSink:
    """Prints one line per decision-worthy event; ignores the rest."""

    _STYLES = {
        KEYWORD_SCRAPED: "dim",
        KEYWORD_FAILED: "bold red",
        TITLE_BATCH_FAILED: "bold yellow",
        TITLE_REJECTED: "dim red",
        DETAIL_REJECTED: "red",
        DETAIL_ACCEPTED: "bold green",
        DETAIL_FAILED: "bold red",
    }

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or _console

    def emit(self, event: PipelineEvent) -> None:
        style = self._STYLES.get(event.kind)
        if style is None:
            return
        data = event.data
        if event.kind == KEYWORD_SCRAPED:
            text = f"keyword {data.get('keyword')!r}: scraped {data.get('scraped')}, staged {data.get('staged')}"
        elif event.kind in (KEYWORD_FAILED, TITLE_BATCH_FAILED, DETAIL_FAILED):
            text = f"{data.get('keyword') or data.get('title') or data.get('batch')}  {data.get('error', '')}"
        else:
            text = f"{data.get('title') or '(untitled)'}  ({data.get('location') or '-'})  {data.get('reason', '')}"
        label = event.kind.replace("_", " ")
        prefix = escape(f"[{event.site}]")
        self._console.print(f"  [{style}]{label:<16}[/{style}]  {prefix} {escape(text)}")


def print_run_report(metrics: RunMetrics) -> None:
    """Display a run summary table."""
    table = Table(title=f"Run Report — {metrics.site}", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Session ID", metrics.session_id or "—")
    table.add_row("Resumed", "yes" if metrics.resumed else "no")
    table.add_row("Scraped", str(metrics.scraped))
    table.add_row("Staged", str(metrics.staged))
    table.add_row("Filtered (title)", str(metrics.title_rejected))
    table.add_row("Rejected (detail)", str(metrics.detail_rejected))
    table.add_row("Failed (detail)", str(metrics.detail_failed))
    table.add_row("Accepted", str(metrics.accepted))
    table.add_row("Outcome", metrics.outcome or "—")
    table.add_row("Started", metrics.started_at)
    table.add_row("Ended", metrics.ended_at or "—")

    _console.print()
    _console.print(table)
    _console.print()
