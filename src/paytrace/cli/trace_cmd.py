"""paytrace trace -- reconstruct the timeline of a payment.

Loads every stored event for a payment, renders it as a coloured
timeline with a summary, and optionally the detected issues and
anomalies. --json writes the timeline projection as pure JSON.
"""

from __future__ import annotations

import json
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from paytrace.errors import TraceStorageError
from paytrace.logging_config import configure_logging
from paytrace.models.config import find_project_root, load_project_config
from paytrace.models.event import TraceEvent, TraceEventKind
from paytrace.storage.json_store import TraceStore
from paytrace.timeline.builder import DetailedTimeline, Timeline, TimelineBuilder
from paytrace.timeline.formatting import SUB_LINE_INDENT, format_event_line

_SEVERITY_STYLES: dict[str, tuple[str, str]] = {
    "high": ("⚠️ ", "bold red"),
    "medium": ("ℹ️ ", "yellow"),
}


def _event_style(event: TraceEvent) -> str:
    """Rich style for a timeline line, by event classification."""
    if event.is_error:
        return "red"
    if event.is_terminal:
        return "green" if event.event is TraceEventKind.PAYMENT_COMPLETED else "yellow"
    return ""


def _final_status(timeline: Timeline) -> tuple[str, str]:
    terminal = timeline.terminal()
    if terminal is None:
        return ("INCOMPLETE (no terminal event)", "yellow")
    if timeline.succeeded():
        return ("COMPLETED", "green")
    if timeline.failed():
        return ("FAILED", "red")
    return (terminal.event.name.removeprefix("PAYMENT_"), "yellow")


def _render_events(timeline: Timeline, console: Console) -> None:
    for event in timeline:
        style = _event_style(event)
        line = escape(format_event_line(event))
        console.print(f"[{style}]{line}[/{style}]" if style else line)

        if event.response_time_ms is not None:
            console.print(f"{SUB_LINE_INDENT}└─ Response time: {event.response_time_ms}ms")
        if event.http_status_code is not None:
            status_style = "red" if event.http_status_code >= 400 else "green"
            console.print(
                f"{SUB_LINE_INDENT}[{status_style}]└─ HTTP {event.http_status_code}[/{status_style}]"
            )


def _render_summary(timeline: Timeline, console: Console) -> None:
    console.print("─" * 80)
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Total Events: {len(timeline)}")
    console.print(f"  Errors: {len(timeline.errors())}")

    duration = timeline.duration()
    if duration is not None:
        console.print(f"  Duration: {duration}ms ({duration / 1000:.2f}s)")

    status, style = _final_status(timeline)
    console.print(f"  Final Status: [{style}]{status}[/{style}]")


def _render_analysis(timeline: DetailedTimeline, console: Console) -> None:
    issues = timeline.analyze()
    anomalies = timeline.detect_anomalies()

    console.print()
    if not issues and not anomalies:
        console.print("[green]✓ No issues detected[/green]")
        return

    for title, findings in (("Issues Detected:", issues), ("Anomalies Detected:", anomalies)):
        if not findings:
            continue
        console.print("─" * 80)
        console.print(f"[bold red]{title}[/bold red]")
        console.print()
        for finding in findings:
            severity = finding.severity.value
            icon, style = _SEVERITY_STYLES.get(severity, ("-", "bold"))
            label = escape(f"[{severity.upper()}]")
            console.print(f"{icon} [{style}]{label}[/{style}] {escape(finding.message)}")
        console.print()


def trace(
    payment_id: str = typer.Argument(..., help="The payment ID to trace"),
    detailed: bool = typer.Option(
        False, "--detailed", "-d", help="Show issue and anomaly analysis"
    ),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="Only show events for this provider"
    ),
) -> None:
    """Reconstruct the timeline of a payment transaction."""
    console = Console()

    project_root = find_project_root()
    project_config = load_project_config(project_root)
    configure_logging(project_config.log_level)

    store = TraceStore(project_root, storage_dir=project_config.storage_dir)
    builder = TimelineBuilder(store, project_config.trace)

    try:
        timeline: Timeline = (
            builder.build_detailed(payment_id) if detailed else builder.build(payment_id)
        )
    except TraceStorageError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    if provider:
        timeline = timeline.filtered(provider)

    if as_json:
        sys.stdout.write(json.dumps(timeline.to_dict(), indent=2, ensure_ascii=False))
        sys.stdout.write("\n")
        return

    console.print(f"[bold cyan]Reconstructing payment timeline for:[/bold cyan] {escape(payment_id)}")
    console.print()

    if timeline.is_empty:
        console.print("[yellow]No trace events found for this payment.[/yellow]")
        return

    _render_events(timeline, console)
    console.print()
    _render_summary(timeline, console)

    if isinstance(timeline, DetailedTimeline):
        _render_analysis(timeline, console)
