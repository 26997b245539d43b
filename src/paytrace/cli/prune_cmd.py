"""paytrace prune -- delete trace events past the retention period.

Deletes in chunks so a large backlog never holds the store lock for
long. --dry-run reports what would be deleted without touching it.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn

from paytrace.errors import TraceStorageError
from paytrace.logging_config import configure_logging
from paytrace.models.config import find_project_root, load_project_config
from paytrace.storage.json_store import DEFAULT_PRUNE_CHUNK_SIZE, TraceStore


def _create_progress(console: Console) -> Progress | None:
    """Progress bar for chunked deletion, or None when not on a terminal."""
    if not console.is_terminal:
        return None

    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    )


def prune(
    days: Optional[int] = typer.Option(
        None, "--days", min=1, help="Number of days to retain (overrides config)"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show what would be deleted without deleting"
    ),
    chunk: int = typer.Option(
        DEFAULT_PRUNE_CHUNK_SIZE, "--chunk", min=1, help="Records to delete per chunk"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Prune old trace events based on the retention policy."""
    console = Console()

    project_root = find_project_root()
    project_config = load_project_config(project_root)
    configure_logging(project_config.log_level)

    retention_days = days if days is not None else project_config.trace.retention_days
    if not retention_days:
        console.print(
            "[bold red]Error:[/bold red] Retention days not configured. "
            "Set trace.retention_days in paytrace.yaml or use --days."
        )
        raise typer.Exit(code=1)

    store = TraceStore(project_root, storage_dir=project_config.storage_dir)
    console.print(f"Pruning trace events older than {retention_days} days...")

    try:
        count = store.count_older_than(retention_days)
        if count == 0:
            console.print("No trace events to prune.")
            return

        if dry_run:
            console.print(f"[yellow]\\[DRY RUN] Would delete {count} trace events[/yellow]")
            console.print()
            console.print("Sample records that would be deleted:")
            for sample in store.sample_older_than(retention_days, limit=5):
                created = sample.created_at.strftime("%Y-%m-%d %H:%M:%S")
                console.print(f"  - {escape(sample.payment_id)} ({created})")
            return

        if not yes and not typer.confirm(f"Delete {count} trace events?", default=True):
            console.print("Pruning cancelled.")
            return

        console.print(f"Deleting in chunks of {chunk} records...")
        progress = _create_progress(console)
        if progress is None:
            deleted = store.prune(retention_days, chunk_size=chunk)
        else:
            with progress:
                task = progress.add_task("Pruning", total=count)
                deleted = store.prune(
                    retention_days,
                    chunk_size=chunk,
                    on_chunk=lambda n: progress.advance(task, n),
                )
    except TraceStorageError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    console.print(f"[green]Successfully pruned {deleted} trace events.[/green]")
