"""Console progress output for migration runs (rich)."""

from __future__ import annotations

import uuid

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .assets.jobs import ItemOutcome, MigrationOptions, MigrationReporter, RunReport
from .models.media import UnitMedia
from .models.run import MigrationRun
from .services.store_svc import StatusCounts

_STATUS_STYLES = {
    "none": "dim",
    "pending": "yellow",
    "processing": "cyan",
    "done": "green",
    "error": "red",
}

_RUN_STYLES = {
    "running": "yellow",
    "completed": "green",
    "error": "red",
}


def status_table(counts: StatusCounts, title: str) -> Table:
    table = Table(title=title)
    table.add_column("Status", style="cyan")
    table.add_column("Photos", justify="right")
    for status, n in counts.as_dict().items():
        style = _STATUS_STYLES.get(status, "white")
        table.add_row(f"[{style}]{status}[/{style}]", str(n))
    table.add_row("[bold]total[/bold]", f"[bold]{counts.total}[/bold]")
    return table


class ConsoleReporter(MigrationReporter):
    """Streams `.`/`X` markers per item and prints batch and run summaries."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def run_started(self, run_id: uuid.UUID, options: MigrationOptions, counts: StatusCounts) -> None:
        self.console.print(
            Panel(
                f"Batch size: {options.batch_size}\n"
                f"Agency filter: {options.agency_id or 'none'}\n"
                f"Dry run: {options.dry_run}\n"
                f"Max batches: {options.max_batches or 'unlimited'}\n"
                f"[dim]Run id: {run_id}[/dim]",
                title="Photo Reimport",
            )
        )
        self.console.print(status_table(counts, "Initial migration status"))

    def promoted(self, count: int, *, dry_run: bool) -> None:
        if dry_run:
            self.console.print(f"[yellow][DRY RUN] Would mark {count} photos as pending[/yellow]")
        else:
            self.console.print(f"Marked [bold]{count}[/bold] photos as pending")

    def batch_started(self, batch_number: int, size: int) -> None:
        self.console.print(f"\n[bold]--- Batch {batch_number} ---[/bold]")
        self.console.print(f"Processing {size} photos...")

    def dry_run_item(self, item: UnitMedia) -> None:
        self.console.print(f"[dim][DRY RUN] Would process photo {item.id} ({item.source_ref})[/dim]")

    def item_finished(self, outcome: ItemOutcome) -> None:
        if outcome.status == "done":
            marker = "[green].[/green]"
        elif outcome.status == "error":
            marker = "[red]X[/red]"
        else:
            marker = "[dim]-[/dim]"
        self.console.print(marker, end="")

    def batch_finished(self, batch_number: int, succeeded: int, failed: int) -> None:
        self.console.print()
        self.console.print(
            f"Batch {batch_number} complete: "
            f"[green]{succeeded} success[/green], [red]{failed} failed[/red]"
        )

    def batch_limit_reached(self, max_batches: int) -> None:
        self.console.print(f"\n[yellow]Reached max batches limit ({max_batches})[/yellow]")

    def drained(self) -> None:
        self.console.print("\nNo more photos to process")

    def run_finished(self, report: RunReport) -> None:
        stats = report.stats
        summary = Table(title="Reimport Complete")
        summary.add_column("Metric", style="cyan")
        summary.add_column("Count", justify="right")
        summary.add_row("Total processed", str(stats.processed))
        summary.add_row("Success", f"[green]{stats.succeeded}[/green]")
        summary.add_row("Failed", f"[red]{stats.failed}[/red]")
        summary.add_row("Skipped (claimed elsewhere)", str(stats.skipped))
        if report.options.dry_run:
            summary.add_row("Would process (dry run)", str(stats.would_process))
        self.console.print()
        self.console.print(summary)

        if report.reported_errors:
            self.console.print("\n[bold red]Errors:[/bold red]")
            for err in report.reported_errors:
                self.console.print(f"  - Photo {err.media_id}: {err.message}")
            if report.unreported_error_count:
                self.console.print(f"  ... and {report.unreported_error_count} more errors")

        self.console.print(status_table(report.final_counts, "Final migration status"))


def run_table(run: MigrationRun) -> Table:
    style = _RUN_STYLES.get(run.status, "white")
    table = Table(title="Latest migration run", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Run id", str(run.id))
    table.add_row("Status", f"[{style}]{run.status}[/{style}]")
    table.add_row("Agency", str(run.agency_id) if run.agency_id else "all")
    table.add_row("Started", run.started_at.isoformat(timespec="seconds") if run.started_at else "-")
    table.add_row("Completed", run.completed_at.isoformat(timespec="seconds") if run.completed_at else "-")
    table.add_row("Batches", str(run.batches))
    table.add_row("Processed", f"{run.processed} ({run.succeeded} ok, {run.failed} failed)")
    table.add_row("Pending remaining", "-" if run.pending_remaining is None else str(run.pending_remaining))
    table.add_row("Avg time per photo", "-" if run.avg_processing_ms is None else f"{run.avg_processing_ms} ms")
    if run.error_message:
        table.add_row("Error", f"[red]{escape(run.error_message)}[/red]")
    return table
