"""Media migration CLI - Main entry point."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import timedelta

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from sqlalchemy import select

from . import __version__
from .assets.drive import GoogleDriveSource, SourceConfigError
from .assets.jobs import MigrationDriver, MigrationOptions, RunReport
from .assets.object_store import ObjectStore, ObjectStoreError, build_object_store
from .config import settings
from .database import async_session_factory, init_models
from .models.agency import Agency
from .models.base import utcnow
from .reporting import ConsoleReporter, run_table, status_table
from .services.slot_svc import SlotCapacityValidator
from .services.store_svc import MigrationStore

app = typer.Typer(
    name="media-migrate",
    help="Re-import unit photos from Google Drive into object storage",
    no_args_is_help=True,
)
console = Console()


class AgencyNotFoundError(Exception):
    pass


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_source() -> GoogleDriveSource:
    return GoogleDriveSource.from_settings(settings)


def _build_destination() -> ObjectStore:
    return build_object_store(settings)


async def _resolve_agency(db, value: str | None) -> uuid.UUID | None:
    """Accept an agency UUID or slug."""
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        pass
    agency_id = (
        await db.execute(select(Agency.id).where(Agency.slug == value.strip()))
    ).scalar_one_or_none()
    if agency_id is None:
        raise AgencyNotFoundError(f"Agency not found: {value}")
    return agency_id


def _store(db) -> MigrationStore:
    return MigrationStore(db, error_max_length=settings.error_message_max_length)


# ============================================================================
# Run
# ============================================================================


async def _run_migration(
    *,
    batch_size: int,
    agency: str | None,
    dry_run: bool,
    max_batches: int,
    item_delay_seconds: float,
) -> RunReport:
    # Dry runs never touch the adapters, so they do not need credentials.
    source = None if dry_run else _build_source()
    destination = None
    try:
        destination = None if dry_run else _build_destination()
        async with async_session_factory() as db:
            options = MigrationOptions(
                batch_size=batch_size,
                agency_id=await _resolve_agency(db, agency),
                dry_run=dry_run,
                max_batches=max_batches,
                item_delay_seconds=item_delay_seconds,
                error_report_limit=settings.error_report_limit,
            )
            driver = MigrationDriver(
                _store(db),
                SlotCapacityValidator(db, settings.slot_capacities),
                source,
                destination,
                parent_type=settings.parent_type,
                reporter=ConsoleReporter(console),
            )
            return await driver.run(options)
    finally:
        if source is not None:
            await source.aclose()
        if destination is not None:
            await destination.aclose()


@app.command("run")
def run(
    batch: int = typer.Option(None, "--batch", "-b", help="Photos per batch (default from settings, 50)"),
    agency: str = typer.Option(None, "--agency", "-a", help="Only photos of this agency (id or slug)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report what would be processed; change nothing"),
    max_batches: int = typer.Option(None, "--max-batches", help="Stop after N batches (0 = unlimited)"),
    delay: float = typer.Option(None, "--delay", help="Seconds to wait between photos"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Migrate pending photos in batches (resumable)."""
    _configure_logging(verbose)

    batch_size = settings.batch_size if batch is None else batch
    if batch_size < 1:
        console.print("[red]--batch must be at least 1[/red]")
        raise typer.Exit(2)

    try:
        asyncio.run(
            _run_migration(
                batch_size=batch_size,
                agency=agency,
                dry_run=dry_run,
                max_batches=settings.max_batches if max_batches is None else max(0, max_batches),
                item_delay_seconds=settings.item_delay_seconds if delay is None else max(0.0, delay),
            )
        )
    except (SourceConfigError, ObjectStoreError, AgencyNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)

    console.print("\n[green]Script finished successfully[/green]")


def run_migration_main() -> None:
    """`run-migration` console script: the `run` command on its own."""
    typer.run(run)


# ============================================================================
# Status / operator commands
# ============================================================================


@app.command("status")
def status(
    agency: str = typer.Option(None, "--agency", "-a", help="Agency id or slug"),
):
    """Show photo counts per migration status and the latest run."""

    async def _status():
        async with async_session_factory() as db:
            agency_id = await _resolve_agency(db, agency)
            store = _store(db)
            return await store.get_status_counts(agency_id), await store.latest_run(agency_id)

    try:
        counts, last_run = asyncio.run(_status())
    except AgencyNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)

    console.print(status_table(counts, "Migration status"))
    if last_run is None:
        console.print("[dim]No migration runs recorded[/dim]")
    else:
        console.print(run_table(last_run))


@app.command("requeue")
def requeue(
    agency: str = typer.Option(None, "--agency", "-a", help="Agency id or slug"),
    errors: bool = typer.Option(True, "--errors/--no-errors", help="Re-queue photos in error"),
    stale_minutes: int = typer.Option(
        None,
        "--stale-minutes",
        help="Also re-queue photos stuck in processing for this long (0 = skip)",
    ),
):
    """Move failed (and stale processing) photos back to pending."""
    minutes = settings.stale_processing_minutes if stale_minutes is None else stale_minutes
    stale_before = utcnow() - timedelta(minutes=minutes) if minutes > 0 else None

    async def _requeue():
        async with async_session_factory() as db:
            agency_id = await _resolve_agency(db, agency)
            return await _store(db).requeue(
                agency_id,
                include_errors=errors,
                stale_before=stale_before,
            )

    try:
        count = asyncio.run(_requeue())
    except AgencyNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)

    console.print(f"[green]Re-queued {count} photos[/green]")


@app.command("errors")
def errors_list(
    limit: int = typer.Option(50, "--limit", "-l", help="Max rows"),
    agency: str = typer.Option(None, "--agency", "-a", help="Agency id or slug"),
):
    """List photos currently in error."""

    async def _errors():
        async with async_session_factory() as db:
            agency_id = await _resolve_agency(db, agency)
            return await _store(db).list_errors(limit, agency_id)

    try:
        rows = asyncio.run(_errors())
    except AgencyNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)

    if not rows:
        console.print("[green]No photos in error[/green]")
        return

    table = Table(title="Photos in error")
    table.add_column("Photo", style="cyan")
    table.add_column("Unit")
    table.add_column("Source ref")
    table.add_column("Error", style="red")
    for row in rows:
        table.add_row(str(row.id), str(row.unit_id), row.source_ref or "-", row.migration_error or "")
    console.print(table)


@app.command("logs")
def logs(
    limit: int = typer.Option(20, "--limit", "-l", help="Max rows"),
):
    """Show the most recent per-photo migration outcomes."""

    async def _logs():
        async with async_session_factory() as db:
            return await _store(db).recent_logs(limit)

    rows = asyncio.run(_logs())
    if not rows:
        console.print("[dim]No migration logs yet[/dim]")
        return

    table = Table(title="Recent migration logs")
    table.add_column("Photo", style="cyan")
    table.add_column("Status")
    table.add_column("Bytes", justify="right")
    table.add_column("ms", justify="right")
    table.add_column("Error", style="red")
    for row in rows:
        style = "green" if row.status == "done" else "red"
        table.add_row(
            str(row.media_id),
            f"[{style}]{row.status}[/{style}]",
            str(row.size_bytes) if row.size_bytes is not None else "-",
            str(row.processing_time_ms) if row.processing_time_ms is not None else "-",
            row.error_message or "",
        )
    console.print(table)


@app.command("init-db")
def init_db():
    """Create tables on the configured database (without Alembic)."""
    asyncio.run(init_models())
    console.print(f"[green]Tables created on {settings.database_url}[/green]")


@app.command()
def version():
    """Show version."""
    console.print(f"media-migration v{__version__}")


if __name__ == "__main__":
    app()
