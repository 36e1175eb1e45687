"""Photo re-import driver (Drive -> object storage), batched and resumable.

One run:
  1. Snapshot status counts; if nothing is pending but `none` photos exist,
     queue them (`none -> pending`).
  2. Repeatedly take the oldest `batch_size` pending photos and process them
     one at a time: precondition and slot checks, claim, download, upload,
     commit. A fixed delay between items keeps the Drive API quota happy.
  3. Stop when no pending work is left or `max_batches` is reached.

Live runs keep a `MigrationRun` row (running -> completed/error) whose
counters are refreshed after every batch.

Item failures are recorded on the row (`error` + message) and never stop the
run. Database errors are not per-item failures: they close the run record as
`error`, propagate and end the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from ..models.media import STATUS_DONE, STATUS_ERROR, UnitMedia
from ..services.slot_svc import SlotCapacityValidator
from ..services.store_svc import MigrationStore, StatusCounts
from .paths import content_type_for, destination_path
from .results import FetchResult, StoreResult

logger = logging.getLogger(__name__)

ERR_NO_SOURCE = "No source reference"
ERR_DOWNLOAD = "Failed to download from source"
ERR_UPLOAD = "Failed to upload to destination"

OUTCOME_DONE = STATUS_DONE
OUTCOME_ERROR = STATUS_ERROR
OUTCOME_SKIPPED = "skipped"


def slot_full_message(slot: str) -> str:
    return f"Slot {slot} is at capacity"


class Source(Protocol):
    async def fetch(self, source_ref: str) -> FetchResult: ...


class Destination(Protocol):
    async def store(self, data: bytes, path: str, content_type: str) -> StoreResult: ...


@dataclass(frozen=True)
class MigrationOptions:
    batch_size: int = 50
    agency_id: uuid.UUID | None = None
    dry_run: bool = False
    max_batches: int = 0  # 0 = unlimited
    item_delay_seconds: float = 0.1
    error_report_limit: int = 10


@dataclass(frozen=True)
class ItemError:
    media_id: uuid.UUID
    message: str


@dataclass(frozen=True)
class ItemOutcome:
    media_id: uuid.UUID
    status: str  # done/error/skipped
    error: str | None = None
    destination_ref: str | None = None
    size_bytes: int | None = None
    processing_time_ms: int | None = None


@dataclass
class RunStats:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    would_process: int = 0
    batches: int = 0
    promoted: int = 0
    total_processing_ms: int = 0
    errors: list[ItemError] = field(default_factory=list)

    @property
    def avg_processing_ms(self) -> int | None:
        if not self.processed:
            return None
        return self.total_processing_ms // self.processed

    def run_counters(self) -> dict[str, int | None]:
        return {
            "batches": self.batches,
            "promoted": self.promoted,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "avg_processing_ms": self.avg_processing_ms,
        }

    def record(self, outcome: ItemOutcome) -> None:
        if outcome.status == OUTCOME_SKIPPED:
            self.skipped += 1
            return
        self.processed += 1
        self.total_processing_ms += outcome.processing_time_ms or 0
        if outcome.status == OUTCOME_DONE:
            self.succeeded += 1
        else:
            self.failed += 1
            self.errors.append(ItemError(outcome.media_id, outcome.error or "Unknown error"))


@dataclass(frozen=True)
class RunReport:
    run_id: uuid.UUID
    options: MigrationOptions
    stats: RunStats
    initial_counts: StatusCounts
    final_counts: StatusCounts
    stopped_by_batch_limit: bool = False

    @property
    def reported_errors(self) -> list[ItemError]:
        return self.stats.errors[: max(0, self.options.error_report_limit)]

    @property
    def unreported_error_count(self) -> int:
        return max(0, len(self.stats.errors) - len(self.reported_errors))


class MigrationReporter:
    """Progress hooks; the base class ignores everything."""

    def run_started(self, run_id: uuid.UUID, options: MigrationOptions, counts: StatusCounts) -> None:
        pass

    def promoted(self, count: int, *, dry_run: bool) -> None:
        pass

    def batch_started(self, batch_number: int, size: int) -> None:
        pass

    def dry_run_item(self, item: UnitMedia) -> None:
        pass

    def item_finished(self, outcome: ItemOutcome) -> None:
        pass

    def batch_finished(self, batch_number: int, succeeded: int, failed: int) -> None:
        pass

    def batch_limit_reached(self, max_batches: int) -> None:
        pass

    def drained(self) -> None:
        pass

    def run_finished(self, report: RunReport) -> None:
        pass


class MigrationDriver:
    def __init__(
        self,
        store: MigrationStore,
        slots: SlotCapacityValidator,
        source: Source | None,
        destination: Destination | None,
        *,
        parent_type: str = "external-units",
        reporter: MigrationReporter | None = None,
    ):
        self.store = store
        self.slots = slots
        self.source = source
        self.destination = destination
        self.parent_type = parent_type
        self.reporter = reporter or MigrationReporter()

    async def _precondition_error(self, item: UnitMedia) -> str | None:
        if not (item.source_ref or "").strip():
            return ERR_NO_SOURCE
        # Hidden photos do not occupy a slot, so they can always be finalized.
        if item.slot and not item.is_hidden:
            if not await self.slots.can_promote(item.unit_id, item.slot, exclude_media_id=item.id):
                return slot_full_message(item.slot)
        return None

    async def _migrate(self, item: UnitMedia) -> tuple[str | None, str | None, int | None]:
        """Download + upload + commit a claimed item.

        Returns (error, destination_ref, size_bytes).
        """
        if self.source is None or self.destination is None:
            raise RuntimeError("source and destination adapters are required for a live run")
        fetched = await self.source.fetch(item.source_ref)
        if not fetched.ok:
            logger.warning("Download failed for %s: %s", item.id, fetched.error)
            return ERR_DOWNLOAD, None, None

        # The row mime type wins; an image content-type header covers rows without one.
        mime_type = item.mime_type
        if not mime_type and (fetched.content_type or "").startswith("image/"):
            mime_type = fetched.content_type
        path = destination_path(self.parent_type, item.unit_id, item.id, mime_type)
        stored = await self.destination.store(fetched.data, path, content_type_for(mime_type))
        if not stored.ok:
            logger.warning("Upload failed for %s: %s", item.id, stored.error)
            return ERR_UPLOAD, None, len(fetched.data)

        await self.store.mark_done(item.id, stored.url, stored.path or path)
        return None, stored.url, len(fetched.data)

    async def process_item(self, item: UnitMedia, run_id: uuid.UUID) -> ItemOutcome:
        """Take one pending item to a terminal state (or skip it if claimed elsewhere)."""
        media_id = item.id
        started = time.monotonic()
        size_bytes = None
        destination_ref = None

        try:
            error = await self._precondition_error(item)
            if error is None:
                if not await self.store.claim(media_id):
                    logger.info("Media %s was claimed by another run; skipping", media_id)
                    return ItemOutcome(media_id, OUTCOME_SKIPPED)
                error, destination_ref, size_bytes = await self._migrate(item)
        except SQLAlchemyError:
            raise
        except Exception as e:
            logger.exception("Unexpected failure migrating media %s", media_id)
            error = str(e) or e.__class__.__name__

        if error is not None:
            await self.store.mark_error(media_id, error)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        await self.store.log_outcome(
            run_id=run_id,
            media_id=media_id,
            status=OUTCOME_ERROR if error else OUTCOME_DONE,
            error_message=error,
            size_bytes=size_bytes,
            processing_time_ms=elapsed_ms,
        )
        if error is not None:
            return ItemOutcome(
                media_id,
                OUTCOME_ERROR,
                error=error,
                size_bytes=size_bytes,
                processing_time_ms=elapsed_ms,
            )
        return ItemOutcome(
            media_id,
            OUTCOME_DONE,
            destination_ref=destination_ref,
            size_bytes=size_bytes,
            processing_time_ms=elapsed_ms,
        )

    async def _record_progress(self, run_id: uuid.UUID, stats: RunStats, options: MigrationOptions) -> None:
        await self.store.update_run_progress(
            run_id,
            pending_remaining=await self.store.count_pending_work(options.agency_id),
            **stats.run_counters(),
        )

    async def _drain(
        self,
        run_id: uuid.UUID,
        options: MigrationOptions,
        stats: RunStats,
    ) -> bool:
        """Batch loop; returns True when stopped by `max_batches`."""
        batch_size = max(1, int(options.batch_size))
        batch_number = 0
        dry_run_offset = 0
        while True:
            batch_number += 1
            if options.max_batches > 0 and batch_number > options.max_batches:
                self.reporter.batch_limit_reached(options.max_batches)
                return True

            items = await self.store.list_pending(
                batch_size,
                options.agency_id,
                offset=dry_run_offset if options.dry_run else 0,
            )
            if not items:
                self.reporter.drained()
                return False

            stats.batches += 1
            succeeded_before, failed_before = stats.succeeded, stats.failed
            self.reporter.batch_started(batch_number, len(items))

            for item in items:
                if options.dry_run:
                    stats.would_process += 1
                    self.reporter.dry_run_item(item)
                    continue

                outcome = await self.process_item(item, run_id)
                stats.record(outcome)
                self.reporter.item_finished(outcome)

                if options.item_delay_seconds > 0:
                    await asyncio.sleep(options.item_delay_seconds)

            if options.dry_run:
                dry_run_offset += len(items)
            else:
                await self._record_progress(run_id, stats, options)
            self.reporter.batch_finished(
                batch_number,
                stats.succeeded - succeeded_before,
                stats.failed - failed_before,
            )

    async def run(self, options: MigrationOptions | None = None) -> RunReport:
        options = options or MigrationOptions()
        run_id = uuid.uuid4()
        stats = RunStats()

        initial = await self.store.get_status_counts(options.agency_id)
        self.reporter.run_started(run_id, options, initial)
        logger.info("Migration run %s started (dry_run=%s)", run_id, options.dry_run)

        # Dry runs leave no trace, including the run record.
        if not options.dry_run:
            await self.store.start_run(
                run_id,
                options.agency_id,
                batch_size=max(1, int(options.batch_size)),
                max_batches=options.max_batches,
            )

        try:
            # Only queue new work when there is no backlog, so re-runs keep
            # draining the existing pending set instead of growing it.
            backlog = await self.store.count_pending_work(options.agency_id)
            if backlog == 0 and initial.none > 0:
                if options.dry_run:
                    stats.promoted = await self.store.count_promotable(options.agency_id)
                else:
                    stats.promoted = await self.store.bulk_promote_none_to_pending(options.agency_id)
                self.reporter.promoted(stats.promoted, dry_run=options.dry_run)

            stopped_by_batch_limit = await self._drain(run_id, options, stats)
            final = await self.store.get_status_counts(options.agency_id)
        except Exception as e:
            logger.exception("Migration run %s aborted", run_id)
            if not options.dry_run:
                await self._fail_run(run_id, stats, e)
            raise

        if not options.dry_run:
            await self.store.finish_run(
                run_id,
                pending_remaining=await self.store.count_pending_work(options.agency_id),
                **stats.run_counters(),
            )

        report = RunReport(
            run_id=run_id,
            options=options,
            stats=stats,
            initial_counts=initial,
            final_counts=final,
            stopped_by_batch_limit=stopped_by_batch_limit,
        )
        logger.info(
            "Migration run %s finished: %d processed, %d succeeded, %d failed",
            run_id,
            stats.processed,
            stats.succeeded,
            stats.failed,
        )
        self.reporter.run_finished(report)
        return report

    async def _fail_run(self, run_id: uuid.UUID, stats: RunStats, exc: Exception) -> None:
        try:
            await self.store.finish_run(
                run_id,
                error_message=f"{exc.__class__.__name__}: {exc}",
                **stats.run_counters(),
            )
        except SQLAlchemyError:
            # The original error is re-raised by the caller.
            logger.exception("Could not record failure of migration run %s", run_id)
