"""Migration metadata store: the system of record for per-photo migration state.

Every mutation touches a single row (or one set-based UPDATE) and commits
immediately, so a killed run leaves at most the current item in `processing`.
Database errors are not caught here; they propagate to the driver and end the
run.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import utcnow
from ..models.log import MigrationLog
from ..models.media import (
    HIGH_QUALITY_VERSION,
    MEDIA_TYPE_PHOTO,
    STATUS_DONE,
    STATUS_ERROR,
    STATUS_NONE,
    STATUS_PENDING,
    STATUS_PROCESSING,
    UnitMedia,
)
from ..models.run import RUN_STATUS_COMPLETED, RUN_STATUS_ERROR, RUN_STATUS_RUNNING, MigrationRun
from ..models.unit import Unit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusCounts:
    none: int = 0
    pending: int = 0
    processing: int = 0
    done: int = 0
    error: int = 0

    @property
    def total(self) -> int:
        return self.none + self.pending + self.processing + self.done + self.error

    def as_dict(self) -> dict[str, int]:
        return {
            "none": self.none,
            "pending": self.pending,
            "processing": self.processing,
            "done": self.done,
            "error": self.error,
        }


def _agency_units(agency_id: uuid.UUID):
    return select(Unit.id).where(Unit.agency_id == agency_id)


def _photo_criteria(agency_id: uuid.UUID | None) -> list[Any]:
    criteria: list[Any] = [UnitMedia.media_type == MEDIA_TYPE_PHOTO]
    if agency_id is not None:
        criteria.append(UnitMedia.unit_id.in_(_agency_units(agency_id)))
    return criteria


def _needs_high_quality():
    # NULL quality_version counts as the original low-quality copy.
    return func.coalesce(UnitMedia.quality_version, 1) < HIGH_QUALITY_VERSION


def _pending_criteria(agency_id: uuid.UUID | None) -> list[Any]:
    return [
        *_photo_criteria(agency_id),
        UnitMedia.migration_status == STATUS_PENDING,
        _needs_high_quality(),
    ]


class MigrationStore:
    """Reads and transitions `UnitMedia.migration_status`; also keeps run records."""

    def __init__(self, db: AsyncSession, *, error_max_length: int = 1000):
        self.db = db
        self.error_max_length = max(1, int(error_max_length))

    async def get(self, media_id: uuid.UUID) -> UnitMedia | None:
        stmt = (
            select(UnitMedia)
            .where(UnitMedia.id == media_id)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def list_pending(
        self,
        limit: int,
        agency_id: uuid.UUID | None = None,
        *,
        offset: int = 0,
    ) -> list[UnitMedia]:
        """Return up to `limit` pending photos, oldest first.

        `offset` is only meaningful for read-only paging (dry runs); a live run
        always reads from the head because claimed rows leave `pending`.
        """
        if limit <= 0:
            return []
        stmt = (
            select(UnitMedia)
            .where(*_pending_criteria(agency_id))
            .order_by(UnitMedia.created_at.asc(), UnitMedia.id.asc())
            .offset(max(0, int(offset)))
            .limit(int(limit))
            .execution_options(populate_existing=True)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def claim(self, media_id: uuid.UUID) -> bool:
        """Atomically move one row `pending -> processing`.

        Returns False when the row is no longer pending (claimed elsewhere).
        """
        stmt = (
            update(UnitMedia)
            .where(
                UnitMedia.id == media_id,
                UnitMedia.migration_status == STATUS_PENDING,
            )
            .values(migration_status=STATUS_PROCESSING, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return bool(result.rowcount)

    async def mark_done(
        self,
        media_id: uuid.UUID,
        destination_ref: str,
        destination_path: str,
    ) -> None:
        now = utcnow()
        stmt = (
            update(UnitMedia)
            .where(UnitMedia.id == media_id)
            .values(
                migration_status=STATUS_DONE,
                migration_error=None,
                destination_ref=destination_ref,
                destination_path=destination_path,
                quality_version=HIGH_QUALITY_VERSION,
                migrated_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        if not result.rowcount:
            logger.warning("mark_done matched no row for media %s", media_id)

    async def mark_error(self, media_id: uuid.UUID, message: str) -> None:
        message = (message or "Unknown error")[: self.error_max_length]
        stmt = (
            update(UnitMedia)
            .where(UnitMedia.id == media_id)
            .values(
                migration_status=STATUS_ERROR,
                migration_error=message,
                destination_ref=None,
                destination_path=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        if not result.rowcount:
            logger.warning("mark_error matched no row for media %s", media_id)

    async def bulk_promote_none_to_pending(self, agency_id: uuid.UUID | None = None) -> int:
        """Queue every eligible `none` photo. Idempotent."""
        stmt = (
            update(UnitMedia)
            .where(
                *_photo_criteria(agency_id),
                or_(
                    UnitMedia.migration_status == STATUS_NONE,
                    UnitMedia.migration_status.is_(None),
                ),
                _needs_high_quality(),
            )
            .values(migration_status=STATUS_PENDING, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return int(result.rowcount or 0)

    async def count_promotable(self, agency_id: uuid.UUID | None = None) -> int:
        stmt = select(func.count()).select_from(UnitMedia).where(
            *_photo_criteria(agency_id),
            or_(
                UnitMedia.migration_status == STATUS_NONE,
                UnitMedia.migration_status.is_(None),
            ),
            _needs_high_quality(),
        )
        return int((await self.db.execute(stmt)).scalar_one())

    async def count_pending_work(self, agency_id: uuid.UUID | None = None) -> int:
        """Pending photos `list_pending` would return (the live backlog)."""
        stmt = select(func.count()).select_from(UnitMedia).where(*_pending_criteria(agency_id))
        return int((await self.db.execute(stmt)).scalar_one())

    async def get_status_counts(self, agency_id: uuid.UUID | None = None) -> StatusCounts:
        stmt = (
            select(UnitMedia.migration_status, func.count())
            .where(*_photo_criteria(agency_id))
            .group_by(UnitMedia.migration_status)
        )
        counts = {status: 0 for status in ("none", "pending", "processing", "done", "error")}
        for status, n in (await self.db.execute(stmt)).all():
            key = status or STATUS_NONE
            if key in counts:
                counts[key] += int(n)
        return StatusCounts(**counts)

    async def requeue(
        self,
        agency_id: uuid.UUID | None = None,
        *,
        include_errors: bool = True,
        stale_before: datetime | None = None,
    ) -> int:
        """Operator re-queue: `error` rows and stale `processing` rows back to pending.

        A `processing` row is stale when it has not been touched since
        `stale_before` (left behind by a killed run).
        """
        requeued = 0
        now = utcnow()

        if include_errors:
            stmt = (
                update(UnitMedia)
                .where(
                    *_photo_criteria(agency_id),
                    UnitMedia.migration_status == STATUS_ERROR,
                    UnitMedia.source_ref.is_not(None),
                )
                .values(migration_status=STATUS_PENDING, migration_error=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            requeued += int((await self.db.execute(stmt)).rowcount or 0)

        if stale_before is not None:
            stmt = (
                update(UnitMedia)
                .where(
                    *_photo_criteria(agency_id),
                    UnitMedia.migration_status == STATUS_PROCESSING,
                    UnitMedia.updated_at < stale_before,
                )
                .values(migration_status=STATUS_PENDING, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            requeued += int((await self.db.execute(stmt)).rowcount or 0)

        await self.db.commit()
        return requeued

    async def list_errors(
        self,
        limit: int = 50,
        agency_id: uuid.UUID | None = None,
    ) -> list[UnitMedia]:
        stmt = (
            select(UnitMedia)
            .where(*_photo_criteria(agency_id), UnitMedia.migration_status == STATUS_ERROR)
            .order_by(UnitMedia.updated_at.desc())
            .limit(max(0, int(limit)))
            .execution_options(populate_existing=True)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def log_outcome(
        self,
        *,
        run_id: uuid.UUID,
        media_id: uuid.UUID,
        status: str,
        error_message: str | None = None,
        size_bytes: int | None = None,
        processing_time_ms: int | None = None,
    ) -> MigrationLog:
        row = MigrationLog(
            run_id=run_id,
            media_id=media_id,
            status=status,
            error_message=error_message[: self.error_max_length] if error_message else None,
            size_bytes=size_bytes,
            processing_time_ms=processing_time_ms,
        )
        self.db.add(row)
        await self.db.commit()
        return row

    async def recent_logs(self, limit: int = 100) -> list[MigrationLog]:
        stmt = (
            select(MigrationLog)
            .order_by(MigrationLog.created_at.desc())
            .limit(max(0, int(limit)))
        )
        return list((await self.db.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------
    # Run records
    # ------------------------------------------------------------------

    async def start_run(
        self,
        run_id: uuid.UUID,
        agency_id: uuid.UUID | None = None,
        *,
        batch_size: int = 50,
        max_batches: int = 0,
    ) -> MigrationRun:
        run = MigrationRun(
            id=run_id,
            agency_id=agency_id,
            status=RUN_STATUS_RUNNING,
            batch_size=batch_size,
            max_batches=max_batches,
            started_at=utcnow(),
        )
        self.db.add(run)
        await self.db.commit()
        return run

    async def update_run_progress(self, run_id: uuid.UUID, **counters: Any) -> None:
        """Overwrite counter columns (processed, failed, pending_remaining, ...)."""
        stmt = (
            update(MigrationRun)
            .where(MigrationRun.id == run_id)
            .values(**counters, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.commit()

    async def finish_run(
        self,
        run_id: uuid.UUID,
        *,
        error_message: str | None = None,
        **counters: Any,
    ) -> None:
        """Close a run as `completed`, or as `error` when a message is given."""
        if error_message is not None:
            # The session may hold a failed transaction from the fatal error.
            await self.db.rollback()
        now = utcnow()
        stmt = (
            update(MigrationRun)
            .where(MigrationRun.id == run_id)
            .values(
                **counters,
                status=RUN_STATUS_ERROR if error_message is not None else RUN_STATUS_COMPLETED,
                error_message=error_message[: self.error_max_length] if error_message else None,
                completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.commit()

    async def get_run(self, run_id: uuid.UUID) -> MigrationRun | None:
        stmt = (
            select(MigrationRun)
            .where(MigrationRun.id == run_id)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def latest_run(self, agency_id: uuid.UUID | None = None) -> MigrationRun | None:
        """Most recent run; with an agency, the most recent run scoped to it."""
        stmt = select(MigrationRun)
        if agency_id is not None:
            stmt = stmt.where(MigrationRun.agency_id == agency_id)
        stmt = (
            stmt.order_by(MigrationRun.started_at.desc(), MigrationRun.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()
