"""Migration run record - one row per live driver run."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin

RUN_STATUS_RUNNING = "running"
RUN_STATUS_COMPLETED = "completed"
RUN_STATUS_ERROR = "error"


class MigrationRun(UUIDMixin, TimestampMixin, Base):
    """Progress of a run; the id doubles as `MigrationLog.run_id`.

    A row left in `running` belongs to a run that was killed.
    """

    __tablename__ = "migration_run"

    agency_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("agency.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        default=None,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RUN_STATUS_RUNNING)
    batch_size: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    max_batches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    batches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    promoted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_remaining: Mapped[int | None] = mapped_column(Integer, default=None)
    avg_processing_ms: Mapped[int | None] = mapped_column(Integer, default=None)

    error_message: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<MigrationRun {self.id} {self.status}>"
