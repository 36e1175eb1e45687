"""Per-item migration outcome log."""

from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class MigrationLog(UUIDMixin, TimestampMixin, Base):
    """One row per processed item per run (done/error)."""

    __tablename__ = "migration_log"

    run_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    media_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("unit_media.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, default=None)
    size_bytes: Mapped[int | None] = mapped_column(BigInteger, default=None)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, default=None)
