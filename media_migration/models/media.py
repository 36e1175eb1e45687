"""Unit media (photo/video) rows and their migration state.

The migration columns (`migration_status`, `migration_error`,
`destination_ref`, `destination_path`, `quality_version`, `migrated_at`) are
the durable checkpoint of the re-import pipeline: a run can be stopped at any
point and resumed without reprocessing completed items.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin

STATUS_NONE = "none"
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_DONE = "done"
STATUS_ERROR = "error"

MIGRATION_STATUSES = (
    STATUS_NONE,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_DONE,
    STATUS_ERROR,
)

SLOT_PRIMARY = "primary"
SLOT_SECONDARY = "secondary"

# Max visible photos per (unit, slot).
SLOT_CAPACITY = {
    SLOT_PRIMARY: 5,
    SLOT_SECONDARY: 20,
}

MEDIA_TYPE_PHOTO = "photo"
MEDIA_TYPE_VIDEO = "video"

HIGH_QUALITY_VERSION = 2


class UnitMedia(UUIDMixin, TimestampMixin, Base):
    """A photo or video attached to a unit."""

    __tablename__ = "unit_media"
    __table_args__ = (
        Index("ix_unit_media_status_created", "migration_status", "created_at"),
        Index("ix_unit_media_unit_slot", "unit_id", "slot"),
    )

    unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("unit.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    media_type: Mapped[str] = mapped_column(String(20), nullable=False, default=MEDIA_TYPE_PHOTO)
    file_name: Mapped[str | None] = mapped_column(String(500), default=None)

    # External (Google Drive) file id; rows without it cannot be migrated.
    source_ref: Mapped[str | None] = mapped_column(String(200), default=None, index=True)
    mime_type: Mapped[str | None] = mapped_column(String(200), default=None)

    # primary/secondary; NULL means the row does not count against any slot.
    slot: Mapped[str | None] = mapped_column(String(20), default=None)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Low-quality copy written by the original ingestion.
    storage_url: Mapped[str | None] = mapped_column(Text, default=None)
    quality_version: Mapped[int | None] = mapped_column(Integer, default=1)

    migration_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=STATUS_NONE, index=True
    )
    migration_error: Mapped[str | None] = mapped_column(Text, default=None)
    destination_ref: Mapped[str | None] = mapped_column(Text, default=None)
    destination_path: Mapped[str | None] = mapped_column(String(500), default=None)
    migrated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<UnitMedia {self.id} {self.migration_status}>"
