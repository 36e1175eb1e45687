"""Unit model - a rental unit, the parent of migrated media."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class Unit(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "unit"

    agency_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("agency.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        default=None,
    )
    name: Mapped[str] = mapped_column(String(200), default="")

    def __repr__(self) -> str:
        return f"<Unit {self.name!r}>"
