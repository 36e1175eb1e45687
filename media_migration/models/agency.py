"""Agency model - the organizational unit that owns rental units."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class Agency(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "agency"

    name: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)

    def __repr__(self) -> str:
        return f"<Agency {self.slug!r}>"
