"""Migration models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin
from .agency import Agency
from .unit import Unit
from .media import UnitMedia
from .log import MigrationLog
from .run import MigrationRun

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "Agency",
    "Unit",
    "UnitMedia",
    "MigrationLog",
    "MigrationRun",
]
