"""Photo slot capacity checks (max visible photos per unit and slot)."""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.media import MEDIA_TYPE_PHOTO, SLOT_CAPACITY, UnitMedia


class SlotCapacityValidator:
    """Decides whether a photo may be finalized into its slot.

    Counts every non-hidden photo of the unit in that slot regardless of
    migration status. The check is advisory: it is not atomic with the later
    status update, which is fine for the single sequential driver.
    """

    def __init__(self, db: AsyncSession, capacities: dict[str, int] | None = None):
        self.db = db
        self.capacities = dict(capacities or SLOT_CAPACITY)

    def capacity_for(self, slot: str) -> int:
        try:
            return self.capacities[slot]
        except KeyError:
            raise ValueError(f"unknown photo slot: {slot!r}") from None

    async def occupancy(
        self,
        unit_id: uuid.UUID,
        slot: str,
        *,
        exclude_media_id: uuid.UUID | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(UnitMedia).where(
            UnitMedia.unit_id == unit_id,
            UnitMedia.media_type == MEDIA_TYPE_PHOTO,
            UnitMedia.slot == slot,
            UnitMedia.is_hidden.is_(False),
        )
        if exclude_media_id is not None:
            stmt = stmt.where(UnitMedia.id != exclude_media_id)
        return int((await self.db.execute(stmt)).scalar_one())

    async def can_promote(
        self,
        unit_id: uuid.UUID,
        slot: str,
        exclude_media_id: uuid.UUID | None = None,
    ) -> bool:
        """True if one more photo fits in (unit_id, slot).

        Pass the id of the photo being promoted as `exclude_media_id` so it
        does not count against itself.
        """
        capacity = self.capacity_for(slot)
        count = await self.occupancy(unit_id, slot, exclude_media_id=exclude_media_id)
        return count < capacity
