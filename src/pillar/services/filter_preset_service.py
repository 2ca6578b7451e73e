"""Filter preset service — saved filter sets for the overview and kanban views."""

import uuid
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.db.models import FilterPreset
from pillar.services.errors import LimitExceededError

MAX_PRESETS_PER_CONTEXT = 50

UPDATABLE_FIELDS = ("name", "filters", "order")


class FilterPresetService:
    """Business logic for filter presets."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_presets(
        self, user_id: uuid.UUID, context: Optional[str] = None
    ) -> list[FilterPreset]:
        query = (
            select(FilterPreset)
            .where(FilterPreset.user_id == user_id)
            .order_by(FilterPreset.order.asc(), FilterPreset.created_at.asc())
        )
        if context:
            query = query.where(FilterPreset.context == context)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_preset(
        self, user_id: uuid.UUID, preset_id: uuid.UUID
    ) -> Optional[FilterPreset]:
        result = await self.db.execute(
            select(FilterPreset).where(
                FilterPreset.id == preset_id, FilterPreset.user_id == user_id
            )
        )
        return result.scalars().first()

    async def create_preset(
        self,
        user_id: uuid.UUID,
        name: str,
        context: str,
        filters: Optional[dict] = None,
        order: Optional[int] = None,
    ) -> FilterPreset:
        """Create a preset; at most 50 per (user, context). New ones go last."""
        count = await self.db.scalar(
            select(func.count(FilterPreset.id)).where(
                FilterPreset.user_id == user_id, FilterPreset.context == context
            )
        )
        if count >= MAX_PRESETS_PER_CONTEXT:
            raise LimitExceededError(
                f"Maximum of {MAX_PRESETS_PER_CONTEXT} presets per context reached"
            )

        preset = FilterPreset(
            user_id=user_id,
            name=name,
            context=context,
            filters=filters or {},
            order=count if order is None else order,
        )
        self.db.add(preset)
        await self.db.commit()
        return preset

    async def update_preset(
        self, user_id: uuid.UUID, preset_id: uuid.UUID, changes: dict[str, Any]
    ) -> Optional[FilterPreset]:
        preset = await self.get_preset(user_id, preset_id)
        if not preset:
            return None
        for field in UPDATABLE_FIELDS:
            if field in changes:
                setattr(preset, field, changes[field])
        await self.db.commit()
        return preset

    async def delete_preset(self, user_id: uuid.UUID, preset_id: uuid.UUID) -> bool:
        preset = await self.get_preset(user_id, preset_id)
        if not preset:
            return False
        await self.db.delete(preset)
        await self.db.commit()
        return True
