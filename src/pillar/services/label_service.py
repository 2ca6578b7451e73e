"""Label service — colored tags, unique by name per user."""

import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.db.models import Label, Task
from pillar.services.errors import ConflictError

DUPLICATE_LABEL = "Label already exists"


class LabelService:
    """Business logic for labels."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_labels(self, user_id: uuid.UUID) -> list[Label]:
        result = await self.db.execute(
            select(Label).where(Label.user_id == user_id).order_by(Label.name.asc())
        )
        return list(result.scalars().all())

    async def get_label(
        self, user_id: uuid.UUID, label_id: uuid.UUID
    ) -> Optional[Label]:
        result = await self.db.execute(
            select(Label).where(Label.id == label_id, Label.user_id == user_id)
        )
        return result.scalars().first()

    async def create_label(self, user_id: uuid.UUID, name: str, color: str) -> Label:
        label = Label(user_id=user_id, name=name, color=color)
        await self._ensure_unique(user_id, label.name)
        self.db.add(label)
        await self._commit_unique()
        return label

    async def update_label(
        self, user_id: uuid.UUID, label_id: uuid.UUID, changes: dict[str, Any]
    ) -> Optional[Label]:
        label = await self.get_label(user_id, label_id)
        if not label:
            return None
        if "name" in changes:
            new_name = changes["name"]
            if isinstance(new_name, str):
                new_name = new_name.strip()
            # Check before assigning so autoflush never sees the duplicate.
            if new_name != label.name:
                await self._ensure_unique(user_id, new_name, exclude_id=label_id)
            label.name = changes["name"]
        if "color" in changes:
            label.color = changes["color"]
        await self._commit_unique()
        return label

    async def delete_label(self, user_id: uuid.UUID, label_id: uuid.UUID) -> bool:
        """Delete a label and pull its id out of every task that carries it."""
        label = await self.get_label(user_id, label_id)
        if not label:
            return False

        label_key = str(label_id)
        # JSON array membership isn't portable across dialects; filter here.
        result = await self.db.execute(select(Task).where(Task.user_id == user_id))
        for task in result.scalars().all():
            if label_key in (task.labels or []):
                task.labels = [lid for lid in task.labels if lid != label_key]

        await self.db.delete(label)
        await self.db.commit()
        return True

    # ─── Helpers ─────────────────────────────────────────

    async def _ensure_unique(
        self,
        user_id: uuid.UUID,
        name: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        q = select(Label.id).where(Label.user_id == user_id, Label.name == name)
        if exclude_id is not None:
            q = q.where(Label.id != exclude_id)
        existing = await self.db.scalar(q)
        if existing is not None:
            await self.db.rollback()
            raise ConflictError(DUPLICATE_LABEL)

    async def _commit_unique(self) -> None:
        # Two concurrent creates can both pass _ensure_unique.
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(DUPLICATE_LABEL)
