"""Category service — CRUD for the sidebar groupings.

Learn: Every query is scoped by user_id. A category id that belongs to
someone else behaves exactly like one that doesn't exist (None → 404),
so ids can't be probed across accounts.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.db.models import Category, Task

UPDATABLE_FIELDS = ("name", "color", "icon", "order", "collapsed")


class CategoryService:
    """Business logic for categories."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_categories(self, user_id: uuid.UUID) -> list[Category]:
        result = await self.db.execute(
            select(Category)
            .where(Category.user_id == user_id)
            .order_by(Category.order.asc(), Category.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_category(
        self, user_id: uuid.UUID, category_id: uuid.UUID
    ) -> Optional[Category]:
        result = await self.db.execute(
            select(Category).where(
                Category.id == category_id, Category.user_id == user_id
            )
        )
        return result.scalars().first()

    async def create_category(
        self,
        user_id: uuid.UUID,
        name: str,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        order: Optional[int] = None,
        collapsed: bool = False,
    ) -> Category:
        """Create a category. Without an explicit order it goes last."""
        if order is None:
            order = await self.db.scalar(
                select(func.count(Category.id)).where(Category.user_id == user_id)
            )
        category = Category(
            user_id=user_id,
            name=name,
            color=color,
            icon=icon,
            order=order,
            collapsed=collapsed,
        )
        self.db.add(category)
        await self.db.commit()
        return category

    async def update_category(
        self, user_id: uuid.UUID, category_id: uuid.UUID, changes: dict[str, Any]
    ) -> Optional[Category]:
        category = await self.get_category(user_id, category_id)
        if not category:
            return None
        for field in UPDATABLE_FIELDS:
            if field in changes:
                setattr(category, field, changes[field])
        await self.db.commit()
        return category

    async def delete_category(
        self, user_id: uuid.UUID, category_id: uuid.UUID
    ) -> bool:
        """Delete a category and every task filed under it."""
        category = await self.get_category(user_id, category_id)
        if not category:
            return False
        await self.db.execute(delete(Task).where(Task.category_id == category_id))
        await self.db.delete(category)
        await self.db.commit()
        return True
