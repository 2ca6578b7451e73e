"""Task service — business logic for tasks.

Learn: Tasks are owned by a user and optionally filed under one of
that user's categories. References are checked here, not left to
foreign keys: a category or label id that isn't the caller's is a
NotFoundError, the same as one that doesn't exist.

Two fields feed the notification sweep:
- due_date     → overdue notices, daily summaries, overdue digests
- reminder_at  → a one-shot reminder, cleared once it fires
Changing reminder_at re-arms the reminder; snoozing pushes it a day out.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.db.models import Category, Label, Notification, Task
from pillar.services.errors import NotFoundError

UPDATABLE_FIELDS = (
    "title",
    "description",
    "priority",
    "due_date",
    "reminder_at",
    "order",
    "assignee_id",
)

SNOOZE_DURATION = timedelta(hours=24)


class TaskService:
    """Business logic for task CRUD, completion and ordering."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Read ────────────────────────────────────────────

    async def list_tasks(
        self,
        user_id: uuid.UUID,
        category_id: Optional[uuid.UUID] = None,
        completed: Optional[bool] = None,
        priority: Optional[str] = None,
        limit: int = 500,
        offset: int = 0,
    ) -> list[Task]:
        """List tasks with optional filters.

        Learn: Filters are applied conditionally — only when the
        caller provides them.
        """
        query = (
            select(Task)
            .where(Task.user_id == user_id)
            .order_by(Task.order.asc(), Task.created_at.asc())
            .limit(limit)
            .offset(offset)
        )
        if category_id:
            query = query.where(Task.category_id == category_id)
        if completed is True:
            query = query.where(Task.completed_at.is_not(None))
        elif completed is False:
            query = query.where(Task.completed_at.is_(None))
        if priority:
            query = query.where(Task.priority == priority)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_task(self, user_id: uuid.UUID, task_id: uuid.UUID) -> Optional[Task]:
        result = await self.db.execute(
            select(Task).where(Task.id == task_id, Task.user_id == user_id)
        )
        return result.scalars().first()

    # ─── Create ──────────────────────────────────────────

    async def create_task(
        self,
        user_id: uuid.UUID,
        title: str,
        description: Optional[str] = None,
        priority: str = "medium",
        category_id: Optional[uuid.UUID] = None,
        assignee_id: Optional[uuid.UUID] = None,
        due_date: Optional[datetime] = None,
        reminder_at: Optional[datetime] = None,
        labels: Optional[list[uuid.UUID]] = None,
        order: Optional[int] = None,
    ) -> Task:
        if category_id:
            await self._check_category(user_id, category_id)
        label_ids = await self._check_labels(user_id, labels or [])

        if order is None:
            order = await self._next_order(user_id, category_id)

        task = Task(
            user_id=user_id,
            title=title,
            description=description,
            priority=priority,
            category_id=category_id,
            assignee_id=assignee_id,
            due_date=due_date,
            reminder_at=reminder_at,
            labels=label_ids,
            order=order,
        )
        self.db.add(task)
        await self.db.commit()
        return task

    # ─── Update ──────────────────────────────────────────

    async def update_task(
        self, user_id: uuid.UUID, task_id: uuid.UUID, changes: dict[str, Any]
    ) -> Optional[Task]:
        """Apply a partial update. Only keys present in `changes` are touched."""
        task = await self.get_task(user_id, task_id)
        if not task:
            return None

        if "category_id" in changes:
            if changes["category_id"]:
                await self._check_category(user_id, changes["category_id"])
            task.category_id = changes["category_id"]
        if "labels" in changes:
            task.labels = await self._check_labels(user_id, changes["labels"] or [])
        if "completed" in changes:
            task.completed_at = _now() if changes["completed"] else None

        for field in UPDATABLE_FIELDS:
            if field in changes:
                setattr(task, field, changes[field])

        await self.db.commit()
        return task

    async def toggle_complete(
        self, user_id: uuid.UUID, task_id: uuid.UUID
    ) -> Optional[Task]:
        task = await self.get_task(user_id, task_id)
        if not task:
            return None
        task.completed_at = None if task.completed_at else _now()
        await self.db.commit()
        return task

    async def reorder_tasks(
        self, user_id: uuid.UUID, orders: list[tuple[uuid.UUID, int]]
    ) -> int:
        """Bulk-set `order` on the caller's tasks. All ids must be theirs."""
        ids = [task_id for task_id, _ in orders]
        result = await self.db.execute(
            select(Task).where(Task.id.in_(ids), Task.user_id == user_id)
        )
        tasks = {task.id: task for task in result.scalars().all()}
        if len(tasks) != len(set(ids)):
            raise NotFoundError("One or more tasks not found")

        for task_id, order in orders:
            tasks[task_id].order = order
        await self.db.commit()
        return len(tasks)

    async def snooze_task(
        self,
        user_id: uuid.UUID,
        task_id: uuid.UUID,
        notification_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> tuple[Optional[Task], Optional[Notification]]:
        """Re-arm the task's reminder for SNOOZE_DURATION from now.

        The notification that prompted the snooze (if it is the caller's)
        is marked read and stamped with the same snoozed_until. An unknown
        notification id is ignored; the task is still snoozed.
        """
        task = await self.get_task(user_id, task_id)
        if not task:
            return None, None

        snoozed_until = (now or _now()) + SNOOZE_DURATION
        task.reminder_at = snoozed_until

        notification = None
        if notification_id:
            result = await self.db.execute(
                select(Notification).where(
                    Notification.id == notification_id, Notification.user_id == user_id
                )
            )
            notification = result.scalars().first()
            if notification:
                notification.read = True
                notification.snoozed_until = snoozed_until

        await self.db.commit()
        return task, notification

    async def count_overdue(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> int:
        """Open tasks the user owns or is assigned, due before today (UTC).

        Due dates are stored as UTC midnight, so a task due today is not
        overdue yet.
        """
        today = (now or _now()).replace(hour=0, minute=0, second=0, microsecond=0)
        count = await self.db.scalar(
            select(func.count(Task.id)).where(
                or_(Task.user_id == user_id, Task.assignee_id == user_id),
                Task.completed_at.is_(None),
                Task.due_date.is_not(None),
                Task.due_date < today,
            )
        )
        return count or 0

    # ─── Delete ──────────────────────────────────────────

    async def delete_task(self, user_id: uuid.UUID, task_id: uuid.UUID) -> bool:
        task = await self.get_task(user_id, task_id)
        if not task:
            return False
        await self.db.delete(task)
        await self.db.commit()
        return True

    # ─── Helpers ─────────────────────────────────────────

    async def _check_category(self, user_id: uuid.UUID, category_id: uuid.UUID) -> None:
        found = await self.db.scalar(
            select(Category.id).where(
                Category.id == category_id, Category.user_id == user_id
            )
        )
        if found is None:
            raise NotFoundError("Category not found")

    async def _check_labels(
        self, user_id: uuid.UUID, label_ids: list[uuid.UUID]
    ) -> list[str]:
        """Verify label ownership; returns ids as strings for the JSON column."""
        if not label_ids:
            return []
        unique_ids = list(dict.fromkeys(label_ids))
        result = await self.db.execute(
            select(Label.id).where(Label.id.in_(unique_ids), Label.user_id == user_id)
        )
        if len(result.scalars().all()) != len(unique_ids):
            raise NotFoundError("Label not found")
        return [str(lid) for lid in unique_ids]

    async def _next_order(
        self, user_id: uuid.UUID, category_id: Optional[uuid.UUID]
    ) -> int:
        query = select(Task.order).where(Task.user_id == user_id)
        if category_id:
            query = query.where(Task.category_id == category_id)
        query = query.order_by(Task.order.desc()).limit(1)
        highest = await self.db.scalar(query)
        return 0 if highest is None else highest + 1


def _now() -> datetime:
    return datetime.now(timezone.utc)
