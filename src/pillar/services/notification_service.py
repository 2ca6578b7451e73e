"""Notification service — the bell menu and per-user preferences.

Learn: Notifications are written by two producers: the sweep
(notification_worker) and POST /api/notifications. Both go through
create_notification() here and then announce the row on the bus with
to_event(), so an open tab shows it without polling.

Preferences are one row per user, created with defaults the first time
anything asks for them.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.db.models import Notification, NotificationPreference, Task
from pillar.events.types import NotificationEvent
from pillar.services.errors import NotFoundError

UPDATABLE_FIELDS = ("read", "dismissed", "snoozed_until")

PREFERENCE_FIELDS = (
    "enable_browser_push",
    "enable_in_app_notifications",
    "reminder_timings",
    "enable_email_digest",
    "email_digest_frequency",
    "quiet_hours_enabled",
    "quiet_hours_start",
    "quiet_hours_end",
    "enable_overdue_summary",
    "overdue_summary_time",
    "enable_daily_summary",
    "daily_summary_time",
    "timezone",
)


def to_event(notification: Notification) -> NotificationEvent:
    """Bus payload announcing a freshly created notification."""
    return NotificationEvent(
        type=notification.type,
        notification_id=str(notification.id),
        user_id=str(notification.user_id),
        task_id=str(notification.task_id) if notification.task_id else None,
        title=notification.title,
        message=notification.message,
        metadata=notification.meta,
    )


class NotificationService:
    """Business logic for notifications and notification preferences."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ═══════════════════════════════════════════════════════
    # Notifications
    # ═══════════════════════════════════════════════════════

    async def list_notifications(
        self,
        user_id: uuid.UUID,
        read: Optional[bool] = None,
        dismissed: Optional[bool] = None,
        types: Optional[list[str]] = None,
        task_id: Optional[uuid.UUID] = None,
        limit: Optional[int] = None,
    ) -> list[Notification]:
        """Newest first, with optional filters."""
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        if read is not None:
            query = query.where(Notification.read == read)
        if dismissed is not None:
            query = query.where(Notification.dismissed == dismissed)
        if types:
            query = query.where(Notification.type.in_(types))
        if task_id:
            query = query.where(Notification.task_id == task_id)
        if limit:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_notification(
        self, user_id: uuid.UUID, notification_id: uuid.UUID
    ) -> Optional[Notification]:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        return result.scalars().first()

    async def create_notification(
        self,
        user_id: uuid.UUID,
        type: str,
        title: str,
        message: str,
        task_id: Optional[uuid.UUID] = None,
        scheduled_for: Optional[datetime] = None,
        snoozed_until: Optional[datetime] = None,
        metadata: Optional[dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
        commit: bool = True,
    ) -> Notification:
        """Insert a notification.

        Learn: The sweep creates many rows in one pass and passes
        commit=False; it flushes here and commits once at the end.
        """
        notification = Notification(
            user_id=user_id,
            task_id=task_id,
            type=type,
            title=title,
            message=message,
            scheduled_for=scheduled_for,
            snoozed_until=snoozed_until,
            meta=metadata,
        )
        if created_at is not None:
            notification.created_at = created_at
        self.db.add(notification)
        if commit:
            await self.db.commit()
        else:
            await self.db.flush()
        return notification

    async def create_for_owner(
        self, user_id: uuid.UUID, task_id: Optional[uuid.UUID], **fields: Any
    ) -> Notification:
        """create_notification for the API: the task must be the caller's."""
        if task_id:
            found = await self.db.scalar(
                select(Task.id).where(Task.id == task_id, Task.user_id == user_id)
            )
            if found is None:
                raise NotFoundError("Task not found")
        return await self.create_notification(user_id, task_id=task_id, **fields)

    async def update_notification(
        self,
        user_id: uuid.UUID,
        notification_id: uuid.UUID,
        changes: dict[str, Any],
    ) -> Optional[Notification]:
        notification = await self.get_notification(user_id, notification_id)
        if not notification:
            return None
        for field in UPDATABLE_FIELDS:
            if field in changes:
                setattr(notification, field, changes[field])
        await self.db.commit()
        return notification

    async def delete_notification(
        self, user_id: uuid.UUID, notification_id: uuid.UUID
    ) -> bool:
        notification = await self.get_notification(user_id, notification_id)
        if not notification:
            return False
        await self.db.delete(notification)
        await self.db.commit()
        return True

    # ═══════════════════════════════════════════════════════
    # Preferences
    # ═══════════════════════════════════════════════════════

    async def get_preferences(self, user_id: uuid.UUID) -> NotificationPreference:
        """Return the user's preferences, creating the default row if missing."""
        prefs = await self._find_preferences(user_id)
        if prefs:
            return prefs

        prefs = NotificationPreference(user_id=user_id)
        self.db.add(prefs)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another request created it first
            await self.db.rollback()
            prefs = await self._find_preferences(user_id)
        return prefs

    async def update_preferences(
        self, user_id: uuid.UUID, changes: dict[str, Any]
    ) -> NotificationPreference:
        prefs = await self.get_preferences(user_id)
        for field in PREFERENCE_FIELDS:
            if field in changes:
                setattr(prefs, field, changes[field])
        await self.db.commit()
        return prefs

    async def _find_preferences(
        self, user_id: uuid.UUID
    ) -> Optional[NotificationPreference]:
        result = await self.db.execute(
            select(NotificationPreference).where(
                NotificationPreference.user_id == user_id
            )
        )
        return result.scalars().first()
