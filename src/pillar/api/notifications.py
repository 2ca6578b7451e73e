"""Notification API routes.

Learn: Three groups under /notifications:
- /check-due-dates   run the notification sweep now, for the caller only
- /preferences       the caller's preference row (auto-created on GET)
- /, /{id}           the notifications themselves

The static paths are declared first so "/preferences" never gets
parsed as a notification id.
"""

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.db.engine import get_db
from pillar.events.bus import EventBus, emit_notification_event, get_event_bus
from pillar.events.types import (
    CREATED,
    DELETED,
    ENTITY_NOTIFICATION,
    ENTITY_SETTINGS,
    UPDATED,
)
from pillar.realtime.publisher import SyncPublisher, get_sync_publisher
from pillar.schemas.notification import (
    CheckDueDatesResult,
    NotificationCreate,
    NotificationPreferenceRead,
    NotificationPreferenceUpdate,
    NotificationRead,
    NotificationUpdate,
)
from pillar.services.errors import NotFoundError
from pillar.services.notification_service import NotificationService, to_event
from pillar.services.notification_worker import process_notifications

logger = structlog.get_logger()

router = APIRouter(prefix="/notifications")


def _svc(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


# ═══════════════════════════════════════════════════════════
# Sweep
# ═══════════════════════════════════════════════════════════


@router.post("/check-due-dates", response_model=CheckDueDatesResult)
async def check_due_dates(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    """Run the notification sweep for the caller's tasks.

    Learn: Same code path as the background worker, scoped to one user.
    The client calls this on load so reminders show up without waiting
    for the next worker tick.
    """
    try:
        counts = await process_notifications(db, bus, scope_user_id=identity.user_uuid)
    except Exception:
        logger.exception("notifications.check_due_dates_failed", user_id=identity.user_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    return CheckDueDatesResult(
        reminders=counts["reminders"],
        overdue=counts["overdue"],
        dailySummaries=counts["daily_summaries"],
        overdueDigests=counts["overdue_digests"],
        notificationsCreated=sum(counts.values()),
    )


# ═══════════════════════════════════════════════════════════
# Preferences
# ═══════════════════════════════════════════════════════════


@router.get("/preferences", response_model=NotificationPreferenceRead)
async def get_preferences(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
):
    """Return the caller's preferences, creating defaults on first access."""
    return await svc.get_preferences(identity.user_uuid)


@router.patch("/preferences", response_model=NotificationPreferenceRead)
async def update_preferences(
    body: NotificationPreferenceUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    prefs = await svc.update_preferences(
        identity.user_uuid, body.model_dump(exclude_unset=True)
    )
    publisher.publish(ENTITY_SETTINGS, UPDATED, prefs.id)
    return prefs


# ═══════════════════════════════════════════════════════════
# Notifications
# ═══════════════════════════════════════════════════════════


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    read: Optional[bool] = Query(None),
    dismissed: Optional[bool] = Query(None),
    type: Optional[str] = Query(None, description="Comma-separated types"),
    task_id: Optional[uuid.UUID] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
):
    """List the caller's notifications, newest first."""
    types = [t.strip() for t in type.split(",") if t.strip()] if type else None
    return await svc.list_notifications(
        identity.user_uuid,
        read=read,
        dismissed=dismissed,
        types=types,
        task_id=task_id,
        limit=limit,
    )


@router.post("", response_model=NotificationRead, status_code=201)
async def create_notification(
    body: NotificationCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
    bus: EventBus = Depends(get_event_bus),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    try:
        notification = await svc.create_for_owner(
            identity.user_uuid, **body.model_dump()
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    emit_notification_event(bus, to_event(notification))
    publisher.publish(ENTITY_NOTIFICATION, CREATED, notification.id)
    return notification


@router.get("/{notification_id}", response_model=NotificationRead)
async def get_notification(
    notification_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
):
    notification = await svc.get_notification(identity.user_uuid, notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.patch("/{notification_id}", response_model=NotificationRead)
async def update_notification(
    notification_id: uuid.UUID,
    body: NotificationUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Mark read/dismissed, or snooze (null snoozed_until un-snoozes)."""
    notification = await svc.update_notification(
        identity.user_uuid, notification_id, body.model_dump(exclude_unset=True)
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    publisher.publish(ENTITY_NOTIFICATION, UPDATED, notification.id)
    return notification


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    if not await svc.delete_notification(identity.user_uuid, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    publisher.publish(ENTITY_NOTIFICATION, DELETED, notification_id)
    return {"success": True}
