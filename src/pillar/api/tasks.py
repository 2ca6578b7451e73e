"""Task API routes.

Learn: These routes are the HTTP interface to TaskService.
Routes just translate HTTP to service calls and handle error responses.

Key patterns:
- POST for creation, toggles and snoozes (not idempotent)
- PATCH for partial updates (only fields present in the body change)
- Query params for filtering (category_id, completed, priority)
- Static paths (/tasks/reorder) are declared before /tasks/{task_id}
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.db.engine import get_db
from pillar.events.types import (
    CREATED,
    DELETED,
    ENTITY_NOTIFICATION,
    ENTITY_TASK,
    REORDERED,
    UPDATED,
)
from pillar.realtime.publisher import SyncPublisher, get_sync_publisher
from pillar.schemas.task import (
    TaskCreate,
    TaskRead,
    TaskReorder,
    TaskSnooze,
    TaskSnoozeResult,
    TaskUpdate,
)
from pillar.services.errors import NotFoundError
from pillar.services.task_service import TaskService

router = APIRouter(prefix="/tasks")


def _svc(db: AsyncSession = Depends(get_db)) -> TaskService:
    return TaskService(db)


def _data(task) -> dict:
    return TaskRead.model_validate(task).model_dump(mode="json")


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    category_id: Optional[uuid.UUID] = Query(None, description="Filter by category"),
    completed: Optional[bool] = Query(None, description="Filter by completion"),
    priority: Optional[str] = Query(None, pattern=r"^(urgent|high|medium|low)$"),
    limit: int = Query(500, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_svc),
):
    """List the caller's tasks with optional filters."""
    return await svc.list_tasks(
        identity.user_uuid,
        category_id=category_id,
        completed=completed,
        priority=priority,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=TaskRead, status_code=201)
async def create_task(
    body: TaskCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    try:
        task = await svc.create_task(identity.user_uuid, **body.model_dump())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    publisher.publish(ENTITY_TASK, CREATED, task.id, _data(task))
    return task


@router.patch("/reorder")
async def reorder_tasks(
    body: TaskReorder,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Bulk-update task order after a drag-and-drop."""
    try:
        await svc.reorder_tasks(
            identity.user_uuid, [(item.id, item.order) for item in body.tasks]
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    publisher.publish(ENTITY_TASK, REORDERED, "")
    return {"success": True}


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_svc),
):
    task = await svc.get_task(identity.user_uuid, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Partially update a task."""
    try:
        task = await svc.update_task(
            identity.user_uuid, task_id, body.model_dump(exclude_unset=True)
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    publisher.publish(ENTITY_TASK, UPDATED, task.id, _data(task))
    return task


@router.post("/{task_id}/complete", response_model=TaskRead)
async def toggle_complete(
    task_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Mark a task complete, or reopen it if it already was."""
    task = await svc.toggle_complete(identity.user_uuid, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    publisher.publish(ENTITY_TASK, UPDATED, task.id, _data(task))
    return task


@router.post("/{task_id}/snooze", response_model=TaskSnoozeResult)
async def snooze_task(
    task_id: uuid.UUID,
    body: Optional[TaskSnooze] = None,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    """Push the task's reminder 24 hours out, from a reminder's "snooze" action."""
    notification_id = body.notification_id if body else None
    task, notification = await svc.snooze_task(identity.user_uuid, task_id, notification_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    publisher.publish(ENTITY_TASK, UPDATED, task.id, _data(task))
    if notification:
        publisher.publish(ENTITY_NOTIFICATION, UPDATED, notification.id)
    return TaskSnoozeResult(snoozed_until=task.reminder_at)


@router.delete("/{task_id}")
async def delete_task(
    task_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_svc),
    publisher: SyncPublisher = Depends(get_sync_publisher),
):
    if not await svc.delete_task(identity.user_uuid, task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    publisher.publish(ENTITY_TASK, DELETED, task_id)
    return {"success": True}
