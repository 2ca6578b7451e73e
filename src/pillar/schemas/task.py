"""Pydantic schemas for tasks.

Learn: Separate schemas for create/update/read keeps the API clean.
- TaskCreate: what you POST to create a task
- TaskUpdate: what you PATCH (all optional; only sent fields change)
- TaskRead: what the API returns
- TaskReorder: bulk order change from drag-and-drop
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from pillar.schemas.fields import Description, Title

PRIORITY = r"^(urgent|high|medium|low)$"


class TaskCreate(BaseModel):
    title: Title
    description: Optional[Description] = None
    priority: str = Field(default="medium", pattern=PRIORITY)
    category_id: Optional[uuid.UUID] = None
    assignee_id: Optional[uuid.UUID] = None
    due_date: Optional[datetime] = None
    reminder_at: Optional[datetime] = None
    labels: list[uuid.UUID] = Field(default_factory=list)
    order: Optional[int] = Field(None, ge=0)


class TaskUpdate(BaseModel):
    """Partial update — only fields present in the body are applied.

    Sending null for due_date, reminder_at, category_id or assignee_id
    clears them. `completed` sets or clears completed_at.
    """
    title: Optional[Title] = None
    description: Optional[Description] = None
    priority: Optional[str] = Field(None, pattern=PRIORITY)
    category_id: Optional[uuid.UUID] = None
    assignee_id: Optional[uuid.UUID] = None
    due_date: Optional[datetime] = None
    reminder_at: Optional[datetime] = None
    labels: Optional[list[uuid.UUID]] = None
    order: Optional[int] = Field(None, ge=0)
    completed: Optional[bool] = None


class TaskReorderItem(BaseModel):
    id: uuid.UUID
    order: int = Field(..., ge=0)


class TaskReorder(BaseModel):
    tasks: list[TaskReorderItem] = Field(..., min_length=1, max_length=500)


class TaskRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    assignee_id: Optional[uuid.UUID]
    category_id: Optional[uuid.UUID]
    title: str
    description: Optional[str]
    priority: str
    due_date: Optional[datetime]
    reminder_at: Optional[datetime]
    completed_at: Optional[datetime]
    order: int
    labels: list[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TaskSnooze(BaseModel):
    """Body of POST /tasks/{id}/snooze. The notification, if given, is marked read."""
    notification_id: Optional[uuid.UUID] = None


class TaskSnoozeResult(BaseModel):
    success: bool = True
    snoozed_until: datetime


class OverdueCount(BaseModel):
    count: int
