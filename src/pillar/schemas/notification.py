"""Pydantic schemas for notifications and notification preferences."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field

from pillar.schemas.fields import Message, Title

HH_MM = r"^([0-1]\d|2[0-3]):[0-5]\d$"


# ─── Notifications ───────────────────────────────────────

class NotificationCreate(BaseModel):
    task_id: Optional[uuid.UUID] = None
    type: str = Field(..., pattern=r"^(reminder|overdue|daily-summary)$")
    title: Title
    message: Message
    scheduled_for: Optional[datetime] = None
    snoozed_until: Optional[datetime] = None
    metadata: Optional[dict[str, Any]] = None


class NotificationUpdate(BaseModel):
    read: Optional[bool] = None
    dismissed: Optional[bool] = None
    snoozed_until: Optional[datetime] = None


class NotificationRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    task_id: Optional[uuid.UUID]
    type: str
    title: str
    message: str
    read: bool
    dismissed: bool
    scheduled_for: Optional[datetime]
    sent_at: Optional[datetime]
    snoozed_until: Optional[datetime]
    # The ORM attribute is `meta`; the column and the API field are "metadata".
    metadata: Optional[dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("meta", "metadata")
    )
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CheckDueDatesResult(BaseModel):
    reminders: int
    overdue: int
    dailySummaries: int
    overdueDigests: int
    notificationsCreated: int


# ─── Preferences ─────────────────────────────────────────

class NotificationPreferenceUpdate(BaseModel):
    enable_browser_push: Optional[bool] = None
    enable_in_app_notifications: Optional[bool] = None
    reminder_timings: Optional[list[int]] = Field(None, max_length=10)
    enable_email_digest: Optional[bool] = None
    email_digest_frequency: Optional[str] = Field(None, pattern=r"^(daily|weekly|none)$")
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = Field(None, pattern=HH_MM)
    quiet_hours_end: Optional[str] = Field(None, pattern=HH_MM)
    enable_overdue_summary: Optional[bool] = None
    overdue_summary_time: Optional[str] = Field(None, pattern=HH_MM)
    enable_daily_summary: Optional[bool] = None
    daily_summary_time: Optional[str] = Field(None, pattern=HH_MM)
    timezone: Optional[str] = Field(None, min_length=1, max_length=64)


class NotificationPreferenceRead(BaseModel):
    user_id: uuid.UUID
    enable_browser_push: bool
    enable_in_app_notifications: bool
    reminder_timings: list[int]
    enable_email_digest: bool
    email_digest_frequency: str
    quiet_hours_enabled: bool
    quiet_hours_start: str
    quiet_hours_end: str
    enable_overdue_summary: bool
    overdue_summary_time: str
    enable_daily_summary: bool
    daily_summary_time: str
    timezone: str
    updated_at: datetime

    model_config = {"from_attributes": True}
