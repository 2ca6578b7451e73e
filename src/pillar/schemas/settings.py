"""Pydantic schemas for the settings endpoints."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, HttpUrl

from pillar.schemas.fields import LongName


class ProfileRead(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    image: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    name: Optional[LongName] = None
    image: Optional[HttpUrl] = None


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=100)


class CalendarSyncRead(BaseModel):
    connected: bool = False
    enabled: bool = False
    calendar_id: str = "primary"
    sync_errors: int = 0
    last_sync_error: Optional[str] = None
    last_sync_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CalendarSyncUpdate(BaseModel):
    enabled: bool


class AccessTokenCreate(BaseModel):
    name: LongName


class AccessTokenRead(BaseModel):
    id: uuid.UUID
    name: str
    token_prefix: str
    last_used_at: Optional[datetime]
    expires_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class AccessTokenCreated(AccessTokenRead):
    """Returned once, at creation. `token` is never shown again."""
    token: str
