"""Pydantic schemas for categories, labels and filter presets.

Learn: Request schemas catch shape problems (wrong types, bad enums,
over-long names after trimming) and become 400s. Names are trimmed
before their length is checked; a name of only spaces passes here and
fails in the model with "name is required".
"""

import uuid
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from pillar.schemas.fields import Name

HEX_COLOR = r"^#[0-9a-fA-F]{6}$"


# ─── Categories ──────────────────────────────────────────

class CategoryCreate(BaseModel):
    name: Name
    color: Optional[str] = Field(None, pattern=HEX_COLOR)
    icon: Optional[Name] = None
    order: Optional[int] = Field(None, ge=0)
    collapsed: bool = False


class CategoryUpdate(BaseModel):
    """Partial update — only fields present in the body are applied."""
    name: Optional[Name] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR)
    icon: Optional[Name] = None
    order: Optional[int] = Field(None, ge=0)
    collapsed: Optional[bool] = None


class CategoryRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    color: str
    icon: Optional[str]
    order: int
    collapsed: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ─── Labels ──────────────────────────────────────────────

class LabelCreate(BaseModel):
    name: Name
    color: str = Field(..., pattern=HEX_COLOR)


class LabelUpdate(BaseModel):
    name: Optional[Name] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR)


class LabelRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    color: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ─── Filter presets ──────────────────────────────────────

FilterValue = Union[str, list[str]]


class FilterPresetCreate(BaseModel):
    name: Name
    context: str = Field(..., pattern=r"^(overview|kanban)$")
    filters: dict[str, FilterValue] = Field(default_factory=dict)
    order: Optional[int] = Field(None, ge=0)


class FilterPresetUpdate(BaseModel):
    name: Optional[Name] = None
    filters: Optional[dict[str, FilterValue]] = None
    order: Optional[int] = Field(None, ge=0)


class FilterPresetRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    context: str
    filters: dict[str, FilterValue]
    order: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
