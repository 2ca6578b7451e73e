"""Event type constants and payload shapes.

Learn: Centralizing event names and entity names as constants prevents
typos and makes it easy to discover everything that flows over the bus.

Payloads are pydantic models with camelCase aliases — the browser
consumes the JSON directly, so the wire shape stays camelCase while
Python code uses snake_case attributes.
"""

import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ─── Bus event names ─────────────────────────────────────

SYNC = "sync"
NOTIFICATION = "notification"

# ─── Entities that publish sync events ──────────────────

ENTITY_TASK = "task"
ENTITY_CATEGORY = "category"
ENTITY_LABEL = "label"
ENTITY_FILTER_PRESET = "filter-preset"
ENTITY_NOTIFICATION = "notification"
ENTITY_SETTINGS = "settings"

SYNC_ENTITIES = (
    ENTITY_TASK,
    ENTITY_CATEGORY,
    ENTITY_LABEL,
    ENTITY_FILTER_PRESET,
    ENTITY_NOTIFICATION,
    ENTITY_SETTINGS,
)

# ─── Actions ─────────────────────────────────────────────

CREATED = "created"
UPDATED = "updated"
DELETED = "deleted"
REORDERED = "reordered"

SYNC_ACTIONS = (CREATED, UPDATED, DELETED, REORDERED)


def now_ms() -> int:
    return int(time.time() * 1000)


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SyncEvent(_WireModel):
    """A user's data changed. Broadcast to that user's other sessions."""

    entity: str
    action: str
    user_id: str
    session_id: str = ""
    entity_id: str
    data: Optional[dict[str, Any]] = None
    timestamp: int = Field(default_factory=now_ms)


class NotificationEvent(_WireModel):
    """A notification row was created for a user."""

    type: str
    notification_id: str
    user_id: str
    task_id: Optional[str] = None
    title: str
    message: str
    metadata: Optional[dict[str, Any]] = None
    timestamp: int = Field(default_factory=now_ms)
