"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic auto-generates migrations by comparing these models to the actual DB.

Key concepts:
- UUID primary keys, every record owned by a user (user_id)
- JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
- Field constraints (required, trim, max length, enum, hex color) are
  enforced here by @validates hooks, so every write path gets them —
  not just the HTTP layer. Violations raise ModelValidationError.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates


class Base(DeclarativeBase):
    """Base class for all models."""

    # Fields checked again right before INSERT: @validates only fires on
    # assignment, so a field that was never set would slip through.
    __required_fields__: tuple[str, ...] = ()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


JsonType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always comes back as UTC.

    SQLite drops tzinfo on the way in; this re-attaches it on the way out
    so comparisons against datetime.now(timezone.utc) never mix naive and
    aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


# ══════════════════════════════════════════════════════════════
# Validation helpers
# ══════════════════════════════════════════════════════════════

HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
HH_MM_RE = re.compile(r"^([0-1]\d|2[0-3]):[0-5]\d$")

DEFAULT_CATEGORY_COLOR = "#6366f1"


class ModelValidationError(ValueError):
    """Raised when a record violates a field constraint."""

    def __init__(self, model: str, field: str, reason: str):
        self.model = model
        self.field = field
        self.reason = reason
        super().__init__(f"{model} validation failed: {field} {reason}")


def _fail(target: Any, field: str, reason: str) -> None:
    raise ModelValidationError(type(target).__name__, field, reason)


def clean_str(
    target: Any,
    field: str,
    value: Optional[str],
    *,
    required: bool = False,
    max_length: Optional[int] = None,
    trim: bool = True,
) -> Optional[str]:
    """Trim, then check required + max length. Returns the cleaned value."""
    if value is not None:
        if not isinstance(value, str):
            _fail(target, field, "must be a string")
        if trim:
            value = value.strip()
    if required and not value:
        _fail(target, field, "is required")
    if value is not None and max_length is not None and len(value) > max_length:
        _fail(target, field, f"must be at most {max_length} characters")
    return value


def check_enum(target: Any, field: str, value: Optional[str], allowed: Iterable[str]) -> Optional[str]:
    allowed = tuple(allowed)
    if value is not None and value not in allowed:
        _fail(target, field, f"must be one of {', '.join(allowed)}")
    return value


def check_pattern(target: Any, field: str, value: Optional[str], pattern: re.Pattern, hint: str) -> Optional[str]:
    if value is not None and not pattern.match(value):
        _fail(target, field, f"must be {hint}")
    return value


@event.listens_for(Base, "before_insert", propagate=True)
def _check_required_fields(mapper, connection, target) -> None:
    for field in target.__required_fields__:
        value = getattr(target, field)
        if value is None or value == "":
            _fail(target, field, "is required")


# ══════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A person using the app.

    Learn: Accounts are issued by the external auth provider; this table
    only mirrors what the app needs (profile, optional password hash for
    credential logins).
    """

    __tablename__ = "users"
    __required_fields__ = ("email", "name")

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # nullable for OAuth-only accounts
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    @validates("email")
    def _validate_email(self, key, value):
        value = clean_str(self, key, value, required=True, max_length=255)
        return value.lower()

    @validates("name")
    def _validate_name(self, key, value):
        return clean_str(self, key, value, required=True, max_length=100)


class AccessToken(Base):
    """Personal API token. Only the sha256 hash is stored."""

    __tablename__ = "access_tokens"
    __required_fields__ = ("user_id", "name", "token_hash")

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    token_prefix: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    last_used_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    @validates("name")
    def _validate_name(self, key, value):
        return clean_str(self, key, value, required=True, max_length=100)


# ══════════════════════════════════════════════════════════════
# Organisation: categories, labels, filter presets
# ══════════════════════════════════════════════════════════════


class Category(Base):
    """Top-level grouping of tasks in the sidebar."""

    __tablename__ = "categories"
    __required_fields__ = ("user_id", "name")

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[str] = mapped_column(
        String(7), nullable=False, default=DEFAULT_CATEGORY_COLOR
    )
    icon: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    collapsed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    @validates("name")
    def _validate_name(self, key, value):
        return clean_str(self, key, value, required=True, max_length=50)

    @validates("color")
    def _validate_color(self, key, value):
        if value is None:
            return DEFAULT_CATEGORY_COLOR
        return check_pattern(self, key, value, HEX_COLOR_RE, "a hex color like #6366f1")

    @validates("icon")
    def _validate_icon(self, key, value):
        return clean_str(self, key, value, max_length=50)

    @validates("order")
    def _validate_order(self, key, value):
        if value is not None and value < 0:
            _fail(self, key, "must be zero or greater")
        return value


class Label(Base):
    """Colored tag attached to tasks. Names are unique per user."""

    __tablename__ = "labels"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_labels_user_name"),
    )
    __required_fields__ = ("user_id", "name", "color")

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    @validates("name")
    def _validate_name(self, key, value):
        return clean_str(self, key, value, required=True, max_length=50)

    @validates("color")
    def _validate_color(self, key, value):
        if value is None:
            _fail(self, key, "is required")
        return check_pattern(self, key, value, HEX_COLOR_RE, "a hex color like #ef4444")


FILTER_PRESET_CONTEXTS = ("overview", "kanban")


class FilterPreset(Base):
    """Saved set of board/overview filters."""

    __tablename__ = "filter_presets"
    __table_args__ = (
        Index("ix_filter_presets_user_context", "user_id", "context"),
    )
    __required_fields__ = ("user_id", "name", "context")

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    context: Mapped[str] = mapped_column(String(20), nullable=False)
    filters: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    @validates("name")
    def _validate_name(self, key, value):
        return clean_str(self, key, value, required=True, max_length=50)

    @validates("context")
    def _validate_context(self, key, value):
        return check_enum(self, key, value, FILTER_PRESET_CONTEXTS)

    @validates("filters")
    def _validate_filters(self, key, value):
        if value is None:
            return {}
        if not isinstance(value, dict):
            _fail(self, key, "must be an object")
        for name, item in value.items():
            ok = isinstance(item, str) or (
                isinstance(item, list) and all(isinstance(v, str) for v in item)
            )
            if not ok:
                _fail(self, key, f"value for {name!r} must be a string or list of strings")
        return value


# ══════════════════════════════════════════════════════════════
# Tasks
# ══════════════════════════════════════════════════════════════

TASK_PRIORITIES = ("urgent", "high", "medium", "low")


class Task(Base):
    """A unit of work on the board.

    Learn: due_date drives overdue notices and daily summaries;
    reminder_at is a one-shot trigger cleared by the notification sweep.
    """

    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user_due", "user_id", "due_date"),
        Index("ix_tasks_category_order", "category_id", "order"),
    )
    __required_fields__ = ("user_id", "title")

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assignee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("categories.id", ondelete="CASCADE"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    due_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reminder_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    labels: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    @validates("title")
    def _validate_title(self, key, value):
        return clean_str(self, key, value, required=True, max_length=200)

    @validates("description")
    def _validate_description(self, key, value):
        return clean_str(self, key, value, max_length=2000)

    @validates("priority")
    def _validate_priority(self, key, value):
        return check_enum(self, key, value, TASK_PRIORITIES)


# ══════════════════════════════════════════════════════════════
# Notifications
# ══════════════════════════════════════════════════════════════

NOTIFICATION_TYPES = ("due-soon", "overdue", "reminder", "daily-summary", "overdue-digest")
DIGEST_FREQUENCIES = ("daily", "weekly", "none")


class Notification(Base):
    """In-app notification shown in the bell menu."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_user_scheduled", "user_id", "scheduled_for"),
    )
    __required_fields__ = ("user_id", "type", "title", "message")

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True
    )  # daily summaries aren't tied to one task
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dismissed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    snoozed_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    meta: Mapped[Optional[dict]] = mapped_column(
        "metadata", JsonType, nullable=True
    )  # "metadata" is reserved on declarative classes
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    @validates("type")
    def _validate_type(self, key, value):
        return check_enum(self, key, value, NOTIFICATION_TYPES)

    @validates("title")
    def _validate_title(self, key, value):
        return clean_str(self, key, value, required=True, max_length=200)

    @validates("message")
    def _validate_message(self, key, value):
        return clean_str(self, key, value, required=True, max_length=500)


class NotificationPreference(Base):
    """Per-user notification settings. One row per user, created on demand."""

    __tablename__ = "notification_preferences"
    __required_fields__ = ("user_id",)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    enable_browser_push: Mapped[bool] = mapped_column(Boolean, default=False)
    enable_in_app_notifications: Mapped[bool] = mapped_column(Boolean, default=True)
    reminder_timings: Mapped[list] = mapped_column(
        JsonType, nullable=False, default=lambda: [1440, 60, 15]
    )  # minutes before due: 1 day, 1 hour, 15 minutes
    enable_email_digest: Mapped[bool] = mapped_column(Boolean, default=False)
    email_digest_frequency: Mapped[str] = mapped_column(String(10), default="none")
    quiet_hours_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    quiet_hours_start: Mapped[str] = mapped_column(String(5), default="22:00")
    quiet_hours_end: Mapped[str] = mapped_column(String(5), default="08:00")
    enable_overdue_summary: Mapped[bool] = mapped_column(Boolean, default=True)
    overdue_summary_time: Mapped[str] = mapped_column(String(5), default="09:00")
    enable_daily_summary: Mapped[bool] = mapped_column(Boolean, default=True)
    daily_summary_time: Mapped[str] = mapped_column(String(5), default="09:00")
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    @validates("reminder_timings")
    def _validate_timings(self, key, value):
        value = list(value or [])
        if len(value) > 10:
            _fail(self, key, "must have at most 10 entries")
        if not all(isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in value):
            _fail(self, key, "must all be positive numbers")
        return value

    @validates("email_digest_frequency")
    def _validate_frequency(self, key, value):
        return check_enum(self, key, value, DIGEST_FREQUENCIES)

    @validates(
        "quiet_hours_start", "quiet_hours_end",
        "overdue_summary_time", "daily_summary_time",
    )
    def _validate_clock(self, key, value):
        return check_pattern(self, key, value, HH_MM_RE, "in HH:mm format (e.g. 22:00)")

    @validates("timezone")
    def _validate_timezone(self, key, value):
        if value is None:
            return "UTC"
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            _fail(self, key, f"unknown timezone {value!r}")
        return value


class CalendarSync(Base):
    """Calendar sync preferences. `connected` is set by the OAuth callback."""

    __tablename__ = "calendar_syncs"
    __required_fields__ = ("user_id",)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    connected: Mapped[bool] = mapped_column(Boolean, default=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    calendar_id: Mapped[str] = mapped_column(String(255), default="primary")
    sync_errors: Mapped[int] = mapped_column(Integer, default=0)
    last_sync_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )
