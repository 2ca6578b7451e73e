"""Initial schema: users, tokens, categories, labels, presets, tasks, notifications

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=True)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True))
    return cols


def _owner(unique: bool = False) -> sa.Column:
    return sa.Column(
        "user_id", sa.Uuid(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, unique=unique, index=not unique,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        "access_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("token_prefix", sa.String(16), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("color", sa.String(7), nullable=False),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("collapsed", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "labels",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("color", sa.String(7), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_labels_user_name"),
    )

    op.create_table(
        "filter_presets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("context", sa.String(20), nullable=False),
        sa.Column("filters", JSON, nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_filter_presets_user_context", "filter_presets", ["user_id", "context"]
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column(
            "assignee_id", sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True, index=True,
        ),
        sa.Column(
            "category_id", sa.Uuid(),
            sa.ForeignKey("categories.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", sa.String(10), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("labels", JSON, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_tasks_user_due", "tasks", ["user_id", "due_date"])
    op.create_index("ix_tasks_category_order", "tasks", ["category_id", "order"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column(
            "task_id", sa.Uuid(),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=True, index=True,
        ),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False),
        sa.Column("dismissed", sa.Boolean(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("snoozed_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])
    op.create_index(
        "ix_notifications_user_scheduled", "notifications", ["user_id", "scheduled_for"]
    )

    op.create_table(
        "notification_preferences",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(unique=True),
        sa.Column("enable_browser_push", sa.Boolean(), nullable=True),
        sa.Column("enable_in_app_notifications", sa.Boolean(), nullable=True),
        sa.Column("reminder_timings", JSON, nullable=False),
        sa.Column("enable_email_digest", sa.Boolean(), nullable=True),
        sa.Column("email_digest_frequency", sa.String(10), nullable=True),
        sa.Column("quiet_hours_enabled", sa.Boolean(), nullable=True),
        sa.Column("quiet_hours_start", sa.String(5), nullable=True),
        sa.Column("quiet_hours_end", sa.String(5), nullable=True),
        sa.Column("enable_overdue_summary", sa.Boolean(), nullable=True),
        sa.Column("overdue_summary_time", sa.String(5), nullable=True),
        sa.Column("enable_daily_summary", sa.Boolean(), nullable=True),
        sa.Column("daily_summary_time", sa.String(5), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "calendar_syncs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(unique=True),
        sa.Column("connected", sa.Boolean(), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=True),
        sa.Column("calendar_id", sa.String(255), nullable=True),
        sa.Column("sync_errors", sa.Integer(), nullable=True),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("calendar_syncs")
    op.drop_table("notification_preferences")
    op.drop_index("ix_notifications_user_scheduled", table_name="notifications")
    op.drop_index("ix_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_tasks_category_order", table_name="tasks")
    op.drop_index("ix_tasks_user_due", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_filter_presets_user_context", table_name="filter_presets")
    op.drop_table("filter_presets")
    op.drop_table("labels")
    op.drop_table("categories")
    op.drop_table("access_tokens")
    op.drop_table("users")
