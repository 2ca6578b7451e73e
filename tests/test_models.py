"""Model-level validation tests.

Learn: Field constraints live on the models (@validates), so they hold
for every write path — API, sweep, CLI. Most checks fire on assignment
and need no database; required-field checks fire on INSERT.
"""

import uuid
from datetime import datetime

import pytest

from pillar.db.models import (
    Category,
    FilterPreset,
    Label,
    ModelValidationError,
    NotificationPreference,
    Task,
    User,
)

OWNER = uuid.UUID("22222222-2222-2222-2222-222222222222")


def test_names_are_trimmed():
    assert Category(user_id=OWNER, name="  Work ").name == "Work"
    assert Task(user_id=OWNER, title="\tWrite docs\n").title == "Write docs"


def test_blank_name_is_required():
    with pytest.raises(ModelValidationError) as exc:
        Category(user_id=OWNER, name="   ")
    assert exc.value.field == "name"
    assert str(exc.value) == "Category validation failed: name is required"


def test_max_lengths():
    with pytest.raises(ModelValidationError):
        Label(user_id=OWNER, name="x" * 51, color="#ffffff")
    with pytest.raises(ModelValidationError):
        Task(user_id=OWNER, title="x", description="y" * 2001)


def test_email_is_lowercased():
    assert User(email=" Ada@Example.COM ", name="Ada").email == "ada@example.com"


@pytest.mark.parametrize("color", ["red", "#fff", "#12345g", "123456"])
def test_hex_colors(color):
    with pytest.raises(ModelValidationError):
        Label(user_id=OWNER, name="bug", color=color)


def test_category_color_defaults():
    assert Category(user_id=OWNER, name="Work", color=None).color == "#6366f1"


def test_category_order_not_negative():
    with pytest.raises(ModelValidationError):
        Category(user_id=OWNER, name="Work", order=-1)


def test_task_priority_enum():
    with pytest.raises(ModelValidationError) as exc:
        Task(user_id=OWNER, title="x", priority="critical")
    assert "urgent, high, medium, low" in str(exc.value)


def test_filter_preset_rules():
    with pytest.raises(ModelValidationError):
        FilterPreset(user_id=OWNER, name="x", context="calendar")
    with pytest.raises(ModelValidationError):
        FilterPreset(user_id=OWNER, name="x", context="kanban", filters={"p": [1, 2]})
    preset = FilterPreset(user_id=OWNER, name="x", context="kanban", filters=None)
    assert preset.filters == {}


def test_preference_rules():
    with pytest.raises(ModelValidationError):
        NotificationPreference(user_id=OWNER, quiet_hours_start="7:00")
    with pytest.raises(ModelValidationError):
        NotificationPreference(user_id=OWNER, reminder_timings=[0])
    with pytest.raises(ModelValidationError):
        NotificationPreference(user_id=OWNER, reminder_timings=[True])
    with pytest.raises(ModelValidationError):
        NotificationPreference(user_id=OWNER, timezone="Nowhere/Special")
    prefs = NotificationPreference(user_id=OWNER, timezone="America/New_York")
    assert prefs.timezone == "America/New_York"


@pytest.mark.asyncio
async def test_required_fields_checked_on_insert(db_session):
    # Never assigned, so @validates never ran
    db_session.add(Label(user_id=OWNER, color="#ffffff"))
    with pytest.raises(ModelValidationError):
        await db_session.flush()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_datetimes_come_back_as_utc(db_session, user):
    task = Task(user_id=user.id, title="x", due_date=datetime(2026, 10, 17, 9, 0))
    db_session.add(task)
    await db_session.commit()

    db_session.expunge_all()
    loaded = await db_session.get(Task, task.id)
    assert loaded.due_date.tzinfo is not None
    assert loaded.due_date.utcoffset().total_seconds() == 0
    assert loaded.created_at.tzinfo is not None
