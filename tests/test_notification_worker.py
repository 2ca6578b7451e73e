"""Notification sweep tests — reminders, overdue notices, summaries, digests.

Learn: Each test seeds tasks and preferences directly, runs
process_notifications() with a pinned "now", then reads back what was
written (through a fresh session) and what was announced on the bus.
Running the sweep twice is the dedup check: the second run must
create nothing.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from pillar.db.models import Notification, NotificationPreference, Task
from pillar.events.types import NOTIFICATION
from pillar.services.notification_worker import NotificationWorker, process_notifications

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
START_OF_TODAY = datetime(2026, 10, 17, tzinfo=timezone.utc)


@pytest.fixture
def announced(bus):
    events = []
    bus.on(NOTIFICATION, events.append)
    return events


async def _prefs(db, user, **fields) -> NotificationPreference:
    prefs = NotificationPreference(user_id=user.id, **fields)
    db.add(prefs)
    await db.commit()
    return prefs


async def _task(db, user, **fields) -> Task:
    task = Task(user_id=user.id, title=fields.pop("title", "Ship release"), **fields)
    db.add(task)
    await db.commit()
    return task


async def _notifications(session_factory, **filters) -> list[Notification]:
    async with session_factory() as db:
        query = select(Notification).order_by(Notification.created_at)
        for name, value in filters.items():
            query = query.where(getattr(Notification, name) == value)
        return list((await db.execute(query)).scalars().all())


# ═══════════════════════════════════════════════════════════
# Reminders
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_reminder_fires_once(db_session, session_factory, bus, user, announced):
    task = await _task(db_session, user, reminder_at=NOW - timedelta(minutes=1))

    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts == {"reminders": 1, "overdue": 0, "daily_summaries": 0, "overdue_digests": 0}

    [reminder] = await _notifications(session_factory, type="reminder")
    assert reminder.user_id == user.id
    assert reminder.task_id == task.id
    assert reminder.title == "Task reminder"
    assert reminder.message == '"Ship release" needs your attention.'

    async with session_factory() as db:
        assert (await db.get(Task, task.id)).reminder_at is None

    assert len(announced) == 1
    assert announced[0].notification_id == str(reminder.id)
    assert announced[0].user_id == str(user.id)

    again = await process_notifications(db_session, bus, now=NOW + timedelta(minutes=2))
    assert again["reminders"] == 0


@pytest.mark.asyncio
async def test_future_reminder_waits(db_session, bus, user):
    await _task(db_session, user, reminder_at=NOW + timedelta(minutes=5))
    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["reminders"] == 0


@pytest.mark.asyncio
async def test_reminder_goes_to_owner_and_assignee(db_session, session_factory, bus, user, other_user):
    await _task(
        db_session, user, reminder_at=NOW - timedelta(minutes=1), assignee_id=other_user.id
    )
    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["reminders"] == 2

    recipients = {n.user_id for n in await _notifications(session_factory, type="reminder")}
    assert recipients == {user.id, other_user.id}


@pytest.mark.asyncio
async def test_reminder_cleared_even_when_muted(db_session, session_factory, bus, user):
    await _prefs(db_session, user, enable_in_app_notifications=False, enable_browser_push=False)
    task = await _task(db_session, user, reminder_at=NOW - timedelta(minutes=1))

    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["reminders"] == 0
    async with session_factory() as db:
        assert (await db.get(Task, task.id)).reminder_at is None


@pytest.mark.asyncio
async def test_completed_task_gets_no_reminder(db_session, bus, user):
    await _task(
        db_session, user,
        reminder_at=NOW - timedelta(minutes=1),
        completed_at=NOW - timedelta(hours=1),
    )
    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["reminders"] == 0


@pytest.mark.asyncio
async def test_missing_preferences_are_created(db_session, session_factory, bus, user):
    await _task(db_session, user, reminder_at=NOW - timedelta(minutes=1))
    await process_notifications(db_session, bus, now=NOW)

    async with session_factory() as db:
        prefs = (await db.execute(select(NotificationPreference))).scalars().one()
        assert prefs.user_id == user.id
        assert prefs.reminder_timings == [1440, 60, 15]


# ═══════════════════════════════════════════════════════════
# Overdue
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_overdue_once_per_task(db_session, session_factory, bus, user):
    await _prefs(db_session, user, enable_daily_summary=False)
    task = await _task(db_session, user, due_date=NOW - timedelta(hours=2))

    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["overdue"] == 1
    # Due earlier today: not yet part of the overdue digest
    assert counts["overdue_digests"] == 0

    [notice] = await _notifications(session_factory, type="overdue")
    assert notice.task_id == task.id
    assert notice.title == "Task is overdue"
    assert notice.meta["priority"] == "medium"

    again = await process_notifications(db_session, bus, now=NOW + timedelta(hours=1))
    assert again["overdue"] == 0


@pytest.mark.asyncio
async def test_overdue_suppressed_in_quiet_hours(db_session, bus, user):
    await _prefs(
        db_session, user,
        quiet_hours_enabled=True, quiet_hours_start="11:00", quiet_hours_end="13:00",
    )
    await _task(db_session, user, due_date=NOW - timedelta(hours=2))

    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts == {"reminders": 0, "overdue": 0, "daily_summaries": 0, "overdue_digests": 0}


@pytest.mark.asyncio
async def test_overdue_respects_summary_flag(db_session, bus, user):
    await _prefs(db_session, user, enable_overdue_summary=False, enable_daily_summary=False)
    await _task(db_session, user, due_date=NOW - timedelta(hours=2))
    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["overdue"] == 0


# ═══════════════════════════════════════════════════════════
# Daily summaries
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_daily_summary_once_per_day(db_session, session_factory, bus, user):
    await _prefs(db_session, user, enable_overdue_summary=False, daily_summary_time="09:00")
    await _task(db_session, user, title="Today", due_date=START_OF_TODAY + timedelta(hours=18))
    await _task(db_session, user, title="Late", due_date=START_OF_TODAY - timedelta(days=1))

    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["daily_summaries"] == 1

    [summary] = await _notifications(session_factory, type="daily-summary")
    assert summary.task_id is None
    assert summary.title == "Daily Summary"
    assert summary.message == "You have 1 task due today and 1 overdue task."
    assert summary.meta["summaryDate"] == "2026-10-17"
    assert summary.meta["dueTodayCount"] == 1
    assert summary.meta["overdueCount"] == 1
    assert summary.meta["totalCount"] == 2
    assert [t["title"] for t in summary.meta["dueTodayTasks"]] == ["Today"]

    again = await process_notifications(db_session, bus, now=NOW + timedelta(hours=3))
    assert again["daily_summaries"] == 0


@pytest.mark.asyncio
async def test_daily_summary_waits_for_its_time(db_session, bus, user):
    await _prefs(db_session, user, enable_overdue_summary=False, daily_summary_time="18:00")
    await _task(db_session, user, due_date=START_OF_TODAY + timedelta(hours=20))
    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["daily_summaries"] == 0


@pytest.mark.asyncio
async def test_daily_summary_skipped_when_nothing_due(db_session, bus, user):
    await _prefs(db_session, user, enable_overdue_summary=False)
    await _task(db_session, user, due_date=START_OF_TODAY + timedelta(days=3))
    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["daily_summaries"] == 0


# ═══════════════════════════════════════════════════════════
# Overdue digests
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_overdue_digest(db_session, session_factory, bus, user):
    await _prefs(db_session, user, enable_daily_summary=False, overdue_summary_time="09:00")
    for days in range(1, 8):
        await _task(db_session, user, title=f"T{days}", due_date=START_OF_TODAY - timedelta(days=days))

    counts = await process_notifications(db_session, bus, now=NOW)
    assert counts["overdue"] == 7
    assert counts["overdue_digests"] == 1

    [digest] = await _notifications(session_factory, type="overdue-digest")
    assert digest.title == "Overdue Tasks Summary"
    assert digest.meta["overdueSummaryDate"] == "2026-10-17"
    assert digest.meta["overdueCount"] == 7
    # Oldest first
    assert [t["title"] for t in digest.meta["tasks"]] == ["T7", "T6", "T5", "T4", "T3", "T2", "T1"]
    assert digest.meta["tasks"][0]["daysOverdue"] == 7
    assert digest.message == (
        "You have 7 overdue tasks: T7 (7d overdue), T6 (6d overdue), "
        "T5 (5d overdue), T4 (4d overdue), T3 (3d overdue), and 2 more"
    )

    again = await process_notifications(db_session, bus, now=NOW + timedelta(hours=1))
    assert again["overdue_digests"] == 0


@pytest.mark.asyncio
async def test_overdue_digest_short_list(db_session, session_factory, bus, user):
    await _prefs(db_session, user, enable_daily_summary=False)
    await _task(db_session, user, title="Only", due_date=START_OF_TODAY - timedelta(days=2))

    await process_notifications(db_session, bus, now=NOW)
    [digest] = await _notifications(session_factory, type="overdue-digest")
    assert digest.message == "You have 1 overdue task: Only (2d overdue)"


# ═══════════════════════════════════════════════════════════
# Scope and worker
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_scope_limits_to_one_user(db_session, session_factory, bus, user, other_user):
    await _task(db_session, user, reminder_at=NOW - timedelta(minutes=1))
    await _task(db_session, other_user, reminder_at=NOW - timedelta(minutes=1))

    counts = await process_notifications(db_session, bus, scope_user_id=user.id, now=NOW)
    assert counts["reminders"] == 1
    [reminder] = await _notifications(session_factory, type="reminder")
    assert reminder.user_id == user.id


@pytest.mark.asyncio
async def test_worker_run_once(session_factory, db_session, bus, user, announced):
    await _task(db_session, user, reminder_at=datetime.now(timezone.utc) - timedelta(minutes=1))

    worker = NotificationWorker(bus, session_factory=session_factory)
    counts = await worker.run_once()
    assert counts["reminders"] == 1
    assert len(announced) == 1


@pytest.mark.asyncio
async def test_worker_loop_stops(session_factory, bus):
    worker = NotificationWorker(bus, interval=0.01, initial_delay=0, session_factory=session_factory)
    loop_task = asyncio.create_task(worker.run_loop())
    await asyncio.sleep(0.05)

    worker.stop()
    await asyncio.wait_for(loop_task, timeout=1)
    assert loop_task.done()


@pytest.mark.asyncio
async def test_unknown_user_id_scope_is_empty(db_session, bus, user):
    await _task(db_session, user, reminder_at=NOW - timedelta(minutes=1))
    counts = await process_notifications(db_session, bus, scope_user_id=uuid.uuid4(), now=NOW)
    assert sum(counts.values()) == 0
