"""Notification worker — turns due dates into notifications.

Learn: One sweep runs four passes, in order:

  1. reminders        tasks whose reminder_at has passed (one-shot)
  2. overdue          tasks past due, once per (task, user)
  3. daily summaries  one per user per local day, at daily_summary_time
  4. overdue digests  one per user per local day, at overdue_summary_time

Recipients are the task owner plus the assignee (if different). A
recipient is skipped when both in-app and push are off, or when they're
inside quiet hours. Users without a preference row get one with
defaults, so notifications work before anyone visits the settings page.

Every created row is committed once at the end of the sweep and then
announced on the bus as a "notification" event.

The sweep runs two ways:
- NotificationWorker: every 2 minutes in the FastAPI lifespan, all users
- POST /api/notifications/check-due-dates: on demand, scoped to the caller
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pillar.db.engine import async_session_factory
from pillar.db.models import Notification, NotificationPreference, Task
from pillar.events.bus import EventBus, emit_notification_event
from pillar.services.notification_scheduler import (
    date_in_timezone,
    is_quiet_for,
    minutes_in_timezone,
    parse_clock,
    task_metadata,
)
from pillar.services.notification_service import NotificationService, to_event

logger = structlog.get_logger()

SUMMARY_PREVIEW_LIMIT = 5
DIGEST_PREVIEW_LIMIT = 10
DIGEST_MESSAGE_LIMIT = 5
RECENT_SUMMARY_WINDOW = timedelta(hours=36)


# ─── Helpers ─────────────────────────────────────────────


def _recipients(task: Task) -> list[uuid.UUID]:
    users = [task.user_id]
    if task.assignee_id and task.assignee_id != task.user_id:
        users.append(task.assignee_id)
    return users


def _involving(user_id: uuid.UUID):
    return or_(Task.user_id == user_id, Task.assignee_id == user_id)


def _should_skip(
    prefs: Optional[NotificationPreference],
    now: datetime,
    require_overdue: bool = False,
) -> bool:
    if prefs is None:
        return True
    if not (prefs.enable_in_app_notifications or prefs.enable_browser_push):
        return True
    if require_overdue and not prefs.enable_overdue_summary:
        return True
    return is_quiet_for(prefs, now)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _preview(task: Task) -> dict:
    return {
        "id": str(task.id),
        "title": task.title,
        "priority": task.priority,
        "categoryId": str(task.category_id) if task.category_id else None,
    }


def _day_bounds(local_date: str) -> tuple[datetime, datetime]:
    """UTC start/end of a calendar date. Due dates are stored as UTC midnight."""
    start = datetime.fromisoformat(local_date).replace(tzinfo=timezone.utc)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


class NotificationSweep:
    """One pass over the database. Collects created rows for later emission."""

    def __init__(self, db: AsyncSession, now: datetime, scope_user_id: Optional[uuid.UUID] = None):
        self.db = db
        self.now = now
        self.scope_user_id = scope_user_id
        self.notifications = NotificationService(db)
        self.created: list[Notification] = []

    async def _create(self, **fields) -> None:
        notification = await self.notifications.create_notification(
            commit=False, created_at=self.now, **fields
        )
        self.created.append(notification)

    async def _load_preferences(
        self, user_ids: list[uuid.UUID]
    ) -> dict[uuid.UUID, NotificationPreference]:
        if not user_ids:
            return {}
        result = await self.db.execute(
            select(NotificationPreference).where(
                NotificationPreference.user_id.in_(user_ids)
            )
        )
        prefs = {p.user_id: p for p in result.scalars().all()}

        missing = [uid for uid in user_ids if uid not in prefs]
        for uid in missing:
            pref = NotificationPreference(user_id=uid)
            self.db.add(pref)
            prefs[uid] = pref
        if missing:
            await self.db.flush()
            logger.info("notification_worker.default_preferences", count=len(missing))
        return prefs

    async def _tasks(self, *conditions) -> list[Task]:
        query = select(Task).where(Task.completed_at.is_(None), *conditions)
        if self.scope_user_id:
            query = query.where(_involving(self.scope_user_id))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _summary_preferences(self, flag) -> list[NotificationPreference]:
        query = select(NotificationPreference).where(
            flag.is_(True),
            or_(
                NotificationPreference.enable_in_app_notifications.is_(True),
                NotificationPreference.enable_browser_push.is_(True),
            ),
        )
        if self.scope_user_id:
            query = query.where(NotificationPreference.user_id == self.scope_user_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _recent_dates(
        self, user_ids: list[uuid.UUID], type: str, key: str
    ) -> set[tuple[uuid.UUID, str]]:
        """(user, local date) pairs that already got a summary of this type."""
        if not user_ids:
            return set()
        result = await self.db.execute(
            select(Notification).where(
                Notification.user_id.in_(user_ids),
                Notification.type == type,
                Notification.created_at >= self.now - RECENT_SUMMARY_WINDOW,
            )
        )
        return {
            (n.user_id, n.meta.get(key))
            for n in result.scalars().all()
            if n.meta and n.meta.get(key)
        }

    # ═══════════════════════════════════════════════════════
    # Passes
    # ═══════════════════════════════════════════════════════

    async def process_reminders(self) -> int:
        tasks = await self._tasks(
            Task.reminder_at.is_not(None), Task.reminder_at <= self.now
        )
        if not tasks:
            return 0

        user_ids = list(dict.fromkeys(u for t in tasks for u in _recipients(t)))
        prefs = await self._load_preferences(user_ids)

        result = await self.db.execute(
            select(Notification).where(
                Notification.task_id.in_([t.id for t in tasks]),
                Notification.type == "reminder",
            )
        )
        seen = {(n.task_id, n.user_id, n.scheduled_for) for n in result.scalars().all()}

        created = 0
        for task in tasks:
            for user_id in _recipients(task):
                if _should_skip(prefs.get(user_id), self.now):
                    continue
                if (task.id, user_id, task.reminder_at) in seen:
                    continue
                await self._create(
                    user_id=user_id,
                    task_id=task.id,
                    type="reminder",
                    title="Task reminder",
                    message=f'"{task.title}" needs your attention.',
                    scheduled_for=task.reminder_at,
                    metadata=task_metadata(task),
                )
                created += 1
            # One-shot: a reminder fires once, delivered or not
            task.reminder_at = None
        return created

    async def process_overdue(self) -> int:
        tasks = await self._tasks(Task.due_date.is_not(None), Task.due_date < self.now)
        if not tasks:
            return 0

        user_ids = list(dict.fromkeys(u for t in tasks for u in _recipients(t)))
        prefs = await self._load_preferences(user_ids)

        result = await self.db.execute(
            select(Notification).where(
                Notification.task_id.in_([t.id for t in tasks]),
                Notification.type == "overdue",
            )
        )
        seen = {(n.task_id, n.user_id) for n in result.scalars().all()}

        created = 0
        for task in tasks:
            for user_id in _recipients(task):
                if _should_skip(prefs.get(user_id), self.now, require_overdue=True):
                    continue
                if (task.id, user_id) in seen:
                    continue
                await self._create(
                    user_id=user_id,
                    task_id=task.id,
                    type="overdue",
                    title="Task is overdue",
                    message=f'"{task.title}" is overdue and needs your attention.',
                    metadata=task_metadata(task),
                )
                seen.add((task.id, user_id))
                created += 1
        return created

    async def process_daily_summaries(self) -> int:
        prefs_list = await self._summary_preferences(
            NotificationPreference.enable_daily_summary
        )
        sent = await self._recent_dates(
            [p.user_id for p in prefs_list], "daily-summary", "summaryDate"
        )

        created = 0
        for prefs in prefs_list:
            tz_name = prefs.timezone or "UTC"
            if minutes_in_timezone(self.now, tz_name) < parse_clock(prefs.daily_summary_time):
                continue
            if is_quiet_for(prefs, self.now):
                continue
            today = date_in_timezone(self.now, tz_name)
            if (prefs.user_id, today) in sent:
                continue

            start, end = _day_bounds(today)
            involving = _involving(prefs.user_id)
            due_today = await self._user_tasks(
                involving, Task.due_date >= start, Task.due_date <= end
            )
            overdue = await self._user_tasks(involving, Task.due_date < start)
            if not due_today and not overdue:
                continue

            parts = []
            if due_today:
                parts.append(f"{_plural(len(due_today), 'task')} due today")
            if overdue:
                parts.append(_plural(len(overdue), "overdue task"))

            await self._create(
                user_id=prefs.user_id,
                type="daily-summary",
                title="Daily Summary",
                message=f"You have {' and '.join(parts)}.",
                metadata={
                    "summaryDate": today,
                    "dueTodayCount": len(due_today),
                    "overdueCount": len(overdue),
                    "totalCount": len(due_today) + len(overdue),
                    "dueTodayTasks": [_preview(t) for t in due_today[:SUMMARY_PREVIEW_LIMIT]],
                    "overdueTasks": [_preview(t) for t in overdue[:SUMMARY_PREVIEW_LIMIT]],
                },
            )
            created += 1
        return created

    async def process_overdue_digests(self) -> int:
        prefs_list = await self._summary_preferences(
            NotificationPreference.enable_overdue_summary
        )
        sent = await self._recent_dates(
            [p.user_id for p in prefs_list], "overdue-digest", "overdueSummaryDate"
        )

        created = 0
        for prefs in prefs_list:
            tz_name = prefs.timezone or "UTC"
            summary_time = prefs.overdue_summary_time or "09:00"
            if minutes_in_timezone(self.now, tz_name) < parse_clock(summary_time):
                continue
            if is_quiet_for(prefs, self.now):
                continue
            today = date_in_timezone(self.now, tz_name)
            if (prefs.user_id, today) in sent:
                continue

            start, _ = _day_bounds(today)
            overdue = await self._user_tasks(
                _involving(prefs.user_id), Task.due_date < start, order_by_due=True
            )
            if not overdue:
                continue

            previews = []
            for task in overdue[:DIGEST_PREVIEW_LIMIT]:
                preview = _preview(task)
                preview["dueDate"] = task.due_date.isoformat()
                preview["daysOverdue"] = (start - task.due_date) // timedelta(days=1)
                previews.append(preview)

            listed = ", ".join(
                f"{p['title']} ({p['daysOverdue']}d overdue)"
                for p in previews[:DIGEST_MESSAGE_LIMIT]
            )
            count = len(overdue)
            if count <= DIGEST_MESSAGE_LIMIT:
                message = f"You have {_plural(count, 'overdue task')}: {listed}"
            else:
                message = (
                    f"You have {count} overdue tasks: {listed}, "
                    f"and {count - DIGEST_MESSAGE_LIMIT} more"
                )

            await self._create(
                user_id=prefs.user_id,
                type="overdue-digest",
                title="Overdue Tasks Summary",
                message=message[:500],
                metadata={
                    "overdueSummaryDate": today,
                    "overdueCount": count,
                    "tasks": previews,
                },
            )
            created += 1
        return created

    async def _user_tasks(self, *conditions, order_by_due: bool = False) -> list[Task]:
        query = select(Task).where(
            Task.completed_at.is_(None), Task.due_date.is_not(None), *conditions
        )
        if order_by_due:
            query = query.order_by(Task.due_date.asc())
        result = await self.db.execute(query)
        return list(result.scalars().all())


async def process_notifications(
    db: AsyncSession,
    bus: EventBus,
    scope_user_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    """Run all four passes, commit, then announce what was created.

    Learn: scope_user_id=None sweeps every user (the background worker);
    with a user id only tasks they own or are assigned are considered.
    """
    sweep = NotificationSweep(db, now or datetime.now(timezone.utc), scope_user_id)

    counts = {
        "reminders": await sweep.process_reminders(),
        "overdue": await sweep.process_overdue(),
        "daily_summaries": await sweep.process_daily_summaries(),
        "overdue_digests": await sweep.process_overdue_digests(),
    }
    await db.commit()

    for notification in sweep.created:
        emit_notification_event(bus, to_event(notification))

    if sweep.created:
        logger.info(
            "notification_worker.created",
            total=len(sweep.created),
            scope_user_id=str(scope_user_id) if scope_user_id else None,
            **counts,
        )
    return counts


# ═══════════════════════════════════════════════════════════
# Worker
# ═══════════════════════════════════════════════════════════


class NotificationWorker:
    """Background worker that sweeps every user on a fixed interval.

    Learn: Runs as an asyncio task in the FastAPI lifespan:
        worker = NotificationWorker(bus=sync_event_bus)
        asyncio.create_task(worker.run_loop())

    A failed sweep is logged and the loop carries on — the next tick
    will pick up whatever was missed.
    """

    def __init__(
        self,
        bus: EventBus,
        interval: float = 120.0,
        initial_delay: float = 10.0,
        session_factory: async_sessionmaker = async_session_factory,
    ):
        self.bus = bus
        self.interval = interval
        self.initial_delay = initial_delay
        self.session_factory = session_factory
        self._running = False
        self._wake = asyncio.Event()

    async def run_loop(self) -> None:
        """Main worker loop — wait, sweep, repeat."""
        self._running = True
        logger.info(
            "notification_worker.started",
            interval=self.interval,
            initial_delay=self.initial_delay,
        )

        await self._sleep(self.initial_delay)
        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("notification_worker.error")
            await self._sleep(self.interval)

    async def run_once(self) -> dict[str, int]:
        async with self.session_factory() as db:
            return await process_notifications(db, self.bus)

    def stop(self) -> None:
        """Signal the worker to stop after the current sweep."""
        self._running = False
        self._wake.set()
        logger.info("notification_worker.stopped")

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
