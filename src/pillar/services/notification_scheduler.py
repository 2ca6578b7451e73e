"""Pure scheduling helpers for notifications.

Learn: Nothing in here touches the database. The sweep
(notification_worker) and the tests call these with explicit "now"
values, which keeps the time logic easy to pin down.

Times of day are "HH:mm" strings in the user's IANA timezone.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

from pillar.db.models import Notification, NotificationPreference, Task

REMINDER_WINDOW_MINUTES = 120


@dataclass
class NotificationToCreate:
    user_id: uuid.UUID
    task_id: Optional[uuid.UUID]
    type: str
    title: str
    message: str
    scheduled_for: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ─── Clock helpers ───────────────────────────────────────


def parse_clock(value: str) -> int:
    """Parse "HH:mm" into minutes since midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def local_now(now: datetime, tz_name: Optional[str]) -> datetime:
    return now.astimezone(ZoneInfo(tz_name or "UTC"))


def minutes_in_timezone(now: datetime, tz_name: Optional[str]) -> int:
    local = local_now(now, tz_name)
    return local.hour * 60 + local.minute


def date_in_timezone(now: datetime, tz_name: Optional[str]) -> str:
    """Calendar date (YYYY-MM-DD) of `now` as seen in tz_name."""
    return local_now(now, tz_name).date().isoformat()


# ─── Scheduling rules ────────────────────────────────────


def is_within_quiet_hours(
    time: datetime,
    quiet_hours_enabled: bool,
    quiet_hours_start: str,
    quiet_hours_end: str,
    tz_name: str = "UTC",
) -> bool:
    """True if `time` falls inside the quiet window.

    The window is [start, end). When start > end it spans midnight,
    e.g. 22:00–08:00 covers 23:30 and 07:59 but not 08:00.
    """
    if not quiet_hours_enabled:
        return False

    current = minutes_in_timezone(time, tz_name)
    start = parse_clock(quiet_hours_start)
    end = parse_clock(quiet_hours_end)

    if start > end:
        return current >= start or current < end
    return start <= current < end


def calculate_notification_time(due_date: datetime, minutes_before: int) -> datetime:
    return due_date - timedelta(minutes=minutes_before)


def should_create_notification(
    notification_time: datetime,
    current_time: datetime,
    window_minutes: int = REMINDER_WINDOW_MINUTES,
) -> bool:
    """True once notification_time has passed, for up to window_minutes."""
    diff_minutes = (current_time - notification_time).total_seconds() / 60
    return 0 <= diff_minutes <= window_minutes


def format_time_remaining(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} minute{'' if minutes == 1 else 's'}"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'' if hours == 1 else 's'}"
    days = hours // 24
    return f"{days} day{'' if days == 1 else 's'}"


def is_quiet_for(prefs: NotificationPreference, now: datetime) -> bool:
    return is_within_quiet_hours(
        now,
        prefs.quiet_hours_enabled,
        prefs.quiet_hours_start,
        prefs.quiet_hours_end,
        prefs.timezone or "UTC",
    )


def task_metadata(task: Task) -> dict[str, Any]:
    return {
        "priority": task.priority,
        "dueDate": task.due_date.isoformat() if task.due_date else None,
        "categoryId": str(task.category_id) if task.category_id else None,
    }


def generate_notifications_for_task(
    task: Task,
    prefs: NotificationPreference,
    existing: Iterable[Notification],
    current_time: Optional[datetime] = None,
) -> list[NotificationToCreate]:
    """Work out which due-date notifications a task needs right now.

    Learn: Two outcomes:
    - overdue task → one "overdue" notification, unless one (or a daily
      summary) already mentions the task, or overdue summaries are off
    - upcoming task → one "reminder" per reminder timing whose moment
      passed within the last two hours, e.g. "Task due in 1 hour"

    Quiet hours suppress both; disabled in-app notifications, a missing
    due date, or a completed task yield nothing.
    """
    now = current_time or datetime.now(timezone.utc)
    out: list[NotificationToCreate] = []

    if not prefs.enable_in_app_notifications:
        return out
    if not task.due_date or task.completed_at:
        return out

    existing = [n for n in existing if n.task_id == task.id]
    quiet = is_quiet_for(prefs, now)

    if task.due_date < now:
        already = any(n.type in ("overdue", "daily-summary") for n in existing)
        if not already and prefs.enable_overdue_summary and not quiet:
            out.append(
                NotificationToCreate(
                    user_id=task.user_id,
                    task_id=task.id,
                    type="overdue",
                    title="Task is overdue",
                    message=f'"{task.title}" is overdue and needs your attention.',
                    metadata=task_metadata(task),
                )
            )
        return out

    for minutes_before in prefs.reminder_timings or []:
        at = calculate_notification_time(task.due_date, minutes_before)
        if not should_create_notification(at, now) or quiet:
            continue

        remaining = format_time_remaining(minutes_before)
        title = f"Task due in {remaining}"
        duplicate = any(
            n.title == title
            or (n.type == "reminder" and n.title.startswith("Task due in"))
            for n in existing
        )
        if duplicate:
            continue

        out.append(
            NotificationToCreate(
                user_id=task.user_id,
                task_id=task.id,
                type="reminder",
                title=title,
                message=f'"{task.title}" is due in {remaining}.',
                scheduled_for=at,
                metadata=task_metadata(task),
            )
        )
    return out
