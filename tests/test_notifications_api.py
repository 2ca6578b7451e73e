"""Notification API tests — CRUD, filters, preferences, on-demand sweep."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from pillar.events.types import NOTIFICATION, SYNC


@pytest.fixture
def bus_events(bus):
    events = {SYNC: [], NOTIFICATION: []}
    bus.on(SYNC, events[SYNC].append)
    bus.on(NOTIFICATION, events[NOTIFICATION].append)
    return events


async def _create(client, **fields):
    body = {"type": "reminder", "title": "Heads up", "message": "Something is due"}
    body.update(fields)
    r = await client.post("/api/notifications", json=body)
    assert r.status_code == 201, r.text
    return r.json()


# ═══════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_notification_announces_it(client, bus_events, user):
    task = (await client.post("/api/tasks", json={"title": "Ship"})).json()
    notification = await _create(client, task_id=task["id"], metadata={"priority": "high"})

    assert notification["read"] is False
    assert notification["dismissed"] is False
    assert notification["task_id"] == task["id"]
    assert notification["metadata"] == {"priority": "high"}

    [event] = bus_events[NOTIFICATION]
    assert event.notification_id == notification["id"]
    assert event.user_id == str(user.id)
    assert event.task_id == task["id"]
    assert event.metadata == {"priority": "high"}

    sync = bus_events[SYNC][-1]
    assert (sync.entity, sync.action) == ("notification", "created")


@pytest.mark.asyncio
async def test_create_notification_for_unknown_task(client):
    r = await client.post(
        "/api/notifications",
        json={"type": "reminder", "title": "t", "message": "m", "task_id": str(uuid.uuid4())},
    )
    assert r.status_code == 404
    assert r.json() == {"error": "Task not found"}


@pytest.mark.asyncio
async def test_create_notification_type_validated(client):
    r = await client.post(
        "/api/notifications", json={"type": "spam", "title": "t", "message": "m"}
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_list_notifications_newest_first_with_filters(client):
    first = await _create(client, title="first")
    await _create(client, type="overdue", title="second")
    await client.patch(f"/api/notifications/{first['id']}", json={"read": True})

    titles = [n["title"] for n in (await client.get("/api/notifications")).json()]
    assert set(titles) == {"first", "second"}

    unread = (await client.get("/api/notifications", params={"read": "false"})).json()
    assert [n["title"] for n in unread] == ["second"]

    overdue = (await client.get("/api/notifications", params={"type": "overdue,daily-summary"})).json()
    assert [n["title"] for n in overdue] == ["second"]

    limited = (await client.get("/api/notifications", params={"limit": 1})).json()
    assert len(limited) == 1


@pytest.mark.asyncio
async def test_snooze_and_unsnooze(client):
    notification = await _create(client)
    later = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()

    r = await client.patch(f"/api/notifications/{notification['id']}", json={"snoozed_until": later})
    assert r.json()["snoozed_until"] is not None

    r = await client.patch(f"/api/notifications/{notification['id']}", json={"snoozed_until": None})
    assert r.json()["snoozed_until"] is None


@pytest.mark.asyncio
async def test_dismiss_and_delete(client, bus_events):
    notification = await _create(client)

    r = await client.patch(f"/api/notifications/{notification['id']}", json={"dismissed": True})
    assert r.json()["dismissed"] is True

    r = await client.delete(f"/api/notifications/{notification['id']}")
    assert r.json() == {"success": True}
    assert (await client.get(f"/api/notifications/{notification['id']}")).status_code == 404
    assert (bus_events[SYNC][-1].entity, bus_events[SYNC][-1].action) == ("notification", "deleted")


@pytest.mark.asyncio
async def test_missing_notification(client):
    r = await client.patch(f"/api/notifications/{uuid.uuid4()}", json={"read": True})
    assert r.status_code == 404
    assert r.json() == {"error": "Notification not found"}


# ═══════════════════════════════════════════════════════════
# Preferences
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_preferences_created_with_defaults(client, user):
    r = await client.get("/api/notifications/preferences")
    assert r.status_code == 200
    prefs = r.json()
    assert prefs["user_id"] == str(user.id)
    assert prefs["enable_in_app_notifications"] is True
    assert prefs["reminder_timings"] == [1440, 60, 15]
    assert prefs["quiet_hours_start"] == "22:00"
    assert prefs["timezone"] == "UTC"

    # Same row the second time
    again = (await client.get("/api/notifications/preferences")).json()
    assert again["updated_at"] == prefs["updated_at"]


@pytest.mark.asyncio
async def test_update_preferences(client, bus_events):
    r = await client.patch(
        "/api/notifications/preferences",
        json={"quiet_hours_enabled": True, "quiet_hours_start": "23:00", "timezone": "Europe/Berlin"},
    )
    assert r.status_code == 200
    prefs = r.json()
    assert prefs["quiet_hours_enabled"] is True
    assert prefs["quiet_hours_start"] == "23:00"
    assert prefs["quiet_hours_end"] == "08:00"
    assert prefs["timezone"] == "Europe/Berlin"

    assert (bus_events[SYNC][-1].entity, bus_events[SYNC][-1].action) == ("settings", "updated")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"quiet_hours_start": "25:00"},
        {"reminder_timings": [60, -5]},
        {"reminder_timings": list(range(1, 12))},
        {"email_digest_frequency": "hourly"},
        {"timezone": "Mars/Olympus_Mons"},
    ],
)
async def test_update_preferences_validation(client, body):
    r = await client.patch("/api/notifications/preferences", json=body)
    assert r.status_code == 400


# ═══════════════════════════════════════════════════════════
# On-demand sweep
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_check_due_dates(client, bus_events):
    past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
    await client.post("/api/tasks", json={"title": "Remind me", "reminder_at": past})

    r = await client.post("/api/notifications/check-due-dates")
    assert r.status_code == 200
    result = r.json()
    assert result["reminders"] == 1
    assert result["notificationsCreated"] == (
        result["reminders"] + result["overdue"]
        + result["dailySummaries"] + result["overdueDigests"]
    )
    assert len(bus_events[NOTIFICATION]) == result["notificationsCreated"]

    again = (await client.post("/api/notifications/check-due-dates")).json()
    assert again["reminders"] == 0


@pytest.mark.asyncio
async def test_check_due_dates_failure_is_500(client, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("database exploded")

    monkeypatch.setattr("pillar.api.notifications.process_notifications", broken)
    r = await client.post("/api/notifications/check-due-dates")
    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error"}
