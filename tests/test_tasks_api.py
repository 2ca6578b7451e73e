"""Task API tests — CRUD, filters, completion, reordering, references.

Learn: Build up data through the API (category → labels → tasks) the
same way the frontend does, then assert on the responses and on the
sync events the bus saw.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.events.types import SYNC
from pillar.main import app


# ═══════════════════════════════════════════════════════════
# Shared fixtures
# ═══════════════════════════════════════════════════════════


@pytest.fixture
async def category(client):
    resp = await client.post("/api/categories", json={"name": "Work"})
    return resp.json()


@pytest.fixture
async def label(client):
    resp = await client.post("/api/labels", json={"name": "bug", "color": "#ef4444"})
    return resp.json()


@pytest.fixture
def sync_events(bus):
    events = []
    bus.on(SYNC, events.append)
    return events


# ═══════════════════════════════════════════════════════════
# Task CRUD
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_task(client, category, label, sync_events):
    """POST /tasks creates an open task and announces it."""
    resp = await client.post(
        "/api/tasks",
        json={
            "title": "Fix login bug",
            "priority": "high",
            "category_id": category["id"],
            "labels": [label["id"]],
            "due_date": "2026-10-20T17:00:00Z",
        },
        headers={"X-Session-Id": "tab-1"},
    )
    assert resp.status_code == 201
    task = resp.json()
    assert task["title"] == "Fix login bug"
    assert task["priority"] == "high"
    assert task["category_id"] == category["id"]
    assert task["labels"] == [label["id"]]
    assert task["completed_at"] is None
    assert task["due_date"].startswith("2026-10-20T17:00:00")

    event = sync_events[-1]
    assert (event.entity, event.action) == ("task", "created")
    assert event.entity_id == task["id"]
    assert event.session_id == "tab-1"
    assert event.data["title"] == "Fix login bug"


@pytest.mark.asyncio
async def test_create_task_defaults(client):
    task = (await client.post("/api/tasks", json={"title": "Plain"})).json()
    assert task["priority"] == "medium"
    assert task["labels"] == []
    assert task["category_id"] is None
    assert task["order"] == 0


@pytest.mark.asyncio
async def test_task_order_appends_within_category(client, category):
    first = (await client.post("/api/tasks", json={"title": "a", "category_id": category["id"]})).json()
    second = (await client.post("/api/tasks", json={"title": "b", "category_id": category["id"]})).json()
    assert (first["order"], second["order"]) == (0, 1)


@pytest.mark.asyncio
async def test_create_task_validation(client):
    assert (await client.post("/api/tasks", json={"title": ""})).status_code == 400
    assert (await client.post("/api/tasks", json={"title": "x" * 201})).status_code == 400
    r = await client.post("/api/tasks", json={"title": "x", "priority": "critical"})
    assert r.status_code == 400
    assert r.json()["error"].startswith("priority:")


@pytest.mark.asyncio
async def test_create_task_with_unknown_category(client):
    r = await client.post("/api/tasks", json={"title": "x", "category_id": str(uuid.uuid4())})
    assert r.status_code == 404
    assert r.json() == {"error": "Category not found"}


@pytest.mark.asyncio
async def test_create_task_with_unknown_label(client):
    r = await client.post("/api/tasks", json={"title": "x", "labels": [str(uuid.uuid4())]})
    assert r.status_code == 404
    assert r.json() == {"error": "Label not found"}


@pytest.mark.asyncio
async def test_update_task_partial(client, sync_events):
    task = (
        await client.post(
            "/api/tasks",
            json={"title": "Draft", "description": "keep me", "due_date": "2026-10-20T17:00:00Z"},
        )
    ).json()

    r = await client.patch(f"/api/tasks/{task['id']}", json={"title": "Final", "due_date": None})
    assert r.status_code == 200
    updated = r.json()
    assert updated["title"] == "Final"
    assert updated["description"] == "keep me"
    assert updated["due_date"] is None

    assert (sync_events[-1].entity, sync_events[-1].action) == ("task", "updated")


@pytest.mark.asyncio
async def test_update_task_completed_flag(client):
    task = (await client.post("/api/tasks", json={"title": "x"})).json()

    done = (await client.patch(f"/api/tasks/{task['id']}", json={"completed": True})).json()
    assert done["completed_at"] is not None

    reopened = (await client.patch(f"/api/tasks/{task['id']}", json={"completed": False})).json()
    assert reopened["completed_at"] is None


@pytest.mark.asyncio
async def test_toggle_complete(client):
    task = (await client.post("/api/tasks", json={"title": "x"})).json()

    r = await client.post(f"/api/tasks/{task['id']}/complete")
    assert r.status_code == 200
    assert r.json()["completed_at"] is not None

    r = await client.post(f"/api/tasks/{task['id']}/complete")
    assert r.json()["completed_at"] is None


@pytest.mark.asyncio
async def test_list_tasks_filters(client, category):
    await client.post("/api/tasks", json={"title": "a", "priority": "high", "category_id": category["id"]})
    b = (await client.post("/api/tasks", json={"title": "b", "priority": "low"})).json()
    await client.post(f"/api/tasks/{b['id']}/complete")

    all_tasks = (await client.get("/api/tasks")).json()
    assert len(all_tasks) == 2

    in_category = (await client.get("/api/tasks", params={"category_id": category["id"]})).json()
    assert [t["title"] for t in in_category] == ["a"]

    done = (await client.get("/api/tasks", params={"completed": "true"})).json()
    assert [t["title"] for t in done] == ["b"]

    open_ = (await client.get("/api/tasks", params={"completed": "false"})).json()
    assert [t["title"] for t in open_] == ["a"]

    high = (await client.get("/api/tasks", params={"priority": "high"})).json()
    assert [t["title"] for t in high] == ["a"]


@pytest.mark.asyncio
async def test_reorder_tasks(client, sync_events):
    a = (await client.post("/api/tasks", json={"title": "a"})).json()
    b = (await client.post("/api/tasks", json={"title": "b"})).json()

    r = await client.patch(
        "/api/tasks/reorder",
        json={"tasks": [{"id": a["id"], "order": 1}, {"id": b["id"], "order": 0}]},
    )
    assert r.status_code == 200
    assert r.json() == {"success": True}

    titles = [t["title"] for t in (await client.get("/api/tasks")).json()]
    assert titles == ["b", "a"]
    assert (sync_events[-1].entity, sync_events[-1].action) == ("task", "reordered")


@pytest.mark.asyncio
async def test_reorder_with_foreign_task(client):
    a = (await client.post("/api/tasks", json={"title": "a"})).json()
    r = await client.patch(
        "/api/tasks/reorder",
        json={"tasks": [{"id": a["id"], "order": 3}, {"id": str(uuid.uuid4()), "order": 0}]},
    )
    assert r.status_code == 404
    assert (await client.get(f"/api/tasks/{a['id']}")).json()["order"] == 0


@pytest.mark.asyncio
async def test_delete_task(client, sync_events):
    task = (await client.post("/api/tasks", json={"title": "x"})).json()

    r = await client.delete(f"/api/tasks/{task['id']}")
    assert r.json() == {"success": True}
    assert (await client.get(f"/api/tasks/{task['id']}")).status_code == 404

    event = sync_events[-1]
    assert (event.entity, event.action, event.entity_id) == ("task", "deleted", task["id"])


@pytest.mark.asyncio
async def test_tasks_are_owner_scoped(client, other_user):
    task = (await client.post("/api/tasks", json={"title": "private"})).json()

    app.dependency_overrides[get_current_user] = lambda: CurrentIdentity(
        user_id=str(other_user.id)
    )
    assert (await client.get("/api/tasks")).json() == []
    assert (await client.get(f"/api/tasks/{task['id']}")).status_code == 404
    r = await client.patch(f"/api/tasks/{task['id']}", json={"title": "mine now"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_cannot_file_task_under_someone_elses_category(client, user, other_user):
    task = (await client.post("/api/tasks", json={"title": "x"})).json()

    app.dependency_overrides[get_current_user] = lambda: CurrentIdentity(
        user_id=str(other_user.id)
    )
    theirs = (await client.post("/api/categories", json={"name": "Theirs"})).json()

    app.dependency_overrides[get_current_user] = lambda: CurrentIdentity(
        user_id=str(user.id)
    )
    r = await client.patch(f"/api/tasks/{task['id']}", json={"category_id": theirs["id"]})
    assert r.status_code == 404
    assert r.json() == {"error": "Category not found"}


# ═══════════════════════════════════════════════════════════
# Snooze
# ═══════════════════════════════════════════════════════════


async def _reminder(client, task_id: str) -> dict:
    resp = await client.post(
        "/api/notifications",
        json={"task_id": task_id, "type": "reminder", "title": "Task reminder", "message": "m"},
    )
    return resp.json()


def _parse_dt(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.mark.asyncio
async def test_snooze_pushes_reminder_a_day_out(client, sync_events):
    task = (await client.post("/api/tasks", json={"title": "Call back"})).json()

    before = datetime.now(timezone.utc)
    resp = await client.post(f"/api/tasks/{task['id']}/snooze", json={})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True

    snoozed_until = _parse_dt(body["snoozed_until"])
    assert before + timedelta(hours=24) <= snoozed_until
    assert snoozed_until <= datetime.now(timezone.utc) + timedelta(hours=24)

    fetched = (await client.get(f"/api/tasks/{task['id']}")).json()
    assert _parse_dt(fetched["reminder_at"]) == snoozed_until

    event = sync_events[-1]
    assert (event.entity, event.action, event.entity_id) == ("task", "updated", task["id"])


@pytest.mark.asyncio
async def test_snooze_without_body(client):
    task = (await client.post("/api/tasks", json={"title": "x"})).json()
    resp = await client.post(f"/api/tasks/{task['id']}/snooze")
    assert resp.status_code == 200
    assert resp.json()["snoozed_until"]


@pytest.mark.asyncio
async def test_snooze_marks_the_reminder_read(client, sync_events):
    task = (await client.post("/api/tasks", json={"title": "Call back"})).json()
    notification = await _reminder(client, task["id"])
    assert notification["read"] is False

    resp = await client.post(
        f"/api/tasks/{task['id']}/snooze", json={"notification_id": notification["id"]}
    )
    assert resp.status_code == 200

    updated = (await client.get(f"/api/notifications/{notification['id']}")).json()
    assert updated["read"] is True
    assert _parse_dt(updated["snoozed_until"]) == _parse_dt(resp.json()["snoozed_until"])

    changed = [(e.entity, e.action, e.entity_id) for e in sync_events[-2:]]
    assert changed == [
        ("task", "updated", task["id"]),
        ("notification", "updated", notification["id"]),
    ]


@pytest.mark.asyncio
async def test_snooze_ignores_unknown_notification(client, sync_events):
    task = (await client.post("/api/tasks", json={"title": "x"})).json()
    resp = await client.post(
        f"/api/tasks/{task['id']}/snooze", json={"notification_id": str(uuid.uuid4())}
    )
    assert resp.status_code == 200
    assert sync_events[-1].entity == "task"


@pytest.mark.asyncio
async def test_snooze_unknown_or_foreign_task(client, other_user):
    r = await client.post(f"/api/tasks/{uuid.uuid4()}/snooze")
    assert r.status_code == 404
    assert r.json() == {"error": "Task not found"}

    task = (await client.post("/api/tasks", json={"title": "private"})).json()
    app.dependency_overrides[get_current_user] = lambda: CurrentIdentity(
        user_id=str(other_user.id)
    )
    r = await client.post(f"/api/tasks/{task['id']}/snooze")
    assert r.status_code == 404
