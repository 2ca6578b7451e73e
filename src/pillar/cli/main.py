"""Pillar CLI — run the server, sweep notifications, watch the sync stream.

Usage:
    pillar serve                                  # Run the API with uvicorn
    pillar initdb                                 # Create tables (dev / SQLite)
    pillar sweep                                  # One notification sweep, all users
    pillar sweep --user-id <uuid>                 # ...scoped to one user
    pillar listen --token <jwt>                   # Print live sync events
    pillar tasks --token <jwt>                    # List tasks through the API
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
import uuid
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("PILLAR_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None, api_key: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Pillar backend."""
    headers = {}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if api_key:
        headers["X-API-Key"] = api_key
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop: normal CLI invocation
        return asyncio.run(coro)
    else:
        # Already inside an event loop (e.g. test runner): run in a thread
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k) or "—")[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _priority_color(priority: str) -> str:
    colors = {
        "urgent": "red",
        "high": "yellow",
        "medium": "white",
        "low": "cyan",
    }
    return colors.get(priority, "white")


def _require_credential(token: Optional[str], api_key: Optional[str]) -> None:
    if not token and not api_key:
        click.secho(
            "Error: --token or --api-key required (or set PILLAR_TOKEN / PILLAR_API_KEY)",
            fg="red",
            err=True,
        )
        sys.exit(1)


_token_option = click.option(
    "--token", envvar="PILLAR_TOKEN", help="Session JWT (or set PILLAR_TOKEN)"
)
_api_key_option = click.option(
    "--api-key", envvar="PILLAR_API_KEY", help="Personal access token (or set PILLAR_API_KEY)"
)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="pillar")
def main():
    """Pillar — task management backend with realtime sync."""


# ---------------------------------------------------------------------------
# pillar serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: PILLAR_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: PILLAR_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server.

    Use a single worker: the sync bus is in-process, so streams held by
    one worker never see events emitted by another.
    """
    import uvicorn

    from pillar.config import settings

    uvicorn.run(
        "pillar.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        workers=1,
    )


# ---------------------------------------------------------------------------
# pillar initdb
# ---------------------------------------------------------------------------


@main.command()
def initdb():
    """Create any missing tables. Production databases use `alembic upgrade head`."""
    from pillar.db.engine import engine, init_models

    async def _impl():
        await init_models()
        await engine.dispose()

    _run(_impl())
    click.secho("Tables created.", fg="green")


# ---------------------------------------------------------------------------
# pillar sweep
# ---------------------------------------------------------------------------


@main.command()
@click.option("--user-id", "-u", help="Only consider this user's tasks")
def sweep(user_id: Optional[str]):
    """Run one notification sweep against the database and print the counts."""
    scope = None
    if user_id:
        try:
            scope = uuid.UUID(user_id)
        except ValueError:
            click.secho(f"Error: {user_id!r} is not a UUID", fg="red", err=True)
            sys.exit(1)

    counts = _run(_sweep_impl(scope))
    click.echo(_pretty_json(counts))


async def _sweep_impl(scope: Optional[uuid.UUID]) -> dict:
    from pillar.db.engine import async_session_factory, engine
    from pillar.events.bus import sync_event_bus
    from pillar.services.notification_worker import process_notifications

    try:
        async with async_session_factory() as db:
            return await process_notifications(db, sync_event_bus, scope_user_id=scope)
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# pillar listen
# ---------------------------------------------------------------------------


@main.command()
@_token_option
@_api_key_option
@click.option("--session-id", "-s", help="Session id to present (default: random)")
@click.option("--entity", "-e", multiple=True, help="Only print these entities (repeatable)")
def listen(token: Optional[str], api_key: Optional[str],
           session_id: Optional[str], entity: tuple[str, ...]):
    """Stay connected to /api/events and print every event received.

    Reconnects with backoff. Ctrl-C to stop.
    """
    _require_credential(token, api_key)
    try:
        _run(_listen_impl(token, api_key, session_id, entity))
    except KeyboardInterrupt:
        click.echo()


async def _listen_impl(token: Optional[str], api_key: Optional[str],
                       session_id: Optional[str], entities: tuple[str, ...]):
    from pillar.events.types import SYNC_ENTITIES
    from pillar.realtime.client import RealtimeAuthError, RealtimeSyncClient

    client = RealtimeSyncClient(
        _api_url(), token=token, api_key=api_key, session_id=session_id
    )

    def print_sync(event):
        click.echo(
            f"{click.style('sync', fg='cyan')}  {event.entity:14s} "
            f"{event.action:10s} {event.entity_id}"
        )

    def print_notification(event):
        click.echo(
            f"{click.style('notification', fg='yellow')}  {event.type}  {event.title}"
        )

    for name in entities or SYNC_ENTITIES:
        client.subscribe(name, print_sync)
    client.on_notification(print_notification)
    client.on_reconnected(lambda: click.secho("reconnected", fg="green"))

    click.secho(f"Listening as session {client.session_id}", bold=True)
    try:
        await client.run()
    except RealtimeAuthError:
        click.secho("Unauthorized — check the token.", fg="red", err=True)
        sys.exit(1)
    if client.gave_up:
        click.secho("Gave up after repeated connection failures.", fg="red", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# pillar tasks
# ---------------------------------------------------------------------------


@main.command()
@_token_option
@_api_key_option
@click.option("--completed/--open", default=None, help="Filter by completion")
@click.option("--priority", "-p", help="Filter by priority")
def tasks(token: Optional[str], api_key: Optional[str],
          completed: Optional[bool], priority: Optional[str]):
    """List your tasks."""
    _require_credential(token, api_key)
    _run(_tasks_impl(token, api_key, completed, priority))


async def _tasks_impl(token: Optional[str], api_key: Optional[str],
                      completed: Optional[bool], priority: Optional[str]):
    params: dict = {}
    if completed is not None:
        params["completed"] = str(completed).lower()
    if priority:
        params["priority"] = priority

    async with _client(token, api_key) as c:
        r = await c.get("/api/tasks", params=params)
        if r.status_code == 401:
            click.secho("Unauthorized — check the token.", fg="red", err=True)
            sys.exit(1)
        r.raise_for_status()
        rows = r.json()

    if not rows:
        click.echo("No tasks found.")
        return

    for row in rows:
        row["priority"] = click.style(row["priority"], fg=_priority_color(row["priority"]))
        row["done"] = "yes" if row.get("completed_at") else ""
    _print_table(rows, [
        ("ID", "id", 8),
        ("TITLE", "title", 40),
        ("PRIORITY", "priority", 18),
        ("DUE", "due_date", 25),
        ("DONE", "done", 4),
    ])


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
