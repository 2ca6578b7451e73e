"""RealtimeSyncClient — consumer side of GET /api/events.

Learn: The Python twin of the browser's sync hook. It keeps one stream
open, reconnects with exponential backoff when it drops, and fans
incoming events out to handlers:

    client = RealtimeSyncClient("http://localhost:8000", token=jwt)
    client.subscribe("task", lambda event: refetch_tasks())
    client.on_reconnected(refetch_everything)   # missed events aren't replayed
    await client.run()

Backoff: min(base * 2**(n-1), max) plus up to 10% jitter, where n is the
number of consecutive failures. A successful open resets n. After
`max_retries` consecutive failures the client gives up. A 401 stops
immediately — retrying won't fix a bad credential.
"""

import asyncio
import inspect
import json
import random
import uuid
from collections import defaultdict
from typing import Any, AsyncIterator, Callable, Optional

import httpx
import structlog
from pydantic import ValidationError

from pillar.events.types import NOTIFICATION, SYNC, NotificationEvent, SyncEvent

logger = structlog.get_logger()

Handler = Callable[[Any], Any]

ALL_ENTITIES = "*"


class RealtimeAuthError(Exception):
    """The stream endpoint answered 401."""


class RealtimeStreamError(Exception):
    """The stream could not be opened (non-200, non-401)."""


async def parse_sse(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, str]]:
    """Turn raw stream lines into (event_name, data) pairs.

    Comment lines (": heartbeat") are skipped; a blank line ends a frame.
    Frames without data are dropped.
    """
    event_name = "message"
    data: list[str] = []
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if data:
                yield event_name, "\n".join(data)
            event_name, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_name = value
        elif field == "data":
            data.append(value)
    if data:
        yield event_name, "\n".join(data)


class RealtimeSyncClient:
    """Reconnecting SSE consumer with per-entity subscriptions."""

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        api_key: Optional[str] = None,
        session_id: Optional[str] = None,
        *,
        max_retries: int = 10,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.connected = False
        self.gave_up = False

        headers = {"Accept": "text/event-stream"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if api_key:
            headers["X-API-Key"] = api_key
        self._headers = headers
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0, read=None),
        )

        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._notification_handlers: list[Handler] = []
        self._reconnected_handlers: list[Handler] = []
        self._has_connected = False
        self._failures = 0
        self._stopped = False
        self._stop_event = asyncio.Event()
        self._conn_task: Optional[asyncio.Task] = None

    # ═══════════════════════════════════════════════════════
    # Subscriptions
    # ═══════════════════════════════════════════════════════

    def subscribe(self, entity: str, handler: Handler) -> Callable[[], None]:
        """Call handler(SyncEvent) for every sync event about `entity`.

        Subscribe to ALL_ENTITIES ("*") to hear about every entity.
        """
        self._subscribers[entity].append(handler)
        return lambda: _discard(self._subscribers[entity], handler)

    def on_notification(self, handler: Handler) -> Callable[[], None]:
        self._notification_handlers.append(handler)
        return lambda: _discard(self._notification_handlers, handler)

    def on_reconnected(self, handler: Handler) -> Callable[[], None]:
        """Called after every successful connection except the first."""
        self._reconnected_handlers.append(handler)
        return lambda: _discard(self._reconnected_handlers, handler)

    # ═══════════════════════════════════════════════════════
    # Connection loop
    # ═══════════════════════════════════════════════════════

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before reconnect attempt number `attempt` (1-based)."""
        delay = min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
        return delay + random.uniform(0, delay * 0.1)

    async def run(self) -> None:
        """Connect and keep reconnecting until stop() or too many failures."""
        self._stopped = False
        self._stop_event.clear()
        try:
            while not self._stopped:
                self._conn_task = asyncio.create_task(self._connect_once())
                try:
                    await self._conn_task
                except asyncio.CancelledError:
                    if self._stopped:
                        break
                    raise
                except RealtimeAuthError:
                    logger.warning("realtime_client.unauthorized")
                    raise
                except (httpx.HTTPError, RealtimeStreamError) as e:
                    logger.info("realtime_client.connection_error", error=str(e))
                finally:
                    self.connected = False
                    self._conn_task = None

                if self._stopped:
                    break

                self._failures += 1
                if self._failures >= self.max_retries:
                    self.gave_up = True
                    logger.warning(
                        "realtime_client.gave_up", attempts=self._failures
                    )
                    break

                delay = self.backoff_delay(self._failures)
                logger.info(
                    "realtime_client.reconnecting",
                    attempt=self._failures,
                    delay=round(delay, 3),
                )
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            if self._owns_client:
                await self._client.aclose()

    def stop(self) -> None:
        """Stop the loop and drop the open connection. Safe to call twice."""
        if self._stopped:
            return
        self._stopped = True
        self._stop_event.set()
        if self._conn_task and not self._conn_task.done():
            self._conn_task.cancel()

    async def _connect_once(self) -> None:
        async with self._client.stream(
            "GET",
            "/api/events",
            params={"sessionId": self.session_id},
            headers=self._headers,
        ) as response:
            if response.status_code == 401:
                raise RealtimeAuthError("stream rejected credentials")
            if response.status_code != 200:
                raise RealtimeStreamError(
                    f"unexpected status {response.status_code}"
                )

            await self._handle_open()
            async for event_name, data in parse_sse(response.aiter_lines()):
                if self._stopped:
                    return
                await self._dispatch(event_name, data)

    async def _handle_open(self) -> None:
        self.connected = True
        self._failures = 0
        logger.info("realtime_client.connected", session_id=self.session_id)
        if self._has_connected:
            for handler in list(self._reconnected_handlers):
                await _call(handler, None)
        self._has_connected = True

    async def _dispatch(self, event_name: str, data: str) -> None:
        try:
            payload = json.loads(data)
            if event_name == SYNC:
                event = SyncEvent.model_validate(payload)
            elif event_name == NOTIFICATION:
                event = NotificationEvent.model_validate(payload)
            else:
                return
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("realtime_client.bad_payload", event_name=event_name, error=str(e))
            return

        if event_name == SYNC:
            # The server filters our own session too.
            if event.session_id == self.session_id:
                return
            handlers = self._subscribers.get(event.entity, []) + self._subscribers.get(ALL_ENTITIES, [])
            for handler in handlers:
                await _call(handler, event)
        else:
            for handler in list(self._notification_handlers):
                await _call(handler, event)


def _discard(handlers: list, handler: Handler) -> None:
    if handler in handlers:
        handlers.remove(handler)


async def _call(handler: Handler, arg: Any) -> None:
    try:
        result = handler(arg) if arg is not None else handler()
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("realtime_client.handler_error")
