"""One open SSE connection and everything it owns.

Learn: Each connection registers two listeners on the bus, one for
"sync" and one for "notification", that only enqueue. The response
generator drains the queue. The heartbeat runs on a fixed schedule: the
queue wait is bounded by the next heartbeat deadline, so a comment goes
out every `heartbeat_interval` seconds whether or not events arrived in
between. Listeners are registered when the first frame is pulled.

Teardown converges on close(), from three directions:
- the client went away (checked on each heartbeat tick)
- the write failed (Starlette closes the frame iterator)
- someone called close() explicitly (shutdown, tests)
"""

import asyncio
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import structlog

from pillar.events.bus import EventBus
from pillar.events.types import NOTIFICATION, SYNC, NotificationEvent, SyncEvent

logger = structlog.get_logger()

CONNECTED_FRAME = ": connected\n\n"
HEARTBEAT_FRAME = ": heartbeat\n\n"


def format_sse(event_name: str, data: Any) -> str:
    """Frame one named event: `event: <name>\\ndata: <json>\\n\\n`."""
    return f"event: {event_name}\ndata: {json.dumps(data)}\n\n"


class SyncStream:
    """Per-connection subscriber scoped to (user_id, exclude_session_id)."""

    _SENTINEL = object()

    def __init__(
        self,
        bus: EventBus,
        user_id: str,
        exclude_session_id: str = "",
        heartbeat_interval: float = 30.0,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ):
        self.bus = bus
        self.user_id = user_id
        self.exclude_session_id = exclude_session_id
        self.heartbeat_interval = heartbeat_interval
        self._is_disconnected = is_disconnected
        self._queue: asyncio.Queue = asyncio.Queue()
        self._opened = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: SyncEvent) -> bool:
        return (
            event.user_id == self.user_id
            and event.session_id != self.exclude_session_id
        )

    def open(self) -> None:
        """Register on the bus. Called once, before the first frame."""
        if self._opened or self._closed:
            return
        self._opened = True
        self.bus.on(SYNC, self._on_sync)
        self.bus.on(NOTIFICATION, self._on_notification)
        logger.info(
            "sse.connected",
            user_id=self.user_id,
            session_id=self.exclude_session_id,
        )

    def close(self) -> bool:
        """Tear the connection down. Returns False if it already was."""
        if self._closed:
            return False
        self._closed = True
        self.bus.off(SYNC, self._on_sync)
        self.bus.off(NOTIFICATION, self._on_notification)
        self._queue.put_nowait(self._SENTINEL)
        logger.info(
            "sse.disconnected",
            user_id=self.user_id,
            session_id=self.exclude_session_id,
        )
        return True

    # ─── Bus listeners (synchronous, enqueue only) ─────────

    def _on_sync(self, event: SyncEvent) -> None:
        if self._closed or not self.matches(event):
            return
        self._queue.put_nowait(format_sse(SYNC, event.to_wire()))

    def _on_notification(self, event: NotificationEvent) -> None:
        if self._closed or event.user_id != self.user_id:
            return
        self._queue.put_nowait(format_sse(NOTIFICATION, event.to_wire()))

    # ─── Response body ───────────────────────────────────

    def iter_frames(self) -> "FrameIterator":
        """Frames for the response body. Closing the iterator tears down."""
        return FrameIterator(self, self._frames())

    async def _frames(self) -> AsyncIterator[str]:
        try:
            self.open()
            if self._closed:
                return
            yield CONNECTED_FRAME

            loop = asyncio.get_running_loop()
            next_heartbeat = loop.time() + self.heartbeat_interval
            while not self._closed:
                remaining = next_heartbeat - loop.time()
                if remaining <= 0:
                    next_heartbeat = loop.time() + self.heartbeat_interval
                    if self._is_disconnected and await self._is_disconnected():
                        break
                    yield HEARTBEAT_FRAME
                    continue
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    continue
                if item is self._SENTINEL:
                    break
                yield item
        finally:
            self.close()


class FrameIterator:
    """Async iterator over a SyncStream's frames.

    Learn: aclose() on an async generator that never started skips its
    finally block, so the listeners registered by an explicit open()
    would outlive the response. Closing through this wrapper always
    reaches SyncStream.close().
    """

    def __init__(self, stream: SyncStream, frames: AsyncIterator[str]):
        self._stream = stream
        self._frames = frames

    def __aiter__(self) -> "FrameIterator":
        return self

    async def __anext__(self) -> str:
        return await self._frames.__anext__()

    async def aclose(self) -> None:
        try:
            await self._frames.aclose()
        finally:
            self._stream.close()
