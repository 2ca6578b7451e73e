"""In-process event bus — the hub every realtime stream hangs off.

Learn: A plain observer registry. Mutation routes emit, open SSE
connections listen. Emission is synchronous and fire-and-forget: the
bus calls each listener in turn and returns; listeners only enqueue,
so a slow client never blocks the request that made the change.

Single process only. Running several workers partitions the listeners,
and an event emitted in one worker never reaches streams held by another.
"""

from collections import defaultdict
from typing import Any, Callable, Optional

import structlog

from pillar.config import settings
from pillar.events.types import NOTIFICATION, SYNC, NotificationEvent, SyncEvent

logger = structlog.get_logger()

Listener = Callable[[Any], None]


class EventBus:
    """Named-event publish/subscribe registry.

    Learn: Every connected browser tab registers two listeners, so the
    ceiling has to sit well above the usual "possible leak" threshold.
    Crossing it only logs a warning — subscribing never fails.
    """

    def __init__(self, max_listeners: int = 500):
        self.max_listeners = max_listeners
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._warned: set[str] = set()

    def on(self, event_name: str, listener: Listener) -> None:
        listeners = self._listeners[event_name]
        listeners.append(listener)
        if len(listeners) > self.max_listeners and event_name not in self._warned:
            self._warned.add(event_name)
            logger.warning(
                "event_bus.max_listeners_exceeded",
                event_name=event_name,
                count=len(listeners),
                max_listeners=self.max_listeners,
            )

    def off(self, event_name: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_name)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event_name]

    def emit(self, event_name: str, payload: Any) -> int:
        """Call every listener registered for event_name, in order.

        Iterates over a snapshot, so a listener may deregister itself (or
        another) mid-dispatch. A listener that raises is logged and skipped.
        Returns how many listeners were invoked.
        """
        listeners = list(self._listeners.get(event_name, ()))
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("event_bus.listener_error", event_name=event_name)
        return len(listeners)

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))

    def remove_all_listeners(self, event_name: Optional[str] = None) -> None:
        if event_name is None:
            self._listeners.clear()
            self._warned.clear()
        else:
            self._listeners.pop(event_name, None)
            self._warned.discard(event_name)


# Process-wide instance shared by every route and stream.
sync_event_bus = EventBus(max_listeners=settings.event_bus_max_listeners)


def get_event_bus() -> EventBus:
    """FastAPI dependency — override in tests to inject a private bus."""
    return sync_event_bus


def emit_sync_event(bus: EventBus, event: SyncEvent) -> int:
    return bus.emit(SYNC, event)


def emit_notification_event(bus: EventBus, event: NotificationEvent) -> int:
    return bus.emit(NOTIFICATION, event)
