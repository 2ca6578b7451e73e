"""Publishing sync events from mutation routes.

Learn: Routes depend on SyncPublisher instead of touching the bus
directly. The dependency already knows who is asking and which browser
session asked (X-Session-Id header), so a handler only says what changed:

    await service.delete(...)
    publisher.publish(ENTITY_LABEL, DELETED, label_id)

Always publish after the commit — a listener may trigger a refetch that
must see the new state.
"""

from typing import Any, Optional

from fastapi import Depends, Header

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.events.bus import EventBus, emit_sync_event, get_event_bus
from pillar.events.types import SyncEvent


class SyncPublisher:
    """Builds SyncEvents for one request and emits them on the bus."""

    def __init__(self, bus: EventBus, user_id: str, session_id: str = ""):
        self.bus = bus
        self.user_id = user_id
        self.session_id = session_id

    def publish(
        self,
        entity: str,
        action: str,
        entity_id: Any,
        data: Optional[dict[str, Any]] = None,
    ) -> SyncEvent:
        event = SyncEvent(
            entity=entity,
            action=action,
            user_id=self.user_id,
            session_id=self.session_id,
            entity_id=str(entity_id),
            data=data,
        )
        emit_sync_event(self.bus, event)
        return event


def get_sync_publisher(
    identity: CurrentIdentity = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
    x_session_id: Optional[str] = Header(None),
) -> SyncPublisher:
    return SyncPublisher(bus, identity.user_id, x_session_id or "")
