"""GET /api/events — the realtime sync stream.

Learn: Server-Sent Events over a plain StreamingResponse. Browsers use
EventSource, which can't set headers, so the session cookie is the
usual credential here; Bearer and X-API-Key work too.

Flow:
1. Authenticate (401 before anything is registered)
2. Build a SyncStream for (user, ?sessionId) and hand its frames to Starlette;
   the bus listeners are registered when Starlette pulls the first frame
3. Starlette closes the frame iterator on disconnect → SyncStream.close()
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from pillar.auth.dependencies import CurrentIdentity, get_current_user
from pillar.config import settings
from pillar.events.bus import EventBus, get_event_bus
from pillar.realtime.stream import SyncStream

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # nginx: don't buffer the stream
}


@router.get("/events")
async def stream_events(
    request: Request,
    session_id: str = Query("", alias="sessionId"),
    identity: CurrentIdentity = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    """Open a sync stream for the current user.

    Events this session caused itself (same sessionId) are filtered out
    server-side, so the tab that made a change never refetches for it.
    """
    stream = SyncStream(
        bus,
        user_id=identity.user_id,
        exclude_session_id=session_id,
        heartbeat_interval=settings.sse_heartbeat_seconds,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(
        stream.iter_frames(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
