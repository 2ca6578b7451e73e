"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running
and dependencies (database, Redis) are reachable. Also reports how
many realtime streams are open on this process.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from pillar import __version__
from pillar.db.engine import engine
from pillar.events.bus import EventBus, get_event_bus
from pillar.events.types import SYNC

router = APIRouter()


@router.get("/health")
async def health_check(bus: EventBus = Depends(get_event_bus)):
    """Check server health and dependency connectivity.

    Redis is optional, so an unreachable Redis is reported but does not
    make the service "degraded".
    """
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    try:
        from pillar.redis_client import get_redis

        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"unavailable: {e}"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, "sse_connections": bus.listener_count(SYNC), **checks}
