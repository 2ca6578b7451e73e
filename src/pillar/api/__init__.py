"""API route aggregation.

All routers registered here get mounted in main.py under /api.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. This protects all routes in each router
without modifying individual handlers. Health is open (no auth).
The event stream (pillar.realtime.sse) authenticates itself.
"""

from fastapi import APIRouter, Depends

from pillar.api.ai import router as ai_router
from pillar.api.categories import router as categories_router
from pillar.api.filter_presets import router as filter_presets_router
from pillar.api.health import router as health_router
from pillar.api.labels import router as labels_router
from pillar.api.notifications import router as notifications_router
from pillar.api.settings import router as settings_router
from pillar.api.stats import router as stats_router
from pillar.api.tasks import router as tasks_router
from pillar.auth.dependencies import get_current_user
from pillar.realtime.sse import router as events_router

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api")

# Open routes: no auth required
api_router.include_router(health_router, tags=["health"])

# Realtime stream
api_router.include_router(events_router, tags=["events"])

# Protected routes: require a session JWT or a personal access token
api_router.include_router(categories_router, tags=["categories"], dependencies=_auth)
api_router.include_router(labels_router, tags=["labels"], dependencies=_auth)
api_router.include_router(filter_presets_router, tags=["filter-presets"], dependencies=_auth)
api_router.include_router(tasks_router, tags=["tasks"], dependencies=_auth)
api_router.include_router(notifications_router, tags=["notifications"], dependencies=_auth)
api_router.include_router(settings_router, tags=["settings"], dependencies=_auth)
api_router.include_router(stats_router, tags=["stats"], dependencies=_auth)
api_router.include_router(ai_router, tags=["ai"], dependencies=_auth)
