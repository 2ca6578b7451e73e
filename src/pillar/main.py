"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, the notification
worker, the database engine). Middleware, CORS, error rendering and
routers are all registered here.

Every error leaves the API as {"error": "<message>"}:
- HTTPException          → its status, detail as the message
- request validation     → 400, first problem found
- ModelValidationError   → 400, the model's message
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pillar import __version__
from pillar.api import api_router
from pillar.config import settings
from pillar.db.models import ModelValidationError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs
    at shutdown.
    """
    logger.info(
        "pillar.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from pillar.redis_client import close_redis, init_redis
    try:
        await init_redis()
        logger.info("pillar.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("pillar.redis_unavailable", error=str(e))
        # Redis is optional: only rate limiting is skipped without it

    worker = None
    worker_task = None
    if settings.notification_worker_enabled:
        from pillar.events.bus import sync_event_bus
        from pillar.services.notification_worker import NotificationWorker

        worker = NotificationWorker(
            bus=sync_event_bus,
            interval=settings.notification_worker_interval_seconds,
            initial_delay=settings.notification_worker_initial_delay_seconds,
        )
        worker_task = asyncio.create_task(worker.run_loop())

    yield

    logger.info("pillar.shutdown")

    if worker and worker_task:
        worker.stop()
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass

    await close_redis()

    from pillar.db.engine import engine
    await engine.dispose()


# ─── Error rendering ─────────────────────────────────────


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first['msg']}" if field else first["msg"]
    return JSONResponse(status_code=400, content={"error": message})


async def model_validation_handler(request: Request, exc: ModelValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Pillar",
        description="Task management backend with realtime sync",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from pillar.middleware.rate_limit import RateLimitMiddleware
    from pillar.middleware.request_id import RequestIdMiddleware
    from pillar.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        sensitive_rpm=settings.rate_limit_sensitive_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ModelValidationError, model_validation_handler)

    # Mount API routes (the SSE stream included, at /api/events)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: pillar.main:app)
app = create_app()
