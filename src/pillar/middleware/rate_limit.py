"""Rate limiting middleware, Redis fixed window.

Learn: One counter per client IP, bucket and minute, stored under
"pillar:rl:{ip}:{bucket}:{minute}" with a TTL so old windows expire on
their own. Two buckets:
- "sensitive": writes to the password and personal-token endpoints,
  the only places a guessed secret can be confirmed
- "api": everything else

The event stream and health probe are exempt. A tab holds one stream
open for hours and reconnects after every deploy; counting those would
lock users out of their own data.

No Redis, no limiting: a missing or failing Redis never blocks a request.
"""

import time
from typing import Optional

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pillar import redis_client

logger = structlog.get_logger()

SENSITIVE_PREFIXES = ("/api/settings/password", "/api/settings/tokens")
EXEMPT_PATHS = ("/api/events", "/api/health")
WINDOW_SECONDS = 60
KEY_TTL_SECONDS = 2 * WINDOW_SECONDS


def _is_sensitive(request: Request) -> bool:
    return request.method != "GET" and request.url.path.startswith(SENSITIVE_PREFIXES)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP requests-per-minute limit with a stricter bucket for secrets."""

    def __init__(self, app, default_rpm: int = 100, sensitive_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.sensitive_rpm = sensitive_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        sensitive = _is_sensitive(request)
        rpm = self.sensitive_rpm if sensitive else self.default_rpm
        now = time.time()
        window = int(now // WINDOW_SECONDS)
        client_ip = request.client.host if request.client else "unknown"
        key = f"pillar:rl:{client_ip}:{'sensitive' if sensitive else 'api'}:{window}"

        count = await self._hit(key)
        if count is None:
            return await call_next(request)

        if count > rpm:
            retry_after = WINDOW_SECONDS - int(now % WINDOW_SECONDS)
            logger.info("rate_limit.exceeded", client_ip=client_ip, sensitive=sensitive)
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response

    async def _hit(self, key: str) -> Optional[int]:
        """Bump the window counter; None means limiting is off for this request."""
        try:
            redis = redis_client.get_redis()
        except RuntimeError:
            return None
        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, KEY_TTL_SECONDS)
        except (RedisError, OSError) as e:
            logger.warning("rate_limit.redis_error", error=str(e))
            return None
        return count
