"""Shared Redis connection.

Learn: Redis is optional here. The rate limiter and the health check use
it when it's reachable; realtime delivery does not go through Redis at
all (see pillar.events.bus). If init_redis() fails at startup the app
keeps running and get_redis() raises, which callers treat as "skip".
"""

from typing import Optional

import redis.asyncio as aioredis

from pillar.config import settings

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection before publishing it
    await client.ping()
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
