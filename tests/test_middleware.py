"""Tests for middleware — security headers, request IDs, rate limiting, error shape.

Learn: Rate limiting is skipped in tests (no Redis available), so the
limiter itself is exercised with a small in-memory stand-in for the
two Redis calls it makes (incr + expire).
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from pillar.middleware import rate_limit
from pillar.middleware.rate_limit import RateLimitMiddleware


@pytest.mark.asyncio
async def test_security_headers_on_health(client):
    """Health endpoint returns security headers."""
    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/health")
    r2 = await client.get("/api/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get("/api/health", headers={"X-Request-ID": custom_id})
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_oversized_request_id_replaced(client):
    r = await client.get("/api/health", headers={"X-Request-ID": "x" * 500})
    assert len(r.headers["X-Request-ID"]) == 36


@pytest.mark.asyncio
async def test_json_responses_not_cached(client):
    r = await client.get("/api/categories")
    assert r.headers["Cache-Control"] == "no-store"


@pytest.mark.asyncio
async def test_no_hsts_on_http(client):
    """HSTS header is NOT set on HTTP connections (only HTTPS)."""
    r = await client.get("/api/health")
    assert "Strict-Transport-Security" not in r.headers


# ═══════════════════════════════════════════════════════════
# Error shape
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_not_found_is_error_json(client):
    r = await client.get("/api/categories/00000000-0000-0000-0000-000000000000")
    assert r.status_code == 404
    assert r.json() == {"error": "Category not found"}


@pytest.mark.asyncio
async def test_validation_error_is_400_with_field(client):
    r = await client.post("/api/labels", json={"name": "bug", "color": "red"})
    assert r.status_code == 400
    assert r.json()["error"].startswith("color:")


@pytest.mark.asyncio
async def test_model_validation_error_is_400(client):
    """Whitespace-only names pass the schema but fail the model's trim check."""
    r = await client.post("/api/categories", json={"name": "   "})
    assert r.status_code == 400
    assert "name is required" in r.json()["error"]


# ═══════════════════════════════════════════════════════════
# Rate limiting
# ═══════════════════════════════════════════════════════════


class FakeRedis:
    def __init__(self):
        self.counts: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds


@pytest.fixture
def limited_app(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr("pillar.redis_client._redis", fake)

    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, default_rpm=3, sensitive_rpm=1)

    @app.get("/api/tasks")
    async def tasks():
        return []

    @app.post("/api/settings/tokens")
    async def create_token():
        return {}

    @app.get("/api/settings/tokens")
    async def list_tokens():
        return []

    @app.get("/api/events")
    async def events():
        return {}

    return app, fake


async def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_rate_limit_blocks_after_budget(limited_app):
    app, fake = limited_app
    async with await _client(app) as c:
        statuses = [(await c.get("/api/tasks")).status_code for _ in range(4)]
        assert statuses == [200, 200, 200, 429]

        r = await c.get("/api/tasks")
        assert r.json() == {"error": "Rate limit exceeded. Try again later."}
        assert 1 <= int(r.headers["Retry-After"]) <= 60
    assert set(fake.ttls.values()) == {120}


@pytest.mark.asyncio
async def test_rate_limit_headers(limited_app):
    app, _ = limited_app
    async with await _client(app) as c:
        r = await c.get("/api/tasks")
    assert r.headers["X-RateLimit-Limit"] == "3"
    assert r.headers["X-RateLimit-Remaining"] == "2"


@pytest.mark.asyncio
async def test_sensitive_writes_use_stricter_bucket(limited_app):
    app, _ = limited_app
    async with await _client(app) as c:
        assert (await c.post("/api/settings/tokens")).status_code == 200
        assert (await c.post("/api/settings/tokens")).status_code == 429
        # Reads on the same path count against the normal budget
        assert (await c.get("/api/settings/tokens")).status_code == 200


@pytest.mark.asyncio
async def test_event_stream_is_exempt(limited_app):
    app, fake = limited_app
    async with await _client(app) as c:
        for _ in range(5):
            assert (await c.get("/api/events")).status_code == 200
    assert fake.counts == {}


@pytest.mark.asyncio
async def test_rate_limit_skipped_without_redis(monkeypatch):
    monkeypatch.setattr("pillar.redis_client._redis", None)
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, default_rpm=1)

    @app.get("/api/tasks")
    async def tasks():
        return []

    async with await _client(app) as c:
        for _ in range(3):
            r = await c.get("/api/tasks")
            assert r.status_code == 200
            assert "X-RateLimit-Limit" not in r.headers


def test_exempt_paths():
    assert "/api/events" in rate_limit.EXEMPT_PATHS
    assert "/api/health" in rate_limit.EXEMPT_PATHS


class BrokenRedis:
    async def incr(self, key):
        raise ConnectionError("redis went away")

    async def expire(self, key, seconds):
        raise AssertionError("not reached")


@pytest.mark.asyncio
async def test_redis_failure_lets_request_through(monkeypatch):
    monkeypatch.setattr("pillar.redis_client._redis", BrokenRedis())
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, default_rpm=1)

    @app.get("/api/tasks")
    async def tasks():
        return []

    async with await _client(app) as c:
        assert (await c.get("/api/tasks")).status_code == 200
        assert (await c.get("/api/tasks")).status_code == 200
