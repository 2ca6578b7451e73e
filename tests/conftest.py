"""Test fixtures — a fresh in-memory database and a private event bus per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI + aiosqlite:

1. Each test gets its own in-memory SQLite engine. StaticPool keeps one
   connection open, so every session sees the same database.
2. Tables are created with Base.metadata.create_all — no migrations needed.
3. get_db is overridden to hand out sessions from the test engine, and
   get_event_bus to hand out a bus nobody else is listening on.

Environment is set before pillar is imported: settings are read once,
at import time.
"""

import os

os.environ.setdefault("PILLAR_ENVIRONMENT", "test")
os.environ.setdefault("PILLAR_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PILLAR_NOTIFICATION_WORKER_ENABLED", "false")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from pillar.auth.dependencies import CurrentIdentity, get_current_user  # noqa: E402
from pillar.auth.password import hash_password  # noqa: E402
from pillar.db.engine import get_db, init_models  # noqa: E402
from pillar.db.models import User  # noqa: E402
from pillar.events.bus import EventBus, get_event_bus  # noqa: E402
from pillar.main import app  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"


@pytest_asyncio.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(bind=engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def bus():
    return EventBus(max_listeners=50)


async def _make_user(db: AsyncSession, email: str, name: str) -> User:
    # Low bcrypt cost keeps the suite fast
    user = User(email=email, name=name, password_hash=hash_password(TEST_PASSWORD, rounds=4))
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture()
async def user(db_session):
    return await _make_user(db_session, "ada@example.com", "Ada")


@pytest_asyncio.fixture()
async def other_user(db_session):
    return await _make_user(db_session, "grace@example.com", "Grace")


def _install_overrides(session_factory, bus):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_bus] = lambda: bus


@pytest_asyncio.fixture()
async def client(session_factory, bus, user):
    """HTTP client acting as `user`.

    Learn: get_current_user is overridden to return the seeded user's
    identity, so tests don't need to mint a token for every request.
    """
    _install_overrides(session_factory, bus)
    app.dependency_overrides[get_current_user] = lambda: CurrentIdentity(
        user_id=str(user.id), email=user.email
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauthenticated_client(session_factory, bus):
    """HTTP client WITHOUT the auth override — for real JWT/cookie/API-key flows."""
    _install_overrides(session_factory, bus)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
