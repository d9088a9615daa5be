"""Shared test fixtures.

Tests run against a fresh in-memory SQLite database per test; Redis is never
initialized, so publishers receive None and the rate limiter passes requests
through. Tests that need pub/sub or rate limiting pass a ``FakeRedis``.
"""

from __future__ import annotations

import json
import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone

# Must be set before questcoder.main builds the app from cached settings
os.environ["QC_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["QC_ENVIRONMENT"] = "test"
os.environ["QC_JWT_SECRET_KEY"] = "test-secret-key-with-at-least-32-bytes!"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from questcoder.config import get_settings

get_settings.cache_clear()

from questcoder.auth.jwt import create_access_token  # noqa: E402
from questcoder.database import close_db, create_all, get_session, init_db  # noqa: E402
from questcoder.db.models import User  # noqa: E402
from questcoder.gamification.seed import seed_badges  # noqa: E402
from questcoder.leaderboard.cache import leaderboard_cache  # noqa: E402
from questcoder.main import create_app  # noqa: E402


class FakeRedis:
    """Records publishes and counts INCRs; enough for pub/sub and rate-limit paths."""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict]] = []
        self.counters: dict[str, int] = {}

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, json.loads(message)))
        return 1

    def channels(self) -> list[str]:
        return [channel for channel, _ in self.published]

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    async def ping(self) -> bool:
        return True


class FakePipeline:
    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._ops: list[tuple[str, str]] = []

    def incr(self, key: str) -> None:
        self._ops.append(("incr", key))

    def expire(self, key: str, _seconds: int) -> None:
        self._ops.append(("expire", key))

    async def execute(self) -> list[object]:
        results: list[object] = []
        for op, key in self._ops:
            if op == "incr":
                self._redis.counters[key] = self._redis.counters.get(key, 0) + 1
                results.append(self._redis.counters[key])
            else:
                results.append(True)
        return results


@pytest.fixture(autouse=True)
def _clear_leaderboard_cache():
    """Leaderboard cache is process-global; isolate every test."""
    leaderboard_cache.clear()
    yield
    leaderboard_cache.clear()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh in-memory schema for one test."""
    await init_db(get_settings().database_url)
    await create_all()
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for setup and assertions."""
    async for session in get_session():
        yield session
        break


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Session with the default badge catalog loaded."""
    await seed_badges(db_session)
    return db_session


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory creating committed users."""

    async def _make(username: str, is_active: bool = True) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            is_active=is_active,
            created_at=datetime.now(timezone.utc),
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def user(make_user) -> User:
    return await make_user("alice")


def _auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def auth_headers() -> Callable[[int], dict[str, str]]:
    """Build bearer headers for a user id."""
    return _auth_headers


@pytest_asyncio.fixture
async def client(seeded_db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the app; the lifespan is not run, the DB is already set up."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient, user: User) -> AsyncClient:
    """Client authenticated as ``user``."""
    client.headers.update(_auth_headers(user.id))
    return client
