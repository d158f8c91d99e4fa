"""Shared test fixtures.

Tests run against in-memory SQLite and a dict-backed Redis double, so no
external services are needed.
"""

from __future__ import annotations

import json
import os
from collections import Counter
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

os.environ["STACKIT_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STACKIT_JWT_SECRET"] = "test-secret-with-at-least-32-bytes!!"
os.environ["STACKIT_FANOUT_MODE"] = "inline"
os.environ["STACKIT_LOG_FORMAT"] = "console"

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from stackit.config import get_settings  # noqa: E402

get_settings.cache_clear()

from stackit.database import close_db, create_tables, get_session_factory, init_db  # noqa: E402
from stackit.db.models import Notification, User  # noqa: E402
from stackit.main import create_app  # noqa: E402


class FakeRedis:
    """Dict-backed stand-in for the handful of Redis commands the app uses.

    Counts every call per command and can be switched to fail like an
    unreachable server.
    """

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.published: list[tuple[str, str]] = []
        self.calls: Counter[str] = Counter()
        self.fail = False

    def _call(self, command: str) -> None:
        self.calls[command] += 1
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, key: str) -> str | None:
        self._call("get")
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._call("set")
        self.store[key] = str(value)
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._call("delete")
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def publish(self, channel: str, message: str) -> int:
        self._call("publish")
        self.published.append((channel, message))
        return 0

    async def ping(self) -> bool:
        self._call("ping")
        return True

    def messages_for(self, user_id: int) -> list[dict]:
        """Decoded payloads published to one user's notification channel."""
        channel = f"notifications:user:{user_id}"
        return [json.loads(message) for ch, message in self.published if ch == channel]


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Fresh in-memory database with all tables for each test."""
    await init_db(get_settings().database_url)
    await create_tables()
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(db: None) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for test setup and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> FakeRedis:
    """Install a FakeRedis as the app's Redis pool."""
    fake = FakeRedis()
    monkeypatch.setattr("stackit.redis_client._pool", fake)
    return fake


@pytest_asyncio.fixture
async def client(db: None, fake_redis: FakeRedis) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP test client.

    The database and Redis are set up by fixtures, so the app lifespan
    (and its pub/sub bridge) is not started.
    """
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def make_user(db: AsyncSession, username: str) -> int:
    """Insert a user directly and return its id."""
    user = User(
        username=username,
        email=f"{username.lower()}@example.com",
        password_hash="not-a-real-hash",
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.commit()
    return user.id


async def make_notification(
    db: AsyncSession,
    user_id: int,
    type_: str = "answer",
    message: str = "someone answered your question",
    *,
    is_read: bool = False,
    created_at: datetime | None = None,
) -> int:
    """Insert a notification directly and return its id."""
    notification = Notification(
        user_id=user_id,
        type=type_,
        message=message,
        is_read=is_read,
        created_at=created_at or datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.commit()
    return notification.id


def make_token(user_id: int, *, token_type: str = "access", expires_in: int = 3600) -> str:
    """Sign an access token the way the auth service does."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        "type": token_type,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest_asyncio.fixture
async def users(db_session: AsyncSession) -> dict[str, int]:
    """Three users, alice, bob and carol, keyed by username."""
    return {name: await make_user(db_session, name) for name in ("alice", "bob", "carol")}
