"""Global pytest configuration and fixtures.

Provides an in-process stand-in for the Redis server, a controllable clock
for the known-down window, and an in-memory SQLite database.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from fnmatch import fnmatchcase
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from techpress.cache.aside import CacheAside
from techpress.cache.redis import RedisCache, RedisConnection
from techpress.persistence.tables import Base, BlogTable, UserTable


class FakeRedis:
    """Key/value server double implementing the calls the cache adapter makes.

    Set `fail = True` to make every call raise like an unreachable server.
    """

    def __init__(self) -> None:
        self.store: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.calls: list[str] = []
        self.fail = False

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def ping(self) -> bool:
        self._call("ping")
        return True

    async def get(self, key: str) -> bytes | None:
        self._call("get")
        return self.store.get(key)

    async def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
        self._call("set")
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: Any) -> int:
        self._call("delete")
        removed = 0
        for key in keys:
            name = key.decode() if isinstance(key, bytes) else key
            if self.store.pop(name, None) is not None:
                removed += 1
            self.ttls.pop(name, None)
        return removed

    async def scan_iter(self, match: str | None = None, count: int | None = None):  # type: ignore[no-untyped-def]
        self._call("scan")
        for key in list(self.store):
            if match is None or fnmatchcase(key, match):
                yield key.encode()

    async def aclose(self) -> None:
        self.calls.append("aclose")


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def connection(fake_redis: FakeRedis, clock: FakeClock) -> RedisConnection:
    """Connection handle attached to the fake server."""
    conn = RedisConnection(
        url="redis://test:6379/0",
        backoff_initial=1.0,
        backoff_max=8.0,
        backoff_multiplier=2.0,
        clock=clock,
    )
    conn.attach(fake_redis)  # type: ignore[arg-type]
    return conn


@pytest.fixture
def cache(connection: RedisConnection) -> RedisCache:
    return RedisCache(connection)


@pytest.fixture
def cache_aside(cache: RedisCache) -> CacheAside:
    return CacheAside(cache)


@pytest.fixture
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """In-memory SQLite database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def seed_blog(
    session_factory: async_sessionmaker[AsyncSession],
    blog_id: int,
    title: str = "Async Rust",
    category: str = "tech",
    description: str = "Futures explained",
    author: str = "u1",
    author_name: str | None = "Ada",
) -> None:
    """Insert a blog (and its author, if named) directly."""
    async with session_factory() as session:
        if author_name is not None and await session.get(UserTable, author) is None:
            session.add(UserTable(id=author, name=author_name, image=None))
        session.add(
            BlogTable(
                id=blog_id,
                title=title,
                description=description,
                blogcontent="...",
                category=category,
                author=author,
            )
        )
        await session.commit()


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession]):  # type: ignore[no-untyped-def]
    """Bound seed_blog for the test database."""

    async def _seed(blog_id: int, **kwargs: Any) -> None:
        await seed_blog(session_factory, blog_id, **kwargs)

    return _seed
