"""Redis cache implementation for techpress.

Two layers:
- RedisConnection: the process-wide client handle. Owns connect/close and the
  liveness flag. A failed round trip marks the backend down for an
  exponentially growing window; while the window is open no call is issued at
  all, after it closes the next call goes through as a probe.
- RedisCache: the cache store adapter used by the read path and by the
  invalidation consumer. Every operation is total: backend errors are logged
  and degraded to a miss (get), False (set) or 0 (delete).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, cast

import redis.asyncio as redis

from techpress.cache.keys import is_pattern
from techpress.config import settings
from techpress.observability.metrics import record_cache_error, record_cache_operation

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Keys per SCAN page and per DEL call during pattern deletes
DELETE_BATCH_SIZE = 100


class RedisConnection:
    """Process-wide Redis client handle with a known-down window."""

    def __init__(
        self,
        url: str | None = None,
        *,
        backoff_initial: float | None = None,
        backoff_max: float | None = None,
        backoff_multiplier: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url or settings.redis_url
        self.backoff_initial = (
            backoff_initial if backoff_initial is not None else settings.cache_backoff_initial
        )
        self.backoff_max = backoff_max if backoff_max is not None else settings.cache_backoff_max
        self.backoff_multiplier = (
            backoff_multiplier
            if backoff_multiplier is not None
            else settings.cache_backoff_multiplier
        )
        self._clock = clock
        self._client: Redis | None = None
        self._failures = 0
        self._down_until = 0.0

    @property
    def client(self) -> Redis | None:
        """Underlying redis-py client, None before connect() or after close()."""
        return self._client

    @property
    def is_available(self) -> bool:
        """True unless the backend is inside its known-down window."""
        return self._client is not None and self._clock() >= self._down_until

    @property
    def retry_after(self) -> float:
        """Seconds until the known-down window closes, 0 when it is closed."""
        return max(self._down_until - self._clock(), 0.0)

    def attach(self, client: Redis) -> None:
        """Use an existing client (tests, shared pools)."""
        self._client = client
        self._failures = 0
        self._down_until = 0.0

    async def connect(self) -> bool:
        """Create the client and probe it.

        Never raises: an unreachable server leaves the client in place but
        marked down, so requests fall through to the source of truth until a
        later probe succeeds.
        """
        if self._client is None:
            self._client = redis.from_url(  # type: ignore[no-untyped-call]
                self.url,
                decode_responses=False,  # We're storing bytes
                socket_connect_timeout=settings.redis_socket_connect_timeout,
                socket_timeout=settings.redis_socket_timeout,
                max_connections=settings.redis_max_connections,
            )
        try:
            await cast(Awaitable[bool], self._client.ping())
        except Exception as e:
            self.mark_down(e)
            return False
        self.mark_up()
        logger.info("Connected to Redis at %s", self.url)
        return True

    async def close(self) -> None:
        """Close Redis connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

    def mark_down(self, error: BaseException) -> None:
        """Open (or extend) the known-down window after a failed call."""
        self._failures += 1
        delay = min(
            self.backoff_initial * self.backoff_multiplier ** (self._failures - 1),
            self.backoff_max,
        )
        self._down_until = self._clock() + delay
        if self._failures == 1:
            logger.warning(f"Redis unavailable, serving without cache: {error}")
        else:
            logger.debug(f"Redis still unavailable (attempt {self._failures}, retry in {delay:.1f}s)")

    def mark_up(self) -> None:
        """Close the known-down window after a successful call."""
        if self._failures:
            logger.info("Redis available again after %d failed attempts", self._failures)
        self._failures = 0
        self._down_until = 0.0


class RedisCache:
    """Cache store adapter: get / set / delete_matching that never raise."""

    def __init__(self, connection: RedisConnection):
        self.connection = connection

    @property
    def is_available(self) -> bool:
        return self.connection.is_available

    @property
    def retry_after(self) -> float:
        return self.connection.retry_after

    def _degrade(self, operation: str, target: str, error: Exception) -> None:
        logger.debug(f"Cache {operation} error for {target}: {error}")
        record_cache_error(operation)
        self.connection.mark_down(error)

    def _succeed(self, operation: str, start: float) -> None:
        self.connection.mark_up()
        record_cache_operation(operation, time.perf_counter() - start)

    async def get(self, key: str) -> bytes | None:
        """Get cached bytes, or None on miss or any backend problem."""
        client = self.connection.client
        if client is None or not self.connection.is_available:
            return None

        start = time.perf_counter()
        try:
            data = await client.get(key)
        except Exception as e:
            self._degrade("get", key, e)
            return None
        self._succeed("get", start)
        return cast(bytes | None, data)

    async def set(self, key: str, value: bytes, ttl: int) -> bool:
        """Best-effort write with TTL.

        Returns False instead of raising when the value could not be stored;
        callers are free to ignore the result.
        """
        client = self.connection.client
        if client is None or not self.connection.is_available:
            return False

        start = time.perf_counter()
        try:
            await client.set(key, value, ex=ttl)
        except Exception as e:
            self._degrade("set", key, e)
            return False
        self._succeed("set", start)
        return True

    async def delete(self, *keys: str) -> int:
        """Delete exact keys. Returns the number of keys removed."""
        client = self.connection.client
        if not keys or client is None or not self.connection.is_available:
            return 0

        start = time.perf_counter()
        try:
            deleted = cast(int, await client.delete(*keys))
        except Exception as e:
            self._degrade("delete", ",".join(keys), e)
            return 0
        self._succeed("delete", start)
        return deleted

    async def delete_matching(self, pattern: str) -> int:
        """Delete every live key matching an exact key or glob pattern.

        Glob patterns are resolved with SCAN (never KEYS, which blocks the
        server) and deleted page by page. No matches means no DEL is issued.
        Returns the number of keys removed. A backend error stops the scan
        and returns what was removed before it.
        """
        if not is_pattern(pattern):
            return await self.delete(pattern)

        client = self.connection.client
        if client is None or not self.connection.is_available:
            return 0

        start = time.perf_counter()
        deleted = 0
        batch: list[bytes | str] = []
        try:
            async for key in client.scan_iter(match=pattern, count=DELETE_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= DELETE_BATCH_SIZE:
                    deleted += cast(int, await client.delete(*batch))
                    batch = []

            if batch:
                deleted += cast(int, await client.delete(*batch))
        except Exception as e:
            self._degrade("delete_matching", pattern, e)
            return deleted
        self._succeed("delete_matching", start)
        return deleted

    async def health_check(self) -> bool:
        """Check Redis connectivity, bypassing the known-down window."""
        client = self.connection.client
        if client is None:
            return False
        try:
            await cast(Awaitable[bool], client.ping())
        except Exception as e:
            self.connection.mark_down(e)
            return False
        self.connection.mark_up()
        return True
