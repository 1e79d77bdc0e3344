"""Cache-aside accessor.

Every read endpoint goes through CacheAside.load():

    1. cache hit  -> return cached bytes, the source of truth is not touched
    2. cache miss -> call the loader (source of truth)
    3. loader returned None (not found) -> return None, nothing is cached
    4. serialize, best-effort populate with TTL, return the same bytes

Values are returned as canonical JSON bytes so that a hit and the miss that
populated it produce byte-identical response bodies.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import orjson

from techpress.cache.redis import RedisCache
from techpress.observability.metrics import record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]


def serialize(value: Any) -> bytes:
    """Canonical serialization for cached values."""
    return orjson.dumps(value, option=orjson.OPT_SORT_KEYS)


class CacheAside:
    """Cache-aside read path bound to one cache store."""

    def __init__(self, cache: RedisCache):
        self.cache = cache

    async def load(
        self,
        key: str,
        loader: Loader,
        ttl: int,
        resource: str = "default",
    ) -> bytes | None:
        """Return the serialized value for key, loading it on a miss.

        Errors raised by the loader propagate: if the source of truth is down
        and nothing is cached the read genuinely fails.
        """
        cached = await self.cache.get(key)
        if cached is not None:
            record_cache_hit(resource)
            logger.debug("Cache hit: %s", key)
            return cached

        record_cache_miss(resource)
        value = await loader()
        if value is None:
            logger.debug("Not found, nothing cached: %s", key)
            return None

        doc_bytes = serialize(value)
        # Best-effort: a failed populate only costs the next reader a miss
        stored = await self.cache.set(key, doc_bytes, ttl)
        if not stored:
            logger.debug("Cache populate skipped: %s", key)
        return doc_bytes

    async def load_json(
        self,
        key: str,
        loader: Loader,
        ttl: int,
        resource: str = "default",
    ) -> Any | None:
        """Like load(), but deserialized.

        A cached entry that cannot be decoded is treated as a miss and
        overwritten from the source of truth.
        """
        doc_bytes = await self.load(key, loader, ttl, resource)
        if doc_bytes is None:
            return None
        try:
            return orjson.loads(doc_bytes)
        except orjson.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry: %s", key)
            await self.cache.delete(key)
            doc_bytes = await self.load(key, loader, ttl, resource)
            return orjson.loads(doc_bytes) if doc_bytes is not None else None
