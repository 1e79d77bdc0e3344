"""Runtime wiring for techpress.

Holds the process-wide handles: one Redis connection shared by the cache
and the queue, one invalidation queue, publisher and consumer.
"""

from __future__ import annotations

import logging

from techpress.cache.aside import CacheAside
from techpress.cache.redis import RedisCache, RedisConnection
from techpress.config import settings
from techpress.invalidation.consumer import InvalidationConsumer
from techpress.invalidation.publisher import InvalidationPublisher
from techpress.invalidation.queue import (
    InMemoryInvalidationQueue,
    InvalidationQueue,
    RedisStreamInvalidationQueue,
)
from techpress.invalidation.rebuild import BlogListRebuilder
from techpress.persistence.db import get_session_factory

logger = logging.getLogger(__name__)

_connection: RedisConnection | None = None
_queue: InvalidationQueue | None = None
_publisher: InvalidationPublisher | None = None
_consumer: InvalidationConsumer | None = None


def get_connection() -> RedisConnection:
    """Get the singleton Redis connection handle."""
    global _connection
    if _connection is None:
        _connection = RedisConnection()
    return _connection


def get_cache() -> RedisCache:
    return RedisCache(get_connection())


def get_cache_aside() -> CacheAside:
    return CacheAside(get_cache())


async def connect_cache() -> bool:
    """Connect the shared Redis handle. Never raises."""
    return await get_connection().connect()


def create_queue() -> InvalidationQueue:
    """Create an invalidation queue based on configuration."""
    backend = settings.invalidation_backend.lower()

    if backend in {"memory", "inmemory", "in_memory"}:
        return InMemoryInvalidationQueue(
            max_size=settings.invalidation_queue_size,
            redelivery_delay=settings.invalidation_retry_delay,
        )

    if backend in {"redis", "redis_stream", "redis-stream", "streams"}:
        client = get_connection().client
        if client is None:
            raise RuntimeError("Redis connection is not initialized; call connect_cache() first")
        return RedisStreamInvalidationQueue(client)

    raise ValueError(
        "Unsupported invalidation_backend. Supported values: memory, redis, redis_stream."
    )


def get_queue() -> InvalidationQueue:
    """Get the singleton invalidation queue."""
    global _queue
    if _queue is None:
        _queue = create_queue()
    return _queue


def get_publisher() -> InvalidationPublisher:
    """Get the singleton invalidation publisher."""
    global _publisher
    if _publisher is None:
        _publisher = InvalidationPublisher(get_queue(), fallback_cache=get_cache())
    return _publisher


def create_consumer() -> InvalidationConsumer:
    """Create an invalidation consumer for this service."""
    cache = get_cache()
    rebuilder = (
        BlogListRebuilder(cache, get_session_factory())
        if settings.rebuild_on_invalidate
        else None
    )
    return InvalidationConsumer(get_queue(), cache, rebuilder=rebuilder)


async def start_consumer() -> InvalidationConsumer:
    """Start the invalidation consumer."""
    global _consumer
    if _consumer is None:
        _consumer = create_consumer()
    await _consumer.start()
    return _consumer


async def stop_consumer() -> None:
    """Stop the invalidation consumer, letting the current batch finish."""
    global _consumer
    if _consumer is None:
        return
    await _consumer.stop()
    _consumer = None


async def shutdown() -> None:
    """Release every runtime handle, consumer first."""
    global _connection, _queue, _publisher
    await stop_consumer()
    if _queue is not None:
        await _queue.close()
        _queue = None
    _publisher = None
    if _connection is not None:
        await _connection.close()
        _connection = None
    logger.info("Runtime shut down")
