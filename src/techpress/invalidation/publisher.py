"""Invalidation publishing for write paths.

Every write that changes cached data announces the affected key patterns
after it has committed:

    publisher = InvalidationPublisher(queue, fallback_cache=cache)

    # After adding or deleting a comment on blog 42
    await publisher.invalidate_blog(42)

    # Arbitrary patterns, e.g. after a blog edit in another service
    await publisher.publish(["blog:42", "blogs:*:*"])
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from techpress.cache.keys import CacheKeys
from techpress.cache.redis import RedisCache
from techpress.config import settings
from techpress.invalidation.queue import InvalidationQueue
from techpress.invalidation.schemas import InvalidationEvent
from techpress.observability.metrics import record_invalidation_published

logger = logging.getLogger(__name__)


class InvalidationPublisher:
    """Publishes invalidation events to the shared queue."""

    def __init__(
        self,
        queue: InvalidationQueue,
        fallback_cache: RedisCache | None = None,
        source: str | None = None,
    ):
        self.queue = queue
        self.fallback_cache = fallback_cache
        self.source = source or settings.service_name

    async def publish(self, keys: Iterable[str]) -> InvalidationEvent:
        """Announce that the given keys or patterns are stale.

        The write that triggered this has already committed, so a broker
        failure is not raised to the caller. It is logged, and the patterns
        are deleted from the local cache so at least this service stops
        serving stale data.

        Raises:
            ValueError: no keys were given.
        """
        event = InvalidationEvent(keys=tuple(keys), source=self.source)
        if not event.keys:
            raise ValueError("At least one key or pattern is required")

        try:
            message_id = await self.queue.publish(event.to_bytes())
        except Exception as e:
            logger.error(f"Failed to publish invalidation for {list(event.keys)}: {e}")
            record_invalidation_published("failed")
            await self._invalidate_locally(event)
            return event

        record_invalidation_published("success")
        logger.debug(f"Published invalidation {message_id} for {list(event.keys)}")
        return event

    async def invalidate_blog(self, blog_id: int | str) -> InvalidationEvent:
        """Announce that a blog's detail and comment list are stale."""
        return await self.publish(CacheKeys.blog_related(blog_id))

    async def _invalidate_locally(self, event: InvalidationEvent) -> None:
        if self.fallback_cache is None:
            return
        for pattern in event.keys:
            await self.fallback_cache.delete_matching(pattern)
