"""Eager repopulation of the default blog list after an invalidation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from techpress.cache.aside import serialize
from techpress.cache.keys import CacheKeys
from techpress.config import settings
from techpress.persistence.repositories import BlogRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from techpress.cache.redis import RedisCache

logger = logging.getLogger(__name__)


class BlogListRebuilder:
    """Re-run the unfiltered blog list query and store it under blogs::.

    Uses the same serialization as the read path, so a rebuilt entry is
    byte-identical to one populated by a reader. Errors propagate to the
    consumer, which logs them without failing the message.
    """

    def __init__(
        self,
        cache: RedisCache,
        session_factory: Callable[[], AsyncSession],
        ttl: int | None = None,
    ):
        self.cache = cache
        self.session_factory = session_factory
        self.ttl = ttl or settings.ttl_blog_list

    async def __call__(self) -> bool:
        async with self.session_factory() as session:
            blogs = await BlogRepository(session).list_blogs("", "")

        key = CacheKeys.default_blog_list()
        stored = await self.cache.set(key, serialize(blogs), self.ttl)
        if stored:
            logger.info(f"Cache rebuilt with key {key} ({len(blogs)} blogs)")
        else:
            logger.debug(f"Cache rebuild of {key} skipped, cache unavailable")
        return stored
