"""Cache layer for techpress.

Provides Redis caching with the cache-aside pattern:
- Canonical JSON bytes cached per key with a TTL
- A total store adapter: backend errors degrade to misses, never to failures
- A shared key schema used by readers and by invalidation publishers
"""

from techpress.cache.aside import CacheAside, serialize
from techpress.cache.keys import CacheKeys, is_pattern
from techpress.cache.redis import RedisCache, RedisConnection

__all__ = [
    "CacheAside",
    "CacheKeys",
    "RedisCache",
    "RedisConnection",
    "is_pattern",
    "serialize",
]
