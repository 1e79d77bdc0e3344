"""Cross-service cache invalidation.

Writers publish the key patterns they made stale; every service runs a
consumer that deletes matching keys from the shared cache:
- Events travel over a durable queue with per-message acknowledgment
- Each service has its own consumer group, instances compete within it
- Failed messages are redelivered, then dead-lettered after a cap
"""

from techpress.invalidation.consumer import (
    CacheUnavailableError,
    DeliveryOutcome,
    InvalidationConsumer,
)
from techpress.invalidation.publisher import InvalidationPublisher
from techpress.invalidation.queue import (
    Delivery,
    InMemoryInvalidationQueue,
    InvalidationQueue,
    QueueError,
    RedisStreamInvalidationQueue,
)
from techpress.invalidation.rebuild import BlogListRebuilder
from techpress.invalidation.schemas import (
    InvalidationAction,
    InvalidationDecodeError,
    InvalidationEvent,
)

__all__ = [
    # Schema
    "InvalidationAction",
    "InvalidationDecodeError",
    "InvalidationEvent",
    # Queue
    "Delivery",
    "InvalidationQueue",
    "InMemoryInvalidationQueue",
    "RedisStreamInvalidationQueue",
    "QueueError",
    # Processing
    "BlogListRebuilder",
    "CacheUnavailableError",
    "DeliveryOutcome",
    "InvalidationConsumer",
    "InvalidationPublisher",
]
