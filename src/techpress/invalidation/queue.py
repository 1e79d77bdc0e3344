"""Durable delivery channel for invalidation events.

Provides:
- InMemoryInvalidationQueue: asyncio.Queue based, for single-process
  deployments and tests
- RedisStreamInvalidationQueue: Redis Streams with consumer groups

Redis Streams semantics:
- Each service owns one consumer group, so every service receives every event
- Instances of the same service share the group and compete for deliveries
- At-least-once delivery: a message stays pending until XACK
- requeue() leaves the message pending; it is redelivered (to this or another
  instance) once it has been idle for claim_idle_ms
- Messages pending on a crashed consumer are reclaimed the same way
- dead_letter() copies the message to a dead letter stream and ACKs it
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, cast
from uuid import uuid4

from techpress.config import settings

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Messages fetched per read
BATCH_SIZE = 10


class QueueError(RuntimeError):
    """Broker operation failed."""


@dataclass
class Delivery:
    """One delivery of one queued message."""

    message_id: str
    payload: bytes
    delivery_count: int = 1


class InvalidationQueue(ABC):
    """Abstract delivery channel with per-message acknowledgment."""

    @abstractmethod
    async def start(self) -> None:
        """Prepare the queue for consuming (idempotent)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release broker resources."""
        pass

    @abstractmethod
    async def publish(self, payload: bytes) -> str:
        """Durably enqueue a payload. Returns the broker message ID."""
        pass

    @abstractmethod
    async def receive(self, timeout: float) -> list[Delivery]:
        """Wait up to timeout seconds for deliveries."""
        pass

    @abstractmethod
    async def ack(self, delivery: Delivery) -> None:
        """Retire a message permanently."""
        pass

    @abstractmethod
    async def requeue(self, delivery: Delivery) -> None:
        """Return a message to the queue for redelivery."""
        pass

    @abstractmethod
    async def dead_letter(self, delivery: Delivery, reason: str) -> None:
        """Retire a message that will never succeed, keeping a copy."""
        pass


@dataclass
class DeadLetter:
    """Message parked after exhausting its deliveries."""

    message_id: str
    payload: bytes
    delivery_count: int
    reason: str


class InMemoryInvalidationQueue(InvalidationQueue):
    """In-memory queue using asyncio.Queue.

    Suitable for single-instance deployments. For multiple instances or
    services, use RedisStreamInvalidationQueue instead.

    A requeued message becomes visible again after redelivery_delay seconds,
    the in-process counterpart of the stream backend's claim_idle_ms. A full
    queue rejects publishes with QueueError instead of blocking the writer.
    """

    def __init__(self, max_size: int = 10000, redelivery_delay: float = 0.0):
        self._queue: asyncio.Queue[Delivery] = asyncio.Queue(maxsize=max_size)
        self._in_flight: dict[str, Delivery] = {}
        self._delayed: dict[str, asyncio.TimerHandle] = {}
        self._counter = 0
        self.redelivery_delay = redelivery_delay
        self.dead_letters: list[DeadLetter] = []
        self.acked: list[str] = []

    async def start(self) -> None:
        pass

    async def close(self) -> None:
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()

    async def publish(self, payload: bytes) -> str:
        self._counter += 1
        message_id = f"mem-{self._counter}"
        try:
            self._queue.put_nowait(Delivery(message_id=message_id, payload=payload))
        except asyncio.QueueFull as e:
            raise QueueError(
                f"Invalidation queue is full ({self._queue.maxsize} messages)"
            ) from e
        return message_id

    async def receive(self, timeout: float) -> list[Delivery]:
        try:
            delivery = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return []
        self._in_flight[delivery.message_id] = delivery
        return [delivery]

    async def ack(self, delivery: Delivery) -> None:
        self._in_flight.pop(delivery.message_id, None)
        self.acked.append(delivery.message_id)

    async def requeue(self, delivery: Delivery) -> None:
        self._in_flight.pop(delivery.message_id, None)
        redelivery = Delivery(
            message_id=delivery.message_id,
            payload=delivery.payload,
            delivery_count=delivery.delivery_count + 1,
        )
        if self.redelivery_delay <= 0:
            self._redeliver(redelivery)
            return
        loop = asyncio.get_running_loop()
        self._delayed[redelivery.message_id] = loop.call_later(
            self.redelivery_delay, self._redeliver, redelivery
        )

    def _redeliver(self, delivery: Delivery) -> None:
        self._delayed.pop(delivery.message_id, None)
        try:
            self._queue.put_nowait(delivery)
        except asyncio.QueueFull:
            logger.error(f"Invalidation queue full, dropping redelivery of {delivery.message_id}")
            self.dead_letters.append(
                DeadLetter(
                    message_id=delivery.message_id,
                    payload=delivery.payload,
                    delivery_count=delivery.delivery_count - 1,
                    reason="queue full on redelivery",
                )
            )

    async def dead_letter(self, delivery: Delivery, reason: str) -> None:
        self._in_flight.pop(delivery.message_id, None)
        self.dead_letters.append(
            DeadLetter(
                message_id=delivery.message_id,
                payload=delivery.payload,
                delivery_count=delivery.delivery_count,
                reason=reason,
            )
        )

    @property
    def pending_count(self) -> int:
        """Messages waiting for delivery, including delayed redeliveries."""
        return self._queue.qsize() + len(self._delayed)

    @property
    def in_flight_count(self) -> int:
        """Messages delivered but neither acked nor requeued."""
        return len(self._in_flight)


def _generate_consumer_id() -> str:
    """Generate a unique consumer ID for this instance."""
    hostname = os.environ.get("HOSTNAME", os.environ.get("POD_NAME", "unknown"))
    return f"{hostname}-{uuid4().hex[:8]}"


def _as_str(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


@dataclass
class _StreamConfig:
    stream_name: str = field(default_factory=lambda: settings.invalidation_stream)
    dead_letter_stream: str = field(
        default_factory=lambda: settings.invalidation_dead_letter_stream
    )
    claim_idle_ms: int = field(default_factory=lambda: settings.invalidation_claim_idle_ms)
    maxlen: int = field(default_factory=lambda: settings.invalidation_stream_maxlen)


class RedisStreamInvalidationQueue(InvalidationQueue):
    """Redis Streams-based invalidation queue.

    Example:
        queue = RedisStreamInvalidationQueue(redis, consumer_group="blog-cache")
        await queue.start()
        deliveries = await queue.receive(timeout=1.0)
    """

    def __init__(
        self,
        client: Redis,
        consumer_group: str | None = None,
        consumer_id: str | None = None,
        stream_name: str | None = None,
        dead_letter_stream: str | None = None,
        claim_idle_ms: int | None = None,
    ):
        config = _StreamConfig()
        self.client = client
        self.stream_name = stream_name or config.stream_name
        self.dead_letter_stream = dead_letter_stream or config.dead_letter_stream
        self.consumer_group = consumer_group or settings.consumer_group
        self.consumer_id = consumer_id or settings.invalidation_consumer_id or _generate_consumer_id()
        self.claim_idle_ms = claim_idle_ms if claim_idle_ms is not None else config.claim_idle_ms
        self.maxlen = config.maxlen
        self._group_ready = False

    async def start(self) -> None:
        """Ensure the stream and consumer group exist."""
        if self._group_ready:
            return
        try:
            # New groups start at the stream tail; older events cannot
            # describe entries this service has cached yet
            await self.client.xgroup_create(
                self.stream_name,
                self.consumer_group,
                id="$",
                mkstream=True,
            )
            logger.info(
                f"Created consumer group {self.consumer_group} on stream {self.stream_name}"
            )
        except Exception as e:
            # Group already exists - this is fine
            if "BUSYGROUP" not in str(e):
                raise QueueError(f"Cannot create consumer group: {e}") from e
            logger.debug(f"Consumer group {self.consumer_group} already exists")
        self._group_ready = True

    async def close(self) -> None:
        # The client belongs to the process-wide connection handle
        self._group_ready = False

    async def publish(self, payload: bytes) -> str:
        try:
            message_id = await self.client.xadd(
                self.stream_name,
                {"data": payload},
                maxlen=self.maxlen,
                approximate=True,
            )
        except Exception as e:
            raise QueueError(f"Cannot publish to {self.stream_name}: {e}") from e
        return _as_str(message_id)

    async def receive(self, timeout: float) -> list[Delivery]:
        """Reclaim stale pending messages first, then read new ones."""
        if not self._group_ready:
            await self.start()

        deliveries = await self._claim_pending()
        if deliveries:
            return deliveries

        messages = await self.client.xreadgroup(
            groupname=self.consumer_group,
            consumername=self.consumer_id,
            streams={self.stream_name: ">"},  # Only new messages
            count=BATCH_SIZE,
            block=max(int(timeout * 1000), 1),
        )
        if not messages:
            return []

        result: list[Delivery] = []
        for _stream_name, stream_messages in messages:
            for message_id, message_data in stream_messages:
                result.append(self._to_delivery(message_id, message_data, 1))
        return result

    async def _claim_pending(self) -> list[Delivery]:
        """Claim messages that have been pending too long.

        Covers both consumers that died without ACKing and messages this
        group requeued after a failed attempt.
        """
        pending = await self.client.xpending_range(
            self.stream_name,
            self.consumer_group,
            min="-",
            max="+",
            count=BATCH_SIZE,
            idle=self.claim_idle_ms,
        )
        if not pending:
            return []

        counts = {_as_str(entry["message_id"]): int(entry["times_delivered"]) for entry in pending}
        claimed = await self.client.xclaim(
            self.stream_name,
            self.consumer_group,
            self.consumer_id,
            min_idle_time=self.claim_idle_ms,
            message_ids=list(counts),
        )

        result: list[Delivery] = []
        for message_id, message_data in claimed:
            msg_id = _as_str(message_id)
            if message_data is None:
                # Entry was trimmed from the stream; nothing left to process
                await self.client.xack(self.stream_name, self.consumer_group, msg_id)
                continue
            result.append(self._to_delivery(msg_id, message_data, counts.get(msg_id, 0) + 1))
        if result:
            logger.info(f"Reclaimed {len(result)} pending invalidation messages")
        return result

    @staticmethod
    def _to_delivery(
        message_id: bytes | str, message_data: dict[Any, Any], delivery_count: int
    ) -> Delivery:
        payload = message_data.get(b"data", message_data.get("data", b""))
        if isinstance(payload, str):
            payload = payload.encode()
        return Delivery(
            message_id=_as_str(message_id),
            payload=cast(bytes, payload),
            delivery_count=delivery_count,
        )

    async def ack(self, delivery: Delivery) -> None:
        await self.client.xack(self.stream_name, self.consumer_group, delivery.message_id)

    async def requeue(self, delivery: Delivery) -> None:
        # Not ACKing is the negative acknowledgment: the entry stays in the
        # group's pending list until _claim_pending() hands it out again
        logger.debug(
            f"Message {delivery.message_id} left pending for redelivery "
            f"after {self.claim_idle_ms}ms"
        )

    async def dead_letter(self, delivery: Delivery, reason: str) -> None:
        await self.client.xadd(
            self.dead_letter_stream,
            {
                "data": delivery.payload,
                "original_id": delivery.message_id,
                "original_stream": self.stream_name,
                "consumer_group": self.consumer_group,
                "deliveries": str(delivery.delivery_count),
                "reason": reason[:1000],
            },
        )
        await self.client.xack(self.stream_name, self.consumer_group, delivery.message_id)
        logger.warning(f"Moved message {delivery.message_id} to {self.dead_letter_stream}")
