"""Tests for the invalidation queue transports."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from techpress.invalidation.queue import (
    Delivery,
    InMemoryInvalidationQueue,
    QueueError,
    RedisStreamInvalidationQueue,
)


class TestInMemoryQueue:
    """Tests for InMemoryInvalidationQueue."""

    async def test_publish_then_receive(self) -> None:
        queue = InMemoryInvalidationQueue()
        message_id = await queue.publish(b"payload")

        deliveries = await queue.receive(timeout=0.1)

        assert deliveries == [Delivery(message_id=message_id, payload=b"payload")]
        assert queue.in_flight_count == 1

    async def test_receive_timeout_returns_empty(self) -> None:
        queue = InMemoryInvalidationQueue()
        assert await queue.receive(timeout=0.01) == []

    async def test_ack_retires_message(self) -> None:
        queue = InMemoryInvalidationQueue()
        await queue.publish(b"payload")
        [delivery] = await queue.receive(timeout=0.1)

        await queue.ack(delivery)

        assert queue.acked == [delivery.message_id]
        assert queue.in_flight_count == 0
        assert queue.pending_count == 0

    async def test_requeue_increments_delivery_count(self) -> None:
        queue = InMemoryInvalidationQueue()
        await queue.publish(b"payload")
        [first] = await queue.receive(timeout=0.1)

        await queue.requeue(first)
        [second] = await queue.receive(timeout=0.1)

        assert second.message_id == first.message_id
        assert second.delivery_count == 2

    async def test_requeue_waits_for_redelivery_delay(self) -> None:
        queue = InMemoryInvalidationQueue(redelivery_delay=0.05)
        await queue.publish(b"payload")
        [first] = await queue.receive(timeout=0.1)

        await queue.requeue(first)

        assert queue.pending_count == 1
        assert await queue.receive(timeout=0.01) == []
        [second] = await queue.receive(timeout=1.0)
        assert second.delivery_count == 2
        assert queue.pending_count == 0

    async def test_close_cancels_delayed_redeliveries(self) -> None:
        queue = InMemoryInvalidationQueue(redelivery_delay=10.0)
        await queue.publish(b"payload")
        [delivery] = await queue.receive(timeout=0.1)
        await queue.requeue(delivery)

        await queue.close()

        assert queue.pending_count == 0

    async def test_publish_to_full_queue_raises(self) -> None:
        """A full queue rejects the publish instead of blocking the caller."""
        queue = InMemoryInvalidationQueue(max_size=1)
        await queue.publish(b"first")

        with pytest.raises(QueueError):
            await asyncio.wait_for(queue.publish(b"second"), timeout=1.0)
        assert queue.pending_count == 1

    async def test_dead_letter_keeps_copy(self) -> None:
        queue = InMemoryInvalidationQueue()
        await queue.publish(b"payload")
        [delivery] = await queue.receive(timeout=0.1)

        await queue.dead_letter(delivery, reason="bad payload")

        assert len(queue.dead_letters) == 1
        assert queue.dead_letters[0].payload == b"payload"
        assert queue.dead_letters[0].reason == "bad payload"
        assert queue.pending_count == 0


@pytest.fixture
def redis_client() -> AsyncMock:
    client = AsyncMock()
    client.xpending_range.return_value = []
    client.xreadgroup.return_value = []
    return client


@pytest.fixture
def stream_queue(redis_client: AsyncMock) -> RedisStreamInvalidationQueue:
    return RedisStreamInvalidationQueue(
        redis_client,
        consumer_group="blog-cache",
        consumer_id="blog-1",
        stream_name="cache-invalidation",
        dead_letter_stream="cache-invalidation:dead",
        claim_idle_ms=15000,
    )


class TestRedisStreamQueue:
    """Tests for RedisStreamInvalidationQueue against a mocked client."""

    async def test_start_creates_group_at_stream_tail(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        await stream_queue.start()

        redis_client.xgroup_create.assert_awaited_once_with(
            "cache-invalidation", "blog-cache", id="$", mkstream=True
        )

    async def test_start_tolerates_existing_group(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        redis_client.xgroup_create.side_effect = Exception(
            "BUSYGROUP Consumer Group name already exists"
        )
        await stream_queue.start()
        await stream_queue.start()

        assert redis_client.xgroup_create.await_count == 1

    async def test_start_failure_raises_queue_error(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        redis_client.xgroup_create.side_effect = ConnectionError("refused")
        with pytest.raises(QueueError):
            await stream_queue.start()

    async def test_publish_adds_to_stream(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        redis_client.xadd.return_value = b"1700000000000-0"

        message_id = await stream_queue.publish(b'{"action":"invalidate"}')

        assert message_id == "1700000000000-0"
        args, kwargs = redis_client.xadd.call_args
        assert args == ("cache-invalidation", {"data": b'{"action":"invalidate"}'})
        assert kwargs["approximate"] is True

    async def test_publish_failure_raises_queue_error(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        redis_client.xadd.side_effect = ConnectionError("refused")
        with pytest.raises(QueueError):
            await stream_queue.publish(b"{}")

    async def test_receive_reads_new_messages(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        redis_client.xreadgroup.return_value = [
            (b"cache-invalidation", [(b"1-0", {b"data": b"payload"})]),
        ]

        deliveries = await stream_queue.receive(timeout=0.5)

        assert deliveries == [Delivery(message_id="1-0", payload=b"payload", delivery_count=1)]
        kwargs = redis_client.xreadgroup.call_args.kwargs
        assert kwargs["groupname"] == "blog-cache"
        assert kwargs["streams"] == {"cache-invalidation": ">"}
        assert kwargs["block"] == 500

    async def test_receive_creates_group_lazily(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        await stream_queue.receive(timeout=0.1)
        redis_client.xgroup_create.assert_awaited_once()

    async def test_receive_reclaims_idle_pending_first(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        """Requeued and orphaned messages come back with their delivery count."""
        redis_client.xpending_range.return_value = [
            {"message_id": b"1-0", "consumer": b"blog-2", "time_since_delivered": 20000,
             "times_delivered": 2},
        ]
        redis_client.xclaim.return_value = [(b"1-0", {b"data": b"payload"})]

        deliveries = await stream_queue.receive(timeout=0.5)

        assert deliveries == [Delivery(message_id="1-0", payload=b"payload", delivery_count=3)]
        assert redis_client.xclaim.call_args.kwargs["min_idle_time"] == 15000
        redis_client.xreadgroup.assert_not_awaited()

    async def test_trimmed_pending_entry_is_acked(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        redis_client.xpending_range.return_value = [
            {"message_id": b"1-0", "times_delivered": 1},
        ]
        redis_client.xclaim.return_value = [(b"1-0", None)]

        assert await stream_queue.receive(timeout=0.1) == []
        redis_client.xack.assert_awaited_once_with("cache-invalidation", "blog-cache", "1-0")

    async def test_missing_data_field_is_empty_payload(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        redis_client.xreadgroup.return_value = [
            (b"cache-invalidation", [(b"2-0", {b"other": b"x"})]),
        ]
        [delivery] = await stream_queue.receive(timeout=0.1)
        assert delivery.payload == b""

    async def test_ack(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        await stream_queue.ack(Delivery(message_id="1-0", payload=b""))
        redis_client.xack.assert_awaited_once_with("cache-invalidation", "blog-cache", "1-0")

    async def test_requeue_leaves_message_pending(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        await stream_queue.requeue(Delivery(message_id="1-0", payload=b""))
        redis_client.xack.assert_not_awaited()

    async def test_dead_letter_copies_then_acks(
        self, stream_queue: RedisStreamInvalidationQueue, redis_client: AsyncMock
    ) -> None:
        delivery = Delivery(message_id="1-0", payload=b"{bad", delivery_count=5)

        await stream_queue.dead_letter(delivery, reason="Invalid JSON payload")

        stream, fields = redis_client.xadd.call_args.args
        assert stream == "cache-invalidation:dead"
        assert fields["data"] == b"{bad"
        assert fields["original_id"] == "1-0"
        assert fields["deliveries"] == "5"
        assert fields["reason"] == "Invalid JSON payload"
        redis_client.xack.assert_awaited_once_with("cache-invalidation", "blog-cache", "1-0")
