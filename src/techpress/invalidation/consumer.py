"""Invalidation consumer.

Drains the invalidation queue and deletes every cache key matching each
announced pattern. One delivery is handled as:

    decode -> unknown action? ack and stop
           -> delete_matching(pattern) for every pattern
           -> optional rebuild of the default blog list (best-effort)
           -> ack

Any failure before the ack either requeues the message or, once it has
been delivered max_deliveries times, moves it to the dead letter channel.
A cache outage always requeues, and the loop pauses until the cache
adapter's known-down window closes.
Deletes are idempotent so a redelivered event is harmless.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from techpress.cache.redis import RedisCache
from techpress.config import settings
from techpress.invalidation.queue import Delivery, InvalidationQueue
from techpress.invalidation.schemas import InvalidationEvent
from techpress.observability.logging import LogContext
from techpress.observability.metrics import (
    record_cache_rebuild,
    record_invalidation_outcome,
)

logger = logging.getLogger(__name__)

Rebuilder = Callable[[], Awaitable[Any]]


class DeliveryOutcome(str, Enum):
    """What happened to one delivery."""

    ACKED = "acked"
    IGNORED = "ignored"
    REQUEUED = "requeued"
    DEAD_LETTERED = "dead_lettered"


class CacheUnavailableError(RuntimeError):
    """The cache backend could not be reached while invalidating."""


class InvalidationConsumer:
    """Consumes invalidation events and applies them to the cache.

    Example:
        consumer = InvalidationConsumer(queue, cache, rebuilder=rebuild_blog_list)
        await consumer.start()
        ...
        await consumer.stop()
    """

    def __init__(
        self,
        queue: InvalidationQueue,
        cache: RedisCache,
        rebuilder: Rebuilder | None = None,
        max_deliveries: int | None = None,
        block_timeout: float | None = None,
        shutdown_grace: float | None = None,
        retry_delay: float | None = None,
    ):
        self.queue = queue
        self.cache = cache
        self.rebuilder = rebuilder
        self.max_deliveries = (
            max_deliveries if max_deliveries is not None else settings.invalidation_max_deliveries
        )
        self.block_timeout = (
            block_timeout
            if block_timeout is not None
            else settings.invalidation_block_ms / 1000
        )
        self.shutdown_grace = (
            shutdown_grace if shutdown_grace is not None else settings.invalidation_shutdown_grace
        )
        self.retry_delay = (
            retry_delay if retry_delay is not None else settings.invalidation_retry_delay
        )
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    async def process(self, event: InvalidationEvent) -> int:
        """Apply one decoded event to the cache.

        Returns the number of keys deleted.

        Raises:
            CacheUnavailableError: the backend was down, so some keys may
                still be live and the event must be retried.
        """
        deleted = 0
        for pattern in event.keys:
            deleted += await self.cache.delete_matching(pattern)

        # delete_matching() never raises; a backend error shows up as the
        # connection being marked down
        if not self.cache.is_available:
            raise CacheUnavailableError(
                f"Cache unavailable while invalidating {list(event.keys)}"
            )

        logger.debug(f"Invalidated {deleted} keys for patterns {list(event.keys)}")

        if deleted and self.rebuilder is not None:
            await self._rebuild()
        return deleted

    async def _rebuild(self) -> None:
        try:
            await self.rebuilder()  # type: ignore[misc]
        except Exception as e:
            # The delete already succeeded; the next reader repopulates
            logger.warning(f"Cache rebuild failed: {e}")
            record_cache_rebuild("error")
            return
        record_cache_rebuild("success")

    async def handle(self, delivery: Delivery) -> DeliveryOutcome:
        """Handle one delivery and settle it with the queue."""
        with LogContext(message_id=delivery.message_id):
            try:
                event = InvalidationEvent.from_bytes(delivery.payload)
                if not event.is_invalidation:
                    logger.debug(f"Ignoring message with action {event.action!r}")
                    outcome = DeliveryOutcome.IGNORED
                    deleted = 0
                else:
                    deleted = await self.process(event)
                    outcome = DeliveryOutcome.ACKED
            except Exception as e:
                outcome = await self._reject(delivery, e)
                record_invalidation_outcome(outcome.value)
                return outcome

            await self.queue.ack(delivery)
            record_invalidation_outcome(outcome.value, keys_deleted=deleted)
            return outcome

    async def _reject(self, delivery: Delivery, error: Exception) -> DeliveryOutcome:
        # Cache outages are retried until the cache is back
        poison = not isinstance(error, CacheUnavailableError)
        if poison and delivery.delivery_count >= self.max_deliveries:
            logger.error(
                f"Dead-lettering message {delivery.message_id} after "
                f"{delivery.delivery_count} deliveries: {error}"
            )
            await self.queue.dead_letter(delivery, reason=str(error))
            return DeliveryOutcome.DEAD_LETTERED

        logger.warning(
            f"Invalidation failed for message {delivery.message_id} "
            f"(delivery {delivery.delivery_count}/{self.max_deliveries}): {error}"
        )
        await self.queue.requeue(delivery)
        return DeliveryOutcome.REQUEUED

    async def run_once(self) -> list[DeliveryOutcome]:
        """Receive one batch and handle every delivery in it."""
        deliveries = await self.queue.receive(self.block_timeout)
        return [await self.handle(delivery) for delivery in deliveries]

    async def start(self) -> None:
        """Start the consume loop in a background task."""
        if self._running:
            return

        self._running = True
        self._wakeup.clear()
        self._task = asyncio.create_task(self._consume_loop())
        logger.info("Invalidation consumer started (%s)", type(self.queue).__name__)

    async def stop(self) -> None:
        """Stop consuming.

        The loop finishes the batch it already received, then exits. It is
        only cancelled if that takes longer than shutdown_grace.
        """
        self._running = False
        self._wakeup.set()

        if self._task:
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=self.shutdown_grace)
            except TimeoutError:
                logger.warning("Invalidation consumer did not stop in time, cancelling")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None

        logger.info("Invalidation consumer stopped")

    async def _consume_loop(self) -> None:
        """Main consumption loop."""
        backoff = 1.0
        while self._running:
            try:
                outcomes = await self.run_once()
                backoff = 1.0
                if DeliveryOutcome.REQUEUED in outcomes:
                    await self._sleep(self._requeue_pause())
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in invalidation consume loop: {e}")
                await self._sleep(backoff)
                backoff = min(backoff * 2, 30.0)

    def _requeue_pause(self) -> float:
        """Wait for the cache window to close, but never longer than retry_delay."""
        remaining = self.cache.retry_after
        if remaining > 0:
            return min(remaining, self.retry_delay)
        return self.retry_delay

    async def _sleep(self, seconds: float) -> None:
        """Sleep that returns early when stop() is called."""
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=seconds)
        except TimeoutError:
            pass
