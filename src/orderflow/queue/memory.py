"""In-memory queue for single-process deployments and tests.

Messages live in an asyncio.Queue, so nothing survives a restart. Deliveries
that are still unsettled when the consumer closes go back on the queue, which
mirrors a broker redelivering after a consumer connection drops.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import uuid4

from orderflow.core.errors import QueuePublishError
from orderflow.core.model import Order
from orderflow.queue.base import Delivery, OrderConsumer, OrderPublisher

logger = logging.getLogger(__name__)


@dataclass
class DeadLetter:
    """A message removed without being processed."""

    message_id: str
    body: bytes
    attempt: int
    reason: str


class InMemoryOrderQueue(OrderPublisher, OrderConsumer):
    """asyncio.Queue-backed durable queue stand-in."""

    def __init__(
        self,
        max_size: int = 10000,
        poll_timeout: float = 1.0,
        max_deliveries: int = 0,
    ) -> None:
        self._queue: asyncio.Queue[tuple[str, bytes, int]] = asyncio.Queue()
        self.max_size = max_size
        self._unacked: dict[str, tuple[bytes, int]] = {}
        self.poll_timeout = poll_timeout
        self.max_deliveries = max_deliveries
        self.dead_letters: list[DeadLetter] = []

    async def publish(self, order: Order) -> None:
        """Enqueue an order without blocking."""
        await self.publish_raw(order.to_bytes())

    async def publish_raw(self, body: bytes) -> None:
        """Enqueue a raw payload.

        Delivered but unsettled messages count against max_size, so a
        requeue always finds room.
        """
        if self.pending_count + self.unacked_count >= self.max_size:
            raise QueuePublishError("in-memory queue is full")
        self._queue.put_nowait((str(uuid4()), body, 1))

    @property
    def pending_count(self) -> int:
        """Messages waiting for delivery."""
        return self._queue.qsize()

    @property
    def unacked_count(self) -> int:
        """Messages delivered but not yet settled."""
        return len(self._unacked)

    async def get_stats(self) -> dict[str, int]:
        """Queue depth, pending (delivered but unsettled) and dead-letter counts."""
        return {
            "length": self.pending_count + self.unacked_count,
            "pending": self.unacked_count,
            "dead": len(self.dead_letters),
        }

    async def _next_delivery(self) -> Delivery | None:
        try:
            message_id, body, attempt = await asyncio.wait_for(
                self._queue.get(), timeout=self.poll_timeout
            )
        except asyncio.TimeoutError:
            return None

        self._unacked[message_id] = (body, attempt)
        return Delivery(self, message_id, body, attempt)

    async def _ack(self, delivery: Delivery) -> None:
        self._unacked.pop(delivery.message_id, None)

    async def _requeue(self, delivery: Delivery) -> None:
        self._unacked.pop(delivery.message_id, None)

        if self.max_deliveries and delivery.attempt >= self.max_deliveries:
            self._dead_letter(delivery, "max deliveries exceeded")
            return

        self._queue.put_nowait((delivery.message_id, delivery.body, delivery.attempt + 1))

    async def _discard(self, delivery: Delivery, reason: str) -> None:
        self._unacked.pop(delivery.message_id, None)
        self._dead_letter(delivery, reason)

    def _dead_letter(self, delivery: Delivery, reason: str) -> None:
        self.dead_letters.append(
            DeadLetter(delivery.message_id, delivery.body, delivery.attempt, reason)
        )
        logger.warning(
            "message dead-lettered",
            extra={"component": "queue", "message_id": delivery.message_id, "reason": reason},
        )

    async def close(self) -> None:
        """Return unsettled deliveries to the queue."""
        for message_id, (body, attempt) in list(self._unacked.items()):
            self._queue.put_nowait((message_id, body, attempt))
        self._unacked.clear()
        self._in_flight = None
