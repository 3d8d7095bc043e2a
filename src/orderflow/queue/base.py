"""Durable queue contracts for orderflow.

The API publishes accepted orders; the persistence worker consumes them.
Delivery is at-least-once and one message at a time per consumer: the next
message is not fetched until the current one has been settled by ack,
requeue or discard.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum

from orderflow.core.model import Order

logger = logging.getLogger(__name__)


class Settlement(str, Enum):
    """How a delivery left the consumer."""

    ACKED = "acked"
    REQUEUED = "requeued"
    DISCARDED = "discarded"


class Delivery:
    """A queued order handed to a consumer.

    The body is kept undecoded so the worker can discard payloads that are
    not valid orders. Exactly one of ack, requeue or discard may be called.
    """

    def __init__(
        self,
        consumer: OrderConsumer,
        message_id: str,
        body: bytes,
        attempt: int = 1,
    ) -> None:
        self.message_id = message_id
        self.body = body
        self.attempt = attempt
        self.settlement: Settlement | None = None
        self._consumer = consumer

    @property
    def settled(self) -> bool:
        return self.settlement is not None

    def _settle(self, settlement: Settlement) -> None:
        if self.settlement is not None:
            raise RuntimeError(
                f"delivery {self.message_id} already {self.settlement.value}"
            )
        self.settlement = settlement

    async def ack(self) -> None:
        """Remove the message permanently after successful processing."""
        self._settle(Settlement.ACKED)
        await self._consumer._ack(self)

    async def requeue(self) -> None:
        """Return the message to the queue so any consumer can retry it."""
        self._settle(Settlement.REQUEUED)
        await self._consumer._requeue(self)

    async def discard(self, reason: str) -> None:
        """Remove a message that can never be processed."""
        self._settle(Settlement.DISCARDED)
        await self._consumer._discard(self, reason)

    def __repr__(self) -> str:
        return f"Delivery(message_id={self.message_id!r}, attempt={self.attempt})"


class OrderPublisher(ABC):
    """Producer side of the durable queue."""

    @abstractmethod
    async def publish(self, order: Order) -> None:
        """Enqueue an order for persistence.

        Raises:
            QueuePublishError: If the message was not accepted by the queue.
        """

    async def start(self) -> None:
        """Prepare the queue for publishing."""

    async def close(self) -> None:
        """Release queue resources."""


class OrderConsumer(ABC):
    """Consumer side of the durable queue."""

    _in_flight: Delivery | None = None

    @abstractmethod
    async def _next_delivery(self) -> Delivery | None:
        """Fetch one message, or None if nothing arrived before the poll timeout."""

    @abstractmethod
    async def _ack(self, delivery: Delivery) -> None: ...

    @abstractmethod
    async def _requeue(self, delivery: Delivery) -> None: ...

    @abstractmethod
    async def _discard(self, delivery: Delivery, reason: str) -> None: ...

    async def start(self) -> None:
        """Prepare the queue for consuming."""

    async def close(self) -> None:
        """Release queue resources."""

    @property
    def in_flight(self) -> Delivery | None:
        """The delivery currently handed out, if any."""
        return self._in_flight

    async def deliveries(self, stop: asyncio.Event) -> AsyncIterator[Delivery]:
        """Yield deliveries one at a time until ``stop`` is set.

        The stop event is checked between messages only; polling wakes up
        periodically so a quiet queue does not delay shutdown.

        Raises:
            RuntimeError: If a delivery is not settled before the next is requested.
        """
        while not stop.is_set():
            delivery = await self._next_delivery()
            if delivery is None:
                continue

            self._in_flight = delivery
            yield delivery

            if not delivery.settled:
                raise RuntimeError(
                    f"delivery {delivery.message_id} was not settled before the next fetch"
                )
            self._in_flight = None
