"""Persistence worker for accepted orders.

Consumes the durable queue one message at a time and moves each order from
"accepted" to "durably persisted":

    delivered -> persisting primary -> persisting projection -> committed

The Postgres insert always completes before the search document is written,
so the projection never holds an order the record store does not. Both
writes are idempotent by order id; any failure requeues the whole message
and the replay is harmless. The message is acknowledged only once both
writes have succeeded.

Example:
    worker = PersistenceWorker(store, search, consumer)
    worker.install_signal_handlers()

    # Run worker (blocks until SIGINT/SIGTERM)
    await worker.run()
"""

from __future__ import annotations

import asyncio
import logging
import signal
from enum import Enum
from typing import Protocol

from orderflow.core.errors import PayloadDecodeError
from orderflow.core.model import Order
from orderflow.observability.logging import LogContext
from orderflow.observability.metrics import MetricsRegistry, get_metrics
from orderflow.persistence.store import OrderStore
from orderflow.queue.base import Delivery, OrderConsumer

logger = logging.getLogger(__name__)

# Covers the primary and the projection write together
DEFAULT_MESSAGE_TIMEOUT = 10.0


class OrderIndexPort(Protocol):
    async def index_order(self, order: Order) -> None: ...


class DeliveryOutcome(str, Enum):
    """Result of processing one delivery."""

    COMMITTED = "committed"
    RETRY = "retry"
    DISCARDED = "discarded"


class WorkItemState(str, Enum):
    """Progress of the delivery currently being processed."""

    DELIVERED = "delivered"
    PERSISTING_PRIMARY = "persisting_primary"
    PERSISTING_PROJECTION = "persisting_projection"
    COMMITTED = "committed"
    RETRY = "retry"
    DISCARDED = "discarded"


class PersistenceWorker:
    """Single-flight consumer writing orders to Postgres, then Elasticsearch."""

    def __init__(
        self,
        store: OrderStore,
        search: OrderIndexPort,
        consumer: OrderConsumer,
        message_timeout: float = DEFAULT_MESSAGE_TIMEOUT,
        poll_interval: float = 1.0,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.store = store
        self.search = search
        self.consumer = consumer
        self.message_timeout = message_timeout
        self.poll_interval = poll_interval
        self.state: WorkItemState | None = None
        self._metrics = metrics or get_metrics()
        self._stop_event = asyncio.Event()
        self._stopped = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def process(self, delivery: Delivery) -> DeliveryOutcome:
        """Persist one delivery and settle it.

        Never raises for persistence failures; the outcome is expressed as
        ack, requeue or discard on the delivery.
        """
        self.state = WorkItemState.DELIVERED
        try:
            order = Order.from_bytes(delivery.body)
        except PayloadDecodeError as e:
            logger.error(
                f"Discarding undecodable message {delivery.message_id}",
                extra={"component": "worker", "error": str(e)},
            )
            await delivery.discard(str(e))
            return self._finish(WorkItemState.DISCARDED, DeliveryOutcome.DISCARDED)

        with LogContext(order_id=order.id):
            try:
                await asyncio.wait_for(self._persist(order), timeout=self.message_timeout)
            except asyncio.TimeoutError:
                logger.error(
                    f"Timed out after {self.message_timeout}s in {self.state.value}; requeueing",
                    extra={"component": "worker", "attempt": delivery.attempt},
                )
                await delivery.requeue()
                return self._finish(WorkItemState.RETRY, DeliveryOutcome.RETRY)
            except Exception as e:
                logger.error(
                    f"Persistence failed in {self.state.value}; requeueing",
                    extra={"component": "worker", "attempt": delivery.attempt, "error": str(e)},
                )
                await delivery.requeue()
                return self._finish(WorkItemState.RETRY, DeliveryOutcome.RETRY)

            await delivery.ack()
            logger.info("Order persisted", extra={"component": "worker"})
            return self._finish(WorkItemState.COMMITTED, DeliveryOutcome.COMMITTED)

    async def _persist(self, order: Order) -> None:
        self.state = WorkItemState.PERSISTING_PRIMARY
        inserted = await self.store.insert_idempotent(order)
        if not inserted:
            logger.info("Order already in store; replaying projection", extra={"component": "worker"})

        self.state = WorkItemState.PERSISTING_PROJECTION
        await self.search.index_order(order)

    def _finish(self, state: WorkItemState, outcome: DeliveryOutcome) -> DeliveryOutcome:
        self.state = state
        self._metrics.worker_messages_total.labels(outcome=outcome.value).inc()
        return outcome

    async def run(self) -> None:
        """Consume until stop() is called or a shutdown signal arrives.

        The stop request is honoured between messages only; a delivery that
        is being processed is always settled first.
        """
        self._running = True
        self._stopped.clear()
        await self.consumer.start()
        logger.info("Persistence worker started", extra={"component": "worker"})

        try:
            while not self._stop_event.is_set():
                try:
                    async for delivery in self.consumer.deliveries(self._stop_event):
                        try:
                            await self.process(delivery)
                        except Exception:
                            # Settlement itself failed; an unacked message is reclaimed later
                            logger.exception(
                                f"Failed to settle delivery {delivery.message_id}",
                                extra={"component": "worker"},
                            )
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.error(
                        f"Error receiving from queue: {e}",
                        extra={"component": "worker"},
                    )
                    await asyncio.sleep(self.poll_interval)
        finally:
            self._running = False
            self._stopped.set()
            logger.info("Persistence worker stopped", extra={"component": "worker"})

    async def stop(self) -> None:
        """Request shutdown and wait for the in-flight delivery to settle."""
        logger.info("Stopping persistence worker", extra={"component": "worker"})
        self._stop_event.set()
        if self._running:
            await self._stopped.wait()

    def install_signal_handlers(self) -> None:
        """Stop after the current message on SIGINT or SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

    def _signal_handler(self) -> None:
        logger.info("Received shutdown signal")
        self._stop_event.set()
