"""Tests for the persistence worker."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from orderflow.core.errors import SearchError, StoreError
from orderflow.core.model import Order
from orderflow.jobs.worker import DeliveryOutcome, PersistenceWorker, WorkItemState
from orderflow.observability.metrics import MetricsRegistry
from orderflow.queue.base import Settlement
from orderflow.queue.memory import InMemoryOrderQueue


class FakeStore:
    """Record store keyed by order id, with optional injected failures."""

    def __init__(self) -> None:
        self.rows: dict[str, Order] = {}
        self.failures: list[Exception] = []
        self.calls = 0

    async def insert_idempotent(self, order: Order) -> bool:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        if order.id in self.rows:
            return False
        self.rows[order.id] = order
        return True


class FakeSearch:
    """Search projection keyed by order id, with optional injected failures."""

    def __init__(self) -> None:
        self.documents: dict[str, Order] = {}
        self.failures: list[Exception] = []
        self.calls = 0

    async def index_order(self, order: Order) -> None:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        self.documents[order.id] = order


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def queue() -> InMemoryOrderQueue:
    return InMemoryOrderQueue(poll_timeout=0.01)


@pytest.fixture
def worker(
    store: FakeStore, search: FakeSearch, queue: InMemoryOrderQueue, metrics: MetricsRegistry
) -> PersistenceWorker:
    return PersistenceWorker(store, search, queue, message_timeout=1.0, metrics=metrics)


async def deliver(queue: InMemoryOrderQueue):
    delivery = await queue._next_delivery()
    assert delivery is not None
    return delivery


class TestProcess:
    """Tests for processing a single delivery."""

    async def test_commit_writes_both_then_acks(
        self,
        worker: PersistenceWorker,
        queue: InMemoryOrderQueue,
        store: FakeStore,
        search: FakeSearch,
        order: Order,
    ) -> None:
        """Success persists to the store and the projection, then acks."""
        await queue.publish(order)
        delivery = await deliver(queue)

        outcome = await worker.process(delivery)

        assert outcome is DeliveryOutcome.COMMITTED
        assert delivery.settlement is Settlement.ACKED
        assert store.rows == {order.id: order}
        assert search.documents == {order.id: order}
        assert worker.state is WorkItemState.COMMITTED

    async def test_primary_failure_requeues_without_projection(
        self,
        worker: PersistenceWorker,
        queue: InMemoryOrderQueue,
        store: FakeStore,
        search: FakeSearch,
        order: Order,
    ) -> None:
        """The projection is never written ahead of the primary store."""
        store.failures.append(StoreError("connection refused"))
        await queue.publish(order)
        delivery = await deliver(queue)

        outcome = await worker.process(delivery)

        assert outcome is DeliveryOutcome.RETRY
        assert delivery.settlement is Settlement.REQUEUED
        assert search.calls == 0
        assert queue.pending_count == 1

    async def test_projection_failure_requeues(
        self,
        worker: PersistenceWorker,
        queue: InMemoryOrderQueue,
        store: FakeStore,
        search: FakeSearch,
        order: Order,
    ) -> None:
        """A failed projection write requeues the whole item."""
        search.failures.append(SearchError("503", status_code=503))
        await queue.publish(order)
        delivery = await deliver(queue)

        outcome = await worker.process(delivery)

        assert outcome is DeliveryOutcome.RETRY
        assert delivery.settlement is Settlement.REQUEUED
        assert order.id in store.rows

    async def test_undecodable_payload_discarded(
        self,
        worker: PersistenceWorker,
        queue: InMemoryOrderQueue,
        store: FakeStore,
    ) -> None:
        """Payloads that are not orders are discarded, never retried."""
        await queue.publish_raw(b"\x00not-an-order")
        delivery = await deliver(queue)

        outcome = await worker.process(delivery)

        assert outcome is DeliveryOutcome.DISCARDED
        assert delivery.settlement is Settlement.DISCARDED
        assert store.calls == 0
        assert queue.pending_count == 0
        assert len(queue.dead_letters) == 1

    async def test_timeout_requeues(
        self,
        store: FakeStore,
        search: FakeSearch,
        queue: InMemoryOrderQueue,
        metrics: MetricsRegistry,
        order: Order,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Exceeding the per-message timeout requeues and names the step in flight."""

        async def hang(order: Order) -> None:
            await asyncio.sleep(10)

        search.index_order = hang  # type: ignore[method-assign]
        worker = PersistenceWorker(store, search, queue, message_timeout=0.05, metrics=metrics)
        await queue.publish(order)
        delivery = await deliver(queue)

        with caplog.at_level(logging.ERROR, logger="orderflow.jobs.worker"):
            outcome = await worker.process(delivery)

        assert outcome is DeliveryOutcome.RETRY
        assert delivery.settlement is Settlement.REQUEUED
        assert "persisting_projection" in caplog.text

    async def test_unexpected_error_requeues(
        self,
        worker: PersistenceWorker,
        queue: InMemoryOrderQueue,
        store: FakeStore,
        order: Order,
    ) -> None:
        """Any exception from a downstream write is a retry."""
        store.failures.append(RuntimeError("driver bug"))
        await queue.publish(order)

        assert await worker.process(await deliver(queue)) is DeliveryOutcome.RETRY


class TestRedelivery:
    """Tests for replay safety across requeues."""

    async def test_requeue_after_projection_failure_converges(
        self,
        worker: PersistenceWorker,
        queue: InMemoryOrderQueue,
        store: FakeStore,
        search: FakeSearch,
        order: Order,
    ) -> None:
        """After a failed projection and a replay there is one row and one document."""
        search.failures.append(SearchError("timeout"))
        await queue.publish(order)

        first = await worker.process(await deliver(queue))
        second = await worker.process(await deliver(queue))

        assert (first, second) == (DeliveryOutcome.RETRY, DeliveryOutcome.COMMITTED)
        assert store.calls == 2
        assert list(store.rows) == [order.id]
        assert list(search.documents) == [order.id]
        assert queue.pending_count == 0

    async def test_duplicate_messages_persist_once(
        self,
        worker: PersistenceWorker,
        queue: InMemoryOrderQueue,
        store: FakeStore,
        order: Order,
    ) -> None:
        """The same order delivered several times yields a single row."""
        for _ in range(3):
            await queue.publish(order)

        for _ in range(3):
            assert await worker.process(await deliver(queue)) is DeliveryOutcome.COMMITTED

        assert len(store.rows) == 1


class TestRun:
    """Tests for the consume loop."""

    async def test_processes_in_order_then_stops(
        self,
        worker: PersistenceWorker,
        queue: InMemoryOrderQueue,
        store: FakeStore,
        order: Order,
    ) -> None:
        """Queued items are processed one at a time and stop() ends the loop."""
        orders = [order.model_copy(update={"id": f"order-{i}"}) for i in range(3)]
        for item in orders:
            await queue.publish(item)

        task = asyncio.create_task(worker.run())
        for _ in range(100):
            if len(store.rows) == 3:
                break
            await asyncio.sleep(0.01)
        await worker.stop()
        await asyncio.wait_for(task, timeout=1)

        assert list(store.rows) == [o.id for o in orders]
        assert worker.running is False

    async def test_stop_waits_for_in_flight_item(
        self,
        store: FakeStore,
        queue: InMemoryOrderQueue,
        metrics: MetricsRegistry,
        order: Order,
    ) -> None:
        """A stop request during processing lets the item finish and be acked."""
        started = asyncio.Event()
        release = asyncio.Event()
        search = FakeSearch()

        async def slow_index(item: Order) -> None:
            started.set()
            await release.wait()
            search.documents[item.id] = item

        search.index_order = slow_index  # type: ignore[method-assign]
        worker = PersistenceWorker(store, search, queue, message_timeout=5, metrics=metrics)
        await queue.publish(order)

        task = asyncio.create_task(worker.run())
        await started.wait()
        stopping = asyncio.create_task(worker.stop())
        await asyncio.sleep(0.02)
        assert not stopping.done()

        release.set()
        await asyncio.wait_for(stopping, timeout=1)
        await task

        assert order.id in search.documents
        assert queue.pending_count == 0
        assert queue.unacked_count == 0

    async def test_settlement_failure_does_not_stop_loop(
        self,
        store: FakeStore,
        search: FakeSearch,
        metrics: MetricsRegistry,
        order: Order,
    ) -> None:
        """An ack that fails is logged and the loop keeps consuming."""
        queue = InMemoryOrderQueue(poll_timeout=0.01)
        queue._ack = AsyncMock(side_effect=[ConnectionError("lost"), None])  # type: ignore[method-assign]
        worker = PersistenceWorker(store, search, queue, metrics=metrics)
        await queue.publish(order)
        await queue.publish(order.model_copy(update={"id": "second"}))

        task = asyncio.create_task(worker.run())
        for _ in range(100):
            if queue._ack.await_count == 2:
                break
            await asyncio.sleep(0.01)
        await worker.stop()
        await task

        assert queue._ack.await_count == 2
