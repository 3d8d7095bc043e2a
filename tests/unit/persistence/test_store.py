"""Tests for the OrderStore facade."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from orderflow.core.errors import OrderNotFoundError, StoreError, TransactionFailedError
from orderflow.core.model import Order
from orderflow.observability.metrics import MetricsRegistry
from orderflow.persistence.store import OrderStore

@pytest.fixture
def store(fake_db, fake_repository, metrics: MetricsRegistry) -> OrderStore:
    return OrderStore(fake_db, metrics=metrics, repository_factory=fake_repository)


def failing_repository(exc: Exception):
    def factory(session):
        repository = AsyncMock()
        for method in ("insert_if_absent", "get", "daily_sales", "refresh_daily_sales"):
            getattr(repository, method).side_effect = exc
        return repository

    return factory


class TestInsertIdempotent:
    """Tests for replay-safe inserts."""

    async def test_first_insert_writes(
        self, store: OrderStore, fake_db, order: Order
    ) -> None:
        """The first insert creates the row."""
        assert await store.insert_idempotent(order) is True
        assert fake_db.rows == {order.id: order}

    async def test_replay_is_noop(
        self, store: OrderStore, fake_db, order: Order
    ) -> None:
        """Inserting the same id again leaves exactly one row and does not raise."""
        await store.insert_idempotent(order)

        assert await store.insert_idempotent(order) is False
        assert len(fake_db.rows) == 1


class TestGetById:
    """Tests for reads by id."""

    async def test_found(self, store: OrderStore, order: Order) -> None:
        await store.insert_idempotent(order)

        assert await store.get_by_id(order.id) == order

    async def test_not_found(self, store: OrderStore) -> None:
        """A missing row raises OrderNotFoundError."""
        with pytest.raises(OrderNotFoundError):
            await store.get_by_id("absent")

    async def test_driver_error_is_store_error(
        self, fake_db, metrics: MetricsRegistry
    ) -> None:
        """Database failures raise StoreError, never OrderNotFoundError."""
        error = OperationalError("SELECT", {}, ConnectionRefusedError("refused"))
        store = OrderStore(fake_db, metrics=metrics, repository_factory=failing_repository(error))

        with pytest.raises(StoreError) as exc_info:
            await store.get_by_id("any")
        assert not isinstance(exc_info.value, OrderNotFoundError)

    async def test_connection_error_is_store_error(
        self, fake_db, metrics: MetricsRegistry
    ) -> None:
        """Socket errors from the driver raise StoreError."""
        store = OrderStore(
            fake_db,
            metrics=metrics,
            repository_factory=failing_repository(ConnectionRefusedError("refused")),
        )

        with pytest.raises(StoreError):
            await store.get_by_id("any")

    async def test_timeout_is_store_error(
        self, fake_db, metrics: MetricsRegistry
    ) -> None:
        """Reads are bounded by the read timeout."""

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        store = OrderStore(fake_db, read_timeout=0.01, metrics=metrics)
        store._repository = lambda session: AsyncMock(get=slow)

        with pytest.raises(StoreError, match="timed out"):
            await store.get_by_id("any")


class TestDailySales:
    """Tests for the aggregate view."""

    async def test_newest_first_and_bounded(self, store: OrderStore, fake_db) -> None:
        """At most `limit` days are returned, most recent first."""
        start = datetime(2026, 1, 1, 12, tzinfo=UTC)
        for day in range(40):
            for amount in (10.0, 5.5):
                order = Order.model_validate(
                    {
                        "id": f"{day}-{amount}",
                        "product_name": "Widget",
                        "amount": amount,
                        "created_at": start + timedelta(days=day),
                    }
                )
                fake_db.rows[order.id] = order

        sales = await store.get_daily_sales(limit=30)

        assert len(sales) == 30
        assert sales[0].date == "2026-02-09"
        assert [s.date for s in sales] == sorted((s.date for s in sales), reverse=True)
        assert all(s.total_revenue == 15.5 for s in sales)

    async def test_refresh(self, store: OrderStore, fake_db) -> None:
        """Refresh runs inside a committed transaction."""
        await store.refresh_daily_sales()

        assert fake_db.refreshes == 1
        assert fake_db.commits == 1

    async def test_refresh_timeout(self, fake_db, metrics: MetricsRegistry) -> None:
        """Refresh is bounded by its own timeout."""

        async def slow():
            await asyncio.sleep(1)

        store = OrderStore(fake_db, refresh_timeout=0.01, metrics=metrics)
        store._repository = lambda session: AsyncMock(refresh_daily_sales=slow)

        with pytest.raises(StoreError, match="timed out"):
            await store.refresh_daily_sales()
        assert fake_db.rollbacks == 1


class TestTransactions:
    """Tests for all-or-nothing writes."""

    async def test_bulk_order_commits_both(self, store: OrderStore, fake_db) -> None:
        """Two successful steps leave exactly two rows."""
        ids = await store.process_bulk_order("Laptop", "Mouse")

        assert len(ids) == 2
        assert {fake_db.rows[i].product_name for i in ids} == {"Laptop", "Mouse"}
        assert [fake_db.rows[i].amount for i in ids] == [100.0, 50.0]

    async def test_bulk_order_error_rolls_back(
        self, store: OrderStore, fake_db
    ) -> None:
        """A failing second step leaves no rows from either step."""
        with pytest.raises(TransactionFailedError):
            await store.process_bulk_order("Laptop", "ERROR")

        assert fake_db.rows == {}
        assert fake_db.rollbacks == 1
        assert fake_db.commits == 0

    async def test_run_transaction_wraps_any_failure(
        self, store: OrderStore, fake_db
    ) -> None:
        """Arbitrary step errors become TransactionFailedError after rollback."""

        async def first(repository):
            return await repository.insert("Laptop", 1.0)

        async def second(repository):
            raise ValueError("boom")

        with pytest.raises(TransactionFailedError, match="boom"):
            await store.run_transaction([first, second])

        assert fake_db.rows == {}

    async def test_run_transaction_returns_step_results(self, store: OrderStore) -> None:
        """Step results are returned in order."""

        async def step(repository):
            return "done"

        assert await store.run_transaction([step, step]) == ["done", "done"]
