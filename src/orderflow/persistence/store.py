"""Record store facade over the orders database.

Every operation is bounded by a timeout and timed into the query duration
histogram. Driver errors surface as StoreError; a missing row surfaces as
OrderNotFoundError so callers can tell "absent" from "unavailable".
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import Settings
from orderflow.core.errors import OrderNotFoundError, StoreError, TransactionFailedError
from orderflow.core.model import DailySale, Order
from orderflow.observability.metrics import MetricsRegistry, get_metrics
from orderflow.persistence.db import Database
from orderflow.persistence.repositories import OrderRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

TransactionStep = Callable[[OrderRepository], Awaitable[Any]]

# Marker value for the second bulk item that makes the transaction fail
BULK_FAILURE_MARKER = "ERROR"
BULK_ITEM_1_AMOUNT = 100.00
BULK_ITEM_2_AMOUNT = 50.00


class OrderStore:
    """Durable source of truth for orders."""

    def __init__(
        self,
        db: Database,
        *,
        read_timeout: float = 5.0,
        write_timeout: float = 5.0,
        refresh_timeout: float = 300.0,
        metrics: MetricsRegistry | None = None,
        repository_factory: Callable[[AsyncSession], OrderRepository] = OrderRepository,
    ) -> None:
        self.db = db
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.refresh_timeout = refresh_timeout
        self._metrics = metrics or get_metrics()
        self._repository = repository_factory

    @classmethod
    def from_settings(cls, db: Database, settings: Settings) -> OrderStore:
        return cls(
            db,
            read_timeout=settings.db_read_timeout,
            write_timeout=settings.db_write_timeout,
            refresh_timeout=settings.db_refresh_timeout,
        )

    async def _bounded(self, operation: str, work: Awaitable[T], timeout: float) -> T:
        with self._metrics.time_query(operation):
            try:
                return await asyncio.wait_for(work, timeout=timeout)
            except (OrderNotFoundError, StoreError):
                raise
            except asyncio.TimeoutError as e:
                raise StoreError(f"{operation} timed out after {timeout}s") from e
            except (SQLAlchemyError, OSError) as e:
                raise StoreError(f"{operation} failed: {e}") from e

    async def insert_idempotent(self, order: Order) -> bool:
        """Write an order under its own id, doing nothing if it already exists.

        Returns:
            True if the row was created by this call.
        """

        async def work() -> bool:
            async with self.db.transaction() as session:
                return await self._repository(session).insert_if_absent(order)

        inserted = await self._bounded("insert_order", work(), self.write_timeout)
        if not inserted:
            logger.debug(f"Order {order.id} already stored; insert skipped")
        return inserted

    async def get_by_id(self, order_id: str) -> Order:
        """Read an order.

        Raises:
            OrderNotFoundError: If no row has this id.
            StoreError: If the database failed or timed out.
        """

        async def work() -> Order:
            async with self.db.session() as session:
                order = await self._repository(session).get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            return order

        return await self._bounded("get_order", work(), self.read_timeout)

    async def get_daily_sales(self, limit: int = 30) -> list[DailySale]:
        """Most recent days of the aggregate view, newest first."""

        async def work() -> list[DailySale]:
            async with self.db.session() as session:
                return await self._repository(session).daily_sales(limit)

        return await self._bounded("daily_sales", work(), self.read_timeout)

    async def refresh_daily_sales(self) -> None:
        """Recompute the aggregate view; readers keep seeing the old contents meanwhile."""

        async def work() -> None:
            async with self.db.transaction() as session:
                await self._repository(session).refresh_daily_sales()

        await self._bounded("refresh_daily_sales", work(), self.refresh_timeout)

    async def run_transaction(
        self,
        steps: Sequence[TransactionStep],
        operation: str = "transaction",
    ) -> list[Any]:
        """Run steps in one transaction: all of them commit or none do.

        Raises:
            TransactionFailedError: If any step fails; nothing is written.
        """

        async def work() -> list[Any]:
            async with self.db.transaction() as session:
                repository = self._repository(session)
                return [await step(repository) for step in steps]

        try:
            return await self._bounded(operation, work(), self.write_timeout)
        except TransactionFailedError:
            raise
        except Exception as e:
            raise TransactionFailedError(f"{operation} rolled back: {e}") from e

    async def process_bulk_order(self, item_1: str, item_2: str) -> list[str]:
        """Write two orders atomically.

        A second item named ERROR fails the transaction after the first
        insert, which must then be rolled back.

        Returns:
            The ids of the two new orders.
        """

        async def first(repository: OrderRepository) -> str:
            return await repository.insert(item_1, BULK_ITEM_1_AMOUNT)

        async def second(repository: OrderRepository) -> str:
            if item_2 == BULK_FAILURE_MARKER:
                raise TransactionFailedError("simulated failure on second item")
            return await repository.insert(item_2, BULK_ITEM_2_AMOUNT)

        try:
            ids = await self.run_transaction([first, second], operation="bulk_order")
        except TransactionFailedError as e:
            logger.warning(f"Bulk order rolled back: {e}")
            raise
        logger.info(f"Bulk order committed: {ids}")
        return ids

    async def health_check(self) -> bool:
        return await self.db.health_check()
