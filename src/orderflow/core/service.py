"""Acceptance and read paths for orders.

accept() hands an order to the cache and the durable queue and returns before
anything reaches Postgres. lookup() serves from the cache and falls back to
the record store, back-filling the cache on the way out.

Cache failures never reach the caller on either path: the queue and the
store are the durable copies. A queue failure does, because an order that
cannot be queued would otherwise be silently lost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from orderflow.core.errors import CacheError, QueuePublishError
from orderflow.core.model import Order, OrderCreate
from orderflow.observability.metrics import MetricsRegistry, get_metrics
from orderflow.persistence.store import OrderStore

logger = logging.getLogger(__name__)


class OrderCachePort(Protocol):
    async def set_order(self, order: Order) -> None: ...

    async def get_order(self, order_id: str) -> Order | None: ...

    async def delete_order(self, order_id: str) -> None: ...


class OrderPublisherPort(Protocol):
    async def publish(self, order: Order) -> None: ...


class OrderSearchPort(Protocol):
    async def search_orders(self, term: str) -> bytes: ...


@dataclass(frozen=True)
class OrderLookup:
    """An order and where it was read from."""

    order: Order
    source: Literal["cache", "store"]

    @property
    def cache_hit(self) -> bool:
        return self.source == "cache"


class OrderService:
    """Write-back acceptance, cached reads and the search proxy."""

    def __init__(
        self,
        cache: OrderCachePort,
        publisher: OrderPublisherPort,
        search: OrderSearchPort,
        store: OrderStore,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.cache = cache
        self.publisher = publisher
        self.search_port = search
        self.store = store
        self._metrics = metrics or get_metrics()

    async def accept(self, draft: OrderCreate) -> Order:
        """Assign identity, cache and enqueue an order.

        Raises:
            QueuePublishError: If the queue did not take the order. The cache
                entry is dropped so the failed attempt leaves nothing behind.
        """
        order = Order.accept(draft)

        try:
            await self.cache.set_order(order)
        except CacheError as e:
            logger.warning(
                "Cache write failed; order continues to the queue",
                extra={"component": "api", "order_id": order.id, "error": str(e)},
            )

        try:
            await self.publisher.publish(order)
        except QueuePublishError:
            await self._forget(order.id)
            raise
        self._metrics.orders_accepted_total.inc()
        return order

    async def _forget(self, order_id: str) -> None:
        try:
            await self.cache.delete_order(order_id)
        except CacheError as e:
            # The entry expires with the TTL
            logger.warning(
                "Cache cleanup after failed publish failed",
                extra={"component": "api", "order_id": order_id, "error": str(e)},
            )

    async def lookup(self, order_id: str) -> OrderLookup:
        """Read an order, cache first.

        Raises:
            OrderNotFoundError: If the store has no such order.
            StoreError: If the store could not answer.
        """
        try:
            cached = await self.cache.get_order(order_id)
        except CacheError as e:
            logger.warning(
                "Cache read failed; falling back to the store",
                extra={"component": "api", "order_id": order_id, "error": str(e)},
            )
            self._metrics.cache_lookups_total.labels(result="error").inc()
            cached = None
        else:
            self._metrics.cache_lookups_total.labels(
                result="hit" if cached is not None else "miss"
            ).inc()

        if cached is not None:
            return OrderLookup(order=cached, source="cache")

        order = await self.store.get_by_id(order_id)

        try:
            await self.cache.set_order(order)
        except CacheError as e:
            logger.warning(
                "Cache back-fill failed",
                extra={"component": "api", "order_id": order_id, "error": str(e)},
            )

        return OrderLookup(order=order, source="store")

    async def search(self, term: str) -> bytes:
        """Free-text search over product names; returns the raw engine response."""
        return await self.search_port.search_orders(term)
