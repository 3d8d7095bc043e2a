"""Redis write-back cache for orders.

On write the order is stored in Redis immediately, before the persistence
worker has written it to Postgres, so a read can be served right away. On a
read miss the caller falls back to Postgres and back-fills the cache.

Entries expire after a fixed TTL. An entry may be older than the row in the
record store, but never describes an order that was not accepted.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TYPE_CHECKING, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

from orderflow.cache.keys import CacheKeys
from orderflow.core.errors import CacheError, PayloadDecodeError
from orderflow.core.model import Order

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Default TTL (24 hours)
DEFAULT_TTL = 86400


def create_redis(url: str, socket_timeout: float = 5.0) -> Redis:
    """Create a pooled Redis client.

    The client is shared by every request task in the process.
    """
    return redis.from_url(  # type: ignore[no-untyped-call]
        url,
        decode_responses=False,  # We're storing bytes
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )


async def close_redis(client: Redis) -> None:
    """Close Redis connections."""
    await client.aclose()


class OrderCache:
    """Cache operations for orders."""

    def __init__(self, client: Redis, ttl: int = DEFAULT_TTL):
        self.client = client
        self.ttl = ttl

    async def set_order(self, order: Order) -> None:
        """Store an order under its id with the cache TTL.

        Raises:
            CacheError: If Redis is unreachable.
        """
        try:
            await self.client.setex(CacheKeys.order(order.id), self.ttl, order.to_bytes())
        except RedisError as e:
            raise CacheError(f"cache write failed: {e}") from e

    async def get_order(self, order_id: str) -> Order | None:
        """Fetch an order by id.

        Returns:
            The cached order, or None when the key is missing or expired.

        Raises:
            CacheError: If Redis is unreachable or the entry cannot be decoded.
        """
        try:
            data = cast(bytes | None, await self.client.get(CacheKeys.order(order_id)))
        except RedisError as e:
            raise CacheError(f"cache read failed: {e}") from e

        if data is None:
            return None

        try:
            return Order.from_bytes(data)
        except PayloadDecodeError as e:
            raise CacheError(f"corrupt cache entry for {order_id}: {e}") from e

    async def delete_order(self, order_id: str) -> None:
        """Drop a cached order."""
        try:
            await self.client.delete(CacheKeys.order(order_id))
        except RedisError as e:
            raise CacheError(f"cache delete failed: {e}") from e

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            await cast(Awaitable[bool], self.client.ping())
            return True
        except Exception:
            return False
