"""Process-wide resources.

Each process owns exactly one Redis client, one database engine, one search
client and one queue. They are opened together at startup, handed to the
components that need them, and released in reverse order on exit.

Usage:
    async with open_resources(settings) as resources:
        service = resources.order_service()
        ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from orderflow.cache.redis import OrderCache, close_redis, create_redis
from orderflow.config import Settings
from orderflow.core.errors import SearchError
from orderflow.core.service import OrderService
from orderflow.jobs.scheduler import RefreshSchedule, ViewRefreshScheduler
from orderflow.jobs.worker import PersistenceWorker
from orderflow.persistence.db import Database
from orderflow.persistence.store import OrderStore
from orderflow.queue.memory import InMemoryOrderQueue
from orderflow.queue.redis_stream import RedisStreamQueue
from orderflow.queue.runtime import create_queue
from orderflow.search.client import SearchClient

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


@dataclass
class Resources:
    """Shared clients for one process."""

    settings: Settings
    redis: Redis
    db: Database
    store: OrderStore
    cache: OrderCache
    search: SearchClient
    queue: InMemoryOrderQueue | RedisStreamQueue

    def order_service(self) -> OrderService:
        return OrderService(
            cache=self.cache,
            publisher=self.queue,
            search=self.search,
            store=self.store,
        )

    def persistence_worker(self) -> PersistenceWorker:
        return PersistenceWorker(
            store=self.store,
            search=self.search,
            consumer=self.queue,
            message_timeout=self.settings.worker_message_timeout,
        )

    def refresh_scheduler(self) -> ViewRefreshScheduler:
        """Build the view refresh scheduler.

        Raises:
            ValueError: If the configured schedule cannot be parsed.
        """
        return ViewRefreshScheduler(self.store, RefreshSchedule(self.settings.mv_refresh_schedule))


@asynccontextmanager
async def open_resources(
    settings: Settings,
    *,
    ensure_index: bool = True,
) -> AsyncIterator[Resources]:
    """Open every shared client; close them in reverse order on exit.

    Args:
        settings: Connection and pipeline settings.
        ensure_index: Create the search index if it is missing. Failure is
            logged, not raised; the worker retries indexing per message.
    """
    async with AsyncExitStack() as stack:
        redis_client = create_redis(settings.redis_url, settings.redis_socket_timeout)
        stack.push_async_callback(close_redis, redis_client)

        db = Database.from_settings(settings)
        stack.push_async_callback(db.close)

        search = SearchClient.from_settings(settings)
        stack.push_async_callback(search.close)

        queue = create_queue(settings, redis_client)
        await queue.start()
        stack.push_async_callback(queue.close)

        if ensure_index:
            try:
                await search.ensure_index()
            except SearchError as e:
                logger.warning(f"Could not ensure search index {search.index}: {e}")

        resources = Resources(
            settings=settings,
            redis=redis_client,
            db=db,
            store=OrderStore.from_settings(db, settings),
            cache=OrderCache(redis_client, ttl=settings.cache_ttl_seconds),
            search=search,
            queue=queue,
        )
        logger.info(f"Resources opened (queue backend: {settings.queue_backend})")
        yield resources
        logger.info("Releasing resources")
