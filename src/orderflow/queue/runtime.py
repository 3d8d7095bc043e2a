"""Runtime wiring for the orderflow durable queue."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from orderflow.config import Settings
from orderflow.queue.memory import InMemoryOrderQueue
from orderflow.queue.redis_stream import RedisStreamQueue

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


def create_queue(
    settings: Settings,
    redis: Redis | None = None,
) -> InMemoryOrderQueue | RedisStreamQueue:
    """Create a queue based on configuration."""
    backend = settings.queue_backend.lower()

    if backend in {"memory", "inmemory", "in_memory"}:
        logger.warning("Using in-memory queue; accepted orders are lost on restart")
        return InMemoryOrderQueue(max_deliveries=settings.queue_max_deliveries)

    if backend in {"redis", "redis_stream", "redis-stream", "streams"}:
        if redis is None:
            raise ValueError("The redis queue backend needs a Redis client")
        return RedisStreamQueue(
            redis,
            stream_name=settings.queue_stream_name,
            consumer_group=settings.queue_consumer_group,
            consumer_id=settings.queue_consumer_id,
            claim_idle_ms=settings.queue_claim_idle_ms,
            max_deliveries=settings.queue_max_deliveries,
        )

    raise ValueError("Unsupported queue_backend. Supported values: memory, redis, redis_stream.")
