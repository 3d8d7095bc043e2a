"""Durable queue between the API and the persistence worker.

Provides:
- RedisStreamQueue: Redis Streams with a consumer group (production)
- InMemoryOrderQueue: asyncio.Queue for single-process deployments and tests

Both deliver one message at a time per consumer and require every delivery
to be settled by ack, requeue or discard.
"""

from orderflow.queue.base import Delivery, OrderConsumer, OrderPublisher, Settlement
from orderflow.queue.memory import DeadLetter, InMemoryOrderQueue
from orderflow.queue.redis_stream import RedisStreamQueue
from orderflow.queue.runtime import create_queue

__all__ = [
    "Delivery",
    "Settlement",
    "OrderPublisher",
    "OrderConsumer",
    "DeadLetter",
    "InMemoryOrderQueue",
    "RedisStreamQueue",
    "create_queue",
]
