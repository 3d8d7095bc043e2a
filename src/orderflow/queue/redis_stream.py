"""Redis Streams durable queue.

Orders are appended to a stream and consumed through a consumer group, so
each message is delivered to one worker at a time and stays in the group's
pending list until the worker settles it.

Durability guarantees:
- The stream is persisted by Redis (AOF) and survives a broker restart.
- The consumer group is created from the start of the stream, so orders
  published before the first worker starts are not skipped.
- A message is only removed after the worker has written it to both
  Postgres and Elasticsearch (XACK + XDEL).
- Messages left pending by a crashed consumer are reclaimed with XAUTOCLAIM
  once they have been idle longer than the claim threshold.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from redis.exceptions import RedisError, ResponseError

from orderflow.core.errors import QueuePublishError
from orderflow.core.model import Order
from orderflow.queue.base import Delivery, OrderConsumer, OrderPublisher

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Stream configuration
STREAM_NAME = "orderflow:orders"
CONSUMER_GROUP = "orderflow-workers"
DEAD_LETTER_SUFFIX = ":dead"

# Processing configuration
BLOCK_MS = 1000  # Block for 1 second when waiting for orders
CLAIM_IDLE_MS = 30000  # Reclaim messages idle for 30 seconds


def _generate_consumer_id() -> str:
    """Generate a unique consumer ID for this instance."""
    hostname = os.environ.get("HOSTNAME", os.environ.get("POD_NAME", "unknown"))
    return f"{hostname}-{uuid4().hex[:8]}"


def _as_str(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


def _field(fields: dict[Any, Any], name: str) -> Any:
    if name in fields:
        return fields[name]
    return fields.get(name.encode())


class RedisStreamQueue(OrderPublisher, OrderConsumer):
    """Durable order queue on a Redis Stream with a consumer group.

    Example:
        queue = RedisStreamQueue(redis)
        await queue.start()

        # API side
        await queue.publish(order)

        # Worker side
        async for delivery in queue.deliveries(stop_event):
            ...
            await delivery.ack()
    """

    def __init__(
        self,
        redis: Redis,
        stream_name: str = STREAM_NAME,
        consumer_group: str = CONSUMER_GROUP,
        consumer_id: str | None = None,
        claim_idle_ms: int = CLAIM_IDLE_MS,
        max_deliveries: int = 0,
        block_ms: int = BLOCK_MS,
    ) -> None:
        self.redis = redis
        self.stream_name = stream_name
        self.consumer_group = consumer_group
        self.consumer_id = consumer_id or _generate_consumer_id()
        self.dead_letter_stream = f"{stream_name}{DEAD_LETTER_SUFFIX}"
        self.claim_idle_ms = claim_idle_ms
        self.max_deliveries = max_deliveries
        self.block_ms = block_ms

    async def start(self) -> None:
        """Ensure the stream and consumer group exist."""
        try:
            await self.redis.xgroup_create(
                self.stream_name,
                self.consumer_group,
                id="0",
                mkstream=True,
            )
            logger.info(
                f"Created consumer group {self.consumer_group} on stream {self.stream_name}"
            )
        except ResponseError as e:
            # Group already exists - this is fine
            if "BUSYGROUP" not in str(e):
                raise
            logger.debug(f"Consumer group {self.consumer_group} already exists")

    # -------------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------------

    async def publish(self, order: Order) -> None:
        """Append an order to the stream."""
        try:
            message_id = await self.redis.xadd(
                self.stream_name,
                {"data": order.to_bytes(), "attempt": 1},
            )
        except RedisError as e:
            raise QueuePublishError(f"queue publish failed: {e}") from e

        logger.debug(f"Published order {order.id} as {message_id!r}")

    # -------------------------------------------------------------------------
    # Consumer side
    # -------------------------------------------------------------------------

    async def _next_delivery(self) -> Delivery | None:
        if self.claim_idle_ms > 0:
            claimed = await self._claim_stale_message()
            if claimed is not None:
                return claimed

        messages = await self.redis.xreadgroup(
            groupname=self.consumer_group,
            consumername=self.consumer_id,
            streams={self.stream_name: ">"},  # Only new messages
            count=1,
            block=self.block_ms,
        )

        if not messages:
            return None

        _stream, entries = messages[0]
        if not entries:
            return None

        message_id, fields = entries[0]
        return self._to_delivery(message_id, fields)

    async def _claim_stale_message(self) -> Delivery | None:
        """Take over one message left pending by a consumer that went away."""
        result = await self.redis.xautoclaim(
            self.stream_name,
            self.consumer_group,
            self.consumer_id,
            min_idle_time=self.claim_idle_ms,
            start_id="0-0",
            count=1,
        )

        for message_id, fields in result[1]:
            if message_id is None or not fields:
                continue
            logger.warning(
                "reclaimed stale message",
                extra={"component": "queue", "message_id": _as_str(message_id)},
            )
            return self._to_delivery(message_id, fields)

        return None

    def _to_delivery(self, message_id: bytes | str, fields: dict[Any, Any]) -> Delivery:
        body = _field(fields, "data") or b""
        if isinstance(body, str):
            body = body.encode()

        try:
            attempt = int(_field(fields, "attempt") or 1)
        except (TypeError, ValueError):
            attempt = 1

        return Delivery(self, _as_str(message_id), body, attempt)

    async def _ack(self, delivery: Delivery) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.xack(self.stream_name, self.consumer_group, delivery.message_id)
            pipe.xdel(self.stream_name, delivery.message_id)
            await pipe.execute()

    async def _requeue(self, delivery: Delivery) -> None:
        if self.max_deliveries and delivery.attempt >= self.max_deliveries:
            await self._discard(delivery, "max deliveries exceeded")
            return

        # Re-append and remove the original atomically (MULTI/EXEC)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.xadd(
                self.stream_name,
                {"data": delivery.body, "attempt": delivery.attempt + 1},
            )
            pipe.xack(self.stream_name, self.consumer_group, delivery.message_id)
            pipe.xdel(self.stream_name, delivery.message_id)
            await pipe.execute()

        logger.info(
            "message requeued",
            extra={
                "component": "queue",
                "message_id": delivery.message_id,
                "attempt": delivery.attempt,
            },
        )

    async def _discard(self, delivery: Delivery, reason: str) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.xadd(
                self.dead_letter_stream,
                {
                    "data": delivery.body,
                    "original_id": delivery.message_id,
                    "original_stream": self.stream_name,
                    "attempt": delivery.attempt,
                    "reason": reason,
                },
            )
            pipe.xack(self.stream_name, self.consumer_group, delivery.message_id)
            pipe.xdel(self.stream_name, delivery.message_id)
            await pipe.execute()

        logger.warning(
            "message moved to dead letter stream",
            extra={"component": "queue", "message_id": delivery.message_id, "reason": reason},
        )

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    async def get_stats(self) -> dict[str, int]:
        """Queue depth, pending (delivered but unsettled) and dead-letter counts."""
        length = await self.redis.xlen(self.stream_name)
        dead = await self.redis.xlen(self.dead_letter_stream)
        try:
            info = await self.redis.xpending(self.stream_name, self.consumer_group)
            pending = int(info.get("pending", 0))
        except ResponseError:
            pending = 0
        return {"length": length, "pending": pending, "dead": dead}

