"""Cache layer for orderflow.

Provides the Redis write-back cache:
- Orders are cached at acceptance time, before they are persisted
- Reads that miss the cache fall back to Postgres and back-fill it
- TTL-based expiration for memory management
"""

from orderflow.cache.keys import CacheKeys
from orderflow.cache.redis import DEFAULT_TTL, OrderCache, close_redis, create_redis

__all__ = [
    "CacheKeys",
    "DEFAULT_TTL",
    "OrderCache",
    "create_redis",
    "close_redis",
]
