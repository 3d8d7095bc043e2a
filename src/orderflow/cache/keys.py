"""Cache key schema for orderflow.

Key format: {prefix}:{entity_type}:{identifier}
"""

from __future__ import annotations


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    PREFIX = "orderflow"

    @classmethod
    def order(cls, order_id: str) -> str:
        """Key for a serialized order."""
        return f"{cls.PREFIX}:order:{order_id}"
