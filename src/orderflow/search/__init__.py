"""Search projection of orders."""

from orderflow.search.client import ORDER_MAPPINGS, SearchClient

__all__ = ["ORDER_MAPPINGS", "SearchClient"]
