"""Domain exceptions shared by the cache, queue, store and search layers.

The API layer maps these to HTTP responses; the persistence worker maps them
to requeue or discard decisions.
"""

from __future__ import annotations


class OrderflowError(Exception):
    """Base class for orderflow errors."""


class CacheError(OrderflowError):
    """The write-back cache could not be read or written."""


class QueuePublishError(OrderflowError):
    """An order could not be handed to the durable queue."""


class PayloadDecodeError(OrderflowError):
    """A queued or cached payload is not a valid order."""


class StoreError(OrderflowError):
    """The record store failed for a reason other than a missing row."""


class OrderNotFoundError(OrderflowError):
    """No order with the given id exists in the record store."""

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"order {order_id} not found")


class TransactionFailedError(StoreError):
    """A multi-step write was rolled back."""


class SearchError(OrderflowError):
    """The search engine rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
