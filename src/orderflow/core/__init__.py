"""Order domain: models, errors and the acceptance/read service."""

from orderflow.core.errors import (
    CacheError,
    OrderflowError,
    OrderNotFoundError,
    PayloadDecodeError,
    QueuePublishError,
    SearchError,
    StoreError,
    TransactionFailedError,
)
from orderflow.core.model import BulkOrderRequest, DailySale, Order, OrderAccepted, OrderCreate

__all__ = [
    # Models
    "Order",
    "OrderCreate",
    "OrderAccepted",
    "DailySale",
    "BulkOrderRequest",
    # Errors
    "OrderflowError",
    "CacheError",
    "QueuePublishError",
    "PayloadDecodeError",
    "StoreError",
    "OrderNotFoundError",
    "TransactionFailedError",
    "SearchError",
]
