"""Order domain models.

An Order is assigned its id and creation timestamp when it is accepted and
keeps them for life; the same id keys the cache entry, the queue message, the
primary row and the search document.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from orderflow.core.errors import PayloadDecodeError

# Largest value the orders.amount NUMERIC(12, 2) column holds
MAX_AMOUNT = 9_999_999_999.99
AMOUNT_DECIMAL_PLACES = 2


class OrderCreate(BaseModel):
    """Client payload for a new order."""

    model_config = ConfigDict(extra="ignore")

    product_name: str = Field(..., min_length=1, max_length=255)
    amount: float = Field(..., ge=0, le=MAX_AMOUNT, allow_inf_nan=False)

    @field_validator("amount")
    @classmethod
    def _at_most_cents(cls, value: float) -> float:
        if round(value, AMOUNT_DECIMAL_PLACES) != value:
            raise ValueError(f"amount must have at most {AMOUNT_DECIMAL_PLACES} decimal places")
        return value


class Order(BaseModel):
    """An accepted order."""

    model_config = ConfigDict(frozen=True)

    id: str
    product_name: str
    amount: float
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def accept(cls, draft: OrderCreate) -> Order:
        """Assign identity and timestamp to a client draft."""
        return cls(
            id=str(uuid4()),
            product_name=draft.product_name,
            amount=draft.amount,
            created_at=datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def to_bytes(self) -> bytes:
        """Serialize to the JSON bytes used by the cache, queue and search index."""
        return orjson.dumps(self.to_dict())

    @classmethod
    def from_bytes(cls, data: bytes | str) -> Order:
        """Decode an order payload.

        Raises:
            PayloadDecodeError: If the payload is not JSON or not a valid order.
        """
        try:
            return cls.model_validate(orjson.loads(data))
        except (orjson.JSONDecodeError, ValidationError, TypeError) as e:
            raise PayloadDecodeError(str(e)) from e


class OrderAccepted(BaseModel):
    """Response for an order that is on its way to durable storage."""

    status: Literal["processing"] = "processing"
    order_id: str


class DailySale(BaseModel):
    """One row of the daily sales aggregate view."""

    date: str
    total_revenue: float


class BulkOrderRequest(BaseModel):
    """Two items written together in a single transaction."""

    item_1: str = Field(..., min_length=1)
    item_2: str = Field(..., min_length=1)
