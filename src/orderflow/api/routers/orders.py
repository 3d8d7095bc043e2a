"""Order endpoints.

- POST /api/orders            - Accept an order (202, persisted asynchronously)
- GET  /api/orders/{order_id} - Read an order, cache first (X-Cache: HIT|MISS)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from orderflow.api.deps import get_order_service, valid_order_id
from orderflow.api.errors import InternalServerError, NotFoundError
from orderflow.api.responses import json_bytes_response
from orderflow.core.errors import OrderNotFoundError, QueuePublishError, StoreError
from orderflow.core.model import OrderAccepted, OrderCreate
from orderflow.core.service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["orders"])


@router.post("/orders", status_code=202, response_model=OrderAccepted)
async def create_order(
    draft: OrderCreate,
    service: OrderService = Depends(get_order_service),
) -> OrderAccepted:
    """Accept an order for processing.

    The response only means the order is queued; it is written to the
    database and the search index later by the persistence worker.
    """
    try:
        order = await service.accept(draft)
    except QueuePublishError as e:
        logger.error("Queue publish failed", extra={"component": "api", "error": str(e)})
        raise InternalServerError("Failed to enqueue order")

    logger.info(
        "Order accepted",
        extra={"component": "api", "order_id": order.id, "product": order.product_name},
    )
    return OrderAccepted(order_id=order.id)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str = Depends(valid_order_id),
    service: OrderService = Depends(get_order_service),
) -> Response:
    """Get an order by id.

    Served from the cache when possible, otherwise from the database. A
    missing order is 404; a database failure is 500.
    """
    try:
        lookup = await service.lookup(order_id)
    except OrderNotFoundError:
        raise NotFoundError("Order", order_id)
    except StoreError as e:
        logger.error(
            "Order read failed",
            extra={"component": "api", "order_id": order_id, "error": str(e)},
        )
        raise InternalServerError("Failed to read order")

    return json_bytes_response(
        lookup.order.to_bytes(),
        headers={"X-Cache": "HIT" if lookup.cache_hit else "MISS"},
    )
