"""Admin endpoints.

- POST /api/admin/refresh - Refresh the daily sales view now
- POST /api/bulk-orders   - Write two orders in one transaction
- GET  /api/admin/queue   - Queue depth, pending and dead-letter counts
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError

from orderflow.api.deps import get_resources, get_scheduler, get_store
from orderflow.api.errors import InternalServerError
from orderflow.core.errors import StoreError, TransactionFailedError
from orderflow.core.model import BulkOrderRequest
from orderflow.jobs.scheduler import ViewRefreshScheduler
from orderflow.persistence.store import OrderStore
from orderflow.runtime import Resources

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["admin"])


@router.post("/admin/refresh")
async def refresh_materialized_view(
    scheduler: ViewRefreshScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    """Refresh the daily sales view and return once it has completed.

    Bounded by the refresh timeout rather than the request timeouts.
    """
    try:
        await scheduler.trigger("manual")
    except StoreError as e:
        raise InternalServerError(f"Failed to refresh view: {e}")

    return {
        "status": "refreshed",
        "refreshed_at": scheduler.last_run.isoformat() if scheduler.last_run else None,
    }


@router.post("/bulk-orders", status_code=201)
async def create_bulk_order(
    request: BulkOrderRequest,
    store: OrderStore = Depends(get_store),
) -> dict[str, Any]:
    """Insert two orders atomically.

    Send ``{"item_1": "Laptop", "item_2": "ERROR"}`` to force a rollback.
    """
    try:
        order_ids = await store.process_bulk_order(request.item_1, request.item_2)
    except TransactionFailedError as e:
        logger.error("Bulk order failed", extra={"component": "api", "error": str(e)})
        raise InternalServerError(f"Transaction failed: {e}")

    return {"status": "committed", "order_ids": order_ids}


@router.get("/admin/queue")
async def queue_stats(resources: Resources = Depends(get_resources)) -> dict[str, Any]:
    """Queue depth, deliveries awaiting settlement and dead-lettered messages."""
    try:
        stats = await resources.queue.get_stats()
    except RedisError as e:
        logger.error("Queue stats failed", extra={"component": "api", "error": str(e)})
        raise InternalServerError("Failed to read queue stats")

    return {"backend": resources.settings.queue_backend, **stats}
