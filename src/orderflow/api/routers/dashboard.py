"""Dashboard endpoint.

- GET /api/dashboard/sales - Daily revenue from the materialized view
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from orderflow.api.deps import get_store
from orderflow.api.errors import InternalServerError
from orderflow.core.errors import StoreError
from orderflow.core.model import DailySale
from orderflow.persistence.store import OrderStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

# Days returned by the sales dashboard
SALES_DAYS = 30


@router.get("/sales", response_model=list[DailySale])
async def get_sales_dashboard(store: OrderStore = Depends(get_store)) -> list[DailySale]:
    """Most recent days of revenue, newest first.

    Reads the precomputed view, so figures are as of its last refresh.
    """
    try:
        sales = await store.get_daily_sales(limit=SALES_DAYS)
    except StoreError as e:
        logger.error("Dashboard query failed", extra={"component": "api", "error": str(e)})
        raise InternalServerError("Failed to fetch dashboard data")

    logger.info("Dashboard fetched", extra={"component": "api", "records": len(sales)})
    return sales
