"""Search endpoint.

- GET /api/search?q={term} - Full-text match on product name
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response

from orderflow.api.deps import get_order_service
from orderflow.api.errors import BadRequestError, InternalServerError
from orderflow.api.responses import json_bytes_response
from orderflow.core.errors import SearchError
from orderflow.core.service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["search"])


@router.get("/search")
async def search_orders(
    q: str = Query(default="", description="Search term"),
    service: OrderService = Depends(get_order_service),
) -> Response:
    """Proxy the search to Elasticsearch and return its response body unchanged."""
    term = q.strip()
    if not term:
        raise BadRequestError("Missing required query parameter: q")

    try:
        result = await service.search(term)
    except SearchError as e:
        logger.error(
            "Search failed",
            extra={"component": "api", "term": term, "error": str(e)},
        )
        raise InternalServerError("Search engine error")

    return json_bytes_response(result)
