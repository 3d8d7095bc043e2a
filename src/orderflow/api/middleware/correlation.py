"""Correlation context middleware for request tracing.

Propagates correlation IDs and request context to logging.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from orderflow.observability.logging import (
    correlation_id_var,
    request_id_var,
)

logger = logging.getLogger("orderflow.access")


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware for propagating correlation context.

    Extracts or generates correlation IDs and propagates them to:
    - Request state (for use in handlers)
    - Context variables (for logging)
    - Response headers (for client correlation)

    Each request is logged once with its status and duration.

    Headers:
    - x-request-id: Unique ID for this request
    - x-correlation-id: ID for tracking across services (passed through)
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        correlation_id = (
            request.headers.get("x-correlation-id")
            or request.headers.get("x-correlationid")  # Alternate format
            or request_id
        )

        request_token = request_id_var.set(request_id)
        correlation_token = correlation_id_var.set(correlation_id)
        start = time.perf_counter()

        try:
            request.state.request_id = request_id
            request.state.correlation_id = correlation_id

            response = await call_next(request)

            response.headers["x-request-id"] = request_id
            response.headers["x-correlation-id"] = correlation_id

            logger.info(
                f"{request.method} {request.url.path} {response.status_code}",
                extra={
                    "component": "api",
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
            return response

        finally:
            request_id_var.reset(request_token)
            correlation_id_var.reset(correlation_token)
