"""Health check endpoints for orderflow.

Provides Kubernetes-compatible liveness and readiness probes:
- /health/live  - Liveness probe (always returns OK if process is running)
- /health/ready - Readiness probe (checks database, Redis and Elasticsearch)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from orderflow.api.deps import get_resources
from orderflow.runtime import Resources

router = APIRouter(tags=["health"])

CHECK_TIMEOUT = 5.0  # seconds


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        return result


async def check_component(name: str, probe: Callable[[], Awaitable[bool]]) -> ComponentHealth:
    """Run one probe with a timeout."""
    start = time.monotonic()
    try:
        healthy = await asyncio.wait_for(probe(), timeout=CHECK_TIMEOUT)
        message = None if healthy else f"{name} check failed"
    except asyncio.TimeoutError:
        healthy, message = False, f"{name} check timed out"
    except Exception as e:
        healthy, message = False, str(e)

    return ComponentHealth(
        name=name,
        status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
        latency_ms=(time.monotonic() - start) * 1000,
        message=message,
    )


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe.

    Returns OK if the process is running. Used by Kubernetes
    to determine if the container should be restarted.
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(resources: Resources = Depends(get_resources)) -> JSONResponse:
    """Readiness probe.

    Returns 200 if the database, Redis and Elasticsearch all answer, 503
    otherwise.
    """
    components = await asyncio.gather(
        check_component("database", resources.db.health_check),
        check_component("redis", resources.cache.health_check),
        check_component("elasticsearch", resources.search.health_check),
    )

    all_healthy = all(c.status == HealthStatus.HEALTHY for c in components)
    overall_status = HealthStatus.HEALTHY if all_healthy else HealthStatus.UNHEALTHY

    return JSONResponse(
        content={
            "status": overall_status.value,
            "components": [c.to_dict() for c in components],
        },
        status_code=200 if all_healthy else 503,
    )
