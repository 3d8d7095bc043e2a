"""Shared FastAPI dependencies for orderflow routers.

Components are created once in the application lifespan and kept on
``app.state``; these dependencies hand them to the routers. Tests replace
them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import Path, Request

from orderflow.api.errors import BadRequestError
from orderflow.core.service import OrderService
from orderflow.jobs.scheduler import ViewRefreshScheduler
from orderflow.persistence.store import OrderStore
from orderflow.runtime import Resources


def get_resources(request: Request) -> Resources:
    return request.app.state.resources


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_store(request: Request) -> OrderStore:
    return request.app.state.resources.store


def get_scheduler(request: Request) -> ViewRefreshScheduler:
    return request.app.state.scheduler


def valid_order_id(
    order_id: Annotated[str, Path(description="Order id (UUID)")],
) -> str:
    """Reject ids that cannot name an order before touching the cache or store.

    Raises:
        BadRequestError: If the id is not a UUID.
    """
    try:
        return str(UUID(order_id))
    except ValueError:
        raise BadRequestError(f"Invalid order id: '{order_id}'")
