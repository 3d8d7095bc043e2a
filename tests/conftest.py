"""Global pytest configuration and fixtures."""

from __future__ import annotations

import os
from datetime import UTC, datetime

import pytest

from orderflow.core.model import Order
from orderflow.observability.metrics import MetricsRegistry


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: requires running Postgres, Redis and Elasticsearch"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless ORDERFLOW_INTEGRATION=1."""
    if os.environ.get("ORDERFLOW_INTEGRATION") == "1":
        return
    skip = pytest.mark.skip(reason="set ORDERFLOW_INTEGRATION=1 to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def order() -> Order:
    """A fixed accepted order."""
    return Order(
        id="5f0c6a8e-3b5d-4c1e-9a52-0f6b2f1e7d11",
        product_name="Laptop",
        amount=1299.99,
        created_at=datetime(2026, 3, 14, 9, 30, tzinfo=UTC),
    )


@pytest.fixture
def metrics() -> MetricsRegistry:
    """Metrics with no-op collectors, isolated from the global registry."""
    registry = MetricsRegistry(enabled=False)
    registry.initialize()
    return registry
