"""Prometheus metrics for orderflow.

Provides metrics collection and exposure:
- Database metrics (query time per operation)
- Cache metrics (hits, misses, errors)
- Pipeline metrics (orders accepted, worker outcomes, view refreshes)

Usage:
    from orderflow.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.worker_messages_total.labels(outcome="committed").inc()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from orderflow.config import settings

logger = logging.getLogger(__name__)

# Tailored for fast reads and potentially slower background refreshes
DB_BUCKETS = (0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> NoOpMetric:
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def observe(self, value: float) -> None:
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    db_query_duration_seconds: Any = None
    orders_accepted_total: Any = None
    cache_lookups_total: Any = None
    worker_messages_total: Any = None
    view_refresh_total: Any = None

    enabled: bool = True
    _initialized: bool = field(default=False, repr=False)
    _registry: CollectorRegistry | None = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not self.enabled:
            noop = NoOpMetric()
            self.db_query_duration_seconds = noop
            self.orders_accepted_total = noop
            self.cache_lookups_total = noop
            self.worker_messages_total = noop
            self.view_refresh_total = noop
            self._initialized = True
            logger.info("Metrics are disabled")
            return

        self._registry = CollectorRegistry()

        self.db_query_duration_seconds = Histogram(
            "orderflow_db_query_duration_seconds",
            "Duration of database queries in seconds",
            ["operation"],
            buckets=DB_BUCKETS,
            registry=self._registry,
        )
        self.orders_accepted_total = Counter(
            "orderflow_orders_accepted_total",
            "Orders accepted and queued for persistence",
            registry=self._registry,
        )
        self.cache_lookups_total = Counter(
            "orderflow_cache_lookups_total",
            "Write-back cache lookups by result",
            ["result"],
            registry=self._registry,
        )
        self.worker_messages_total = Counter(
            "orderflow_worker_messages_total",
            "Queue deliveries handled by the persistence worker",
            ["outcome"],
            registry=self._registry,
        )
        self.view_refresh_total = Counter(
            "orderflow_view_refresh_total",
            "Aggregate view refreshes by trigger and status",
            ["trigger", "status"],
            registry=self._registry,
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    @contextmanager
    def time_query(self, operation: str) -> Iterator[None]:
        """Observe the wall-clock duration of a database operation."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.db_query_duration_seconds.labels(operation=operation).observe(
                time.perf_counter() - start
            )

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry(enabled=settings.enable_metrics)


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry
