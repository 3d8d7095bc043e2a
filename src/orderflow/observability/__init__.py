"""Observability module for orderflow.

Provides metrics and structured logging:
- Prometheus metrics
- JSON structured logging with correlation and order IDs
"""

from orderflow.observability.logging import (
    LogContext,
    configure_logging,
    correlation_id_var,
    get_logger,
    order_id_var,
    request_id_var,
)
from orderflow.observability.metrics import (
    MetricsRegistry,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "LogContext",
    "request_id_var",
    "correlation_id_var",
    "order_id_var",
    # Metrics
    "MetricsRegistry",
    "metrics_registry",
    "get_metrics",
]
