"""Middleware for the orderflow API."""

from orderflow.api.middleware.correlation import CorrelationMiddleware

__all__ = ["CorrelationMiddleware"]
