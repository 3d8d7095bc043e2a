"""API routers for orderflow."""

from orderflow.api.routers import admin, dashboard, health, metrics, orders, search

__all__ = ["admin", "dashboard", "health", "metrics", "orders", "search"]
