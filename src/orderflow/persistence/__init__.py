"""Persistence layer for orderflow.

This module provides:
- Async PostgreSQL engine and session factory
- SQLAlchemy model for the orders table and the daily sales view
- Repository with idempotent inserts and view refresh
- OrderStore, the timed and bounded facade used by the API and worker
- Alembic migrations
"""

from orderflow.persistence.db import Database, create_engine
from orderflow.persistence.repositories import OrderRepository
from orderflow.persistence.store import OrderStore
from orderflow.persistence.tables import Base, OrderTable, daily_sales_mv

__all__ = [
    # DB
    "Database",
    "create_engine",
    # Tables
    "Base",
    "OrderTable",
    "daily_sales_mv",
    # Repositories
    "OrderRepository",
    "OrderStore",
]
