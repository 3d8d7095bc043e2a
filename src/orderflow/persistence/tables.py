"""SQLAlchemy ORM models for order persistence.

The orders table is keyed by the id assigned at acceptance time, which is
what makes replayed inserts from the queue idempotent. daily_sales_mv is a
materialized view over it and is described here only for queries.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Date, DateTime, Float, Index, Numeric, Text, column, func, table
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class OrderTable(Base):
    """Orders, the source of truth for every accepted order."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (Index("idx_orders_created_at", created_at),)


daily_sales_mv = table(
    "daily_sales_mv",
    column("sale_date", Date),
    column("total_revenue", Float),
)

__all__ = ["Base", "OrderTable", "daily_sales_mv"]
