"""Repository for order persistence.

Statement-level operations bound to a single session. Timeouts, metrics and
transaction boundaries are applied one level up by OrderStore.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import insert, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.model import DailySale, Order
from orderflow.persistence.tables import OrderTable, daily_sales_mv


class OrderRepository:
    """Repository for order rows and the daily sales view."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert_if_absent(self, order: Order) -> bool:
        """Insert an order by its pre-assigned id.

        ON CONFLICT DO NOTHING makes replays safe: redelivering the same
        message does not create a duplicate row or raise.

        Returns:
            True if a row was written, False if the id already existed.
        """
        stmt = (
            pg_insert(OrderTable)
            .values(
                id=order.id,
                product_name=order.product_name,
                amount=order.amount,
                created_at=order.created_at,
            )
            .on_conflict_do_nothing(index_elements=[OrderTable.id])
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def insert(self, product_name: str, amount: float) -> str:
        """Insert a new order with a fresh id, returning the id."""
        order_id = str(uuid4())
        await self.session.execute(
            insert(OrderTable).values(
                id=order_id,
                product_name=product_name,
                amount=amount,
                created_at=datetime.now(timezone.utc),
            )
        )
        return order_id

    async def get(self, order_id: str) -> Order | None:
        """Fetch a single order by id."""
        stmt = select(
            OrderTable.id,
            OrderTable.product_name,
            OrderTable.amount,
            OrderTable.created_at,
        ).where(OrderTable.id == order_id)
        result = await self.session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        return Order(
            id=str(row.id),
            product_name=row.product_name,
            amount=float(row.amount),
            created_at=row.created_at,
        )

    async def daily_sales(self, limit: int = 30) -> list[DailySale]:
        """Read the most recent rows of the daily sales view."""
        stmt = (
            select(daily_sales_mv.c.sale_date, daily_sales_mv.c.total_revenue)
            .order_by(daily_sales_mv.c.sale_date.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [
            DailySale(date=row.sale_date.isoformat(), total_revenue=float(row.total_revenue))
            for row in result
        ]

    async def refresh_daily_sales(self) -> None:
        """Recompute the daily sales view without blocking its readers.

        CONCURRENTLY keeps the previous contents readable until the new ones
        are swapped in; it relies on the unique index on sale_date.
        """
        await self.session.execute(text("REFRESH MATERIALIZED VIEW CONCURRENTLY daily_sales_mv"))
