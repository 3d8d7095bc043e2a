"""Initial schema for orderflow.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Creates:
- orders: one row per accepted order, keyed by the id assigned at acceptance
- daily_sales_mv: revenue per UTC day, refreshed concurrently
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("product_name", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_orders_created_at", "orders", ["created_at"])

    op.execute(
        """
        CREATE MATERIALIZED VIEW daily_sales_mv AS
        SELECT (created_at AT TIME ZONE 'UTC')::date AS sale_date,
               SUM(amount) AS total_revenue
        FROM orders
        GROUP BY 1
        """
    )
    # Required by REFRESH MATERIALIZED VIEW CONCURRENTLY
    op.execute("CREATE UNIQUE INDEX idx_daily_sales_mv_sale_date ON daily_sales_mv (sale_date)")


def downgrade() -> None:
    op.execute("DROP MATERIALIZED VIEW IF EXISTS daily_sales_mv")
    op.drop_index("idx_orders_created_at", table_name="orders")
    op.drop_table("orders")
