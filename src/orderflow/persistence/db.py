"""Async database engine and session factory.

Provides PostgreSQL async connectivity using SQLAlchemy 2.0 asyncio
extension with asyncpg driver. A Database is constructed once per process
and passed to the components that need it.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from orderflow.config import Settings

# The aggregate view is not an ORM table; it is created next to the schema.
DAILY_SALES_VIEW_DDL = (
    """
    CREATE MATERIALIZED VIEW IF NOT EXISTS daily_sales_mv AS
    SELECT (created_at AT TIME ZONE 'UTC')::date AS sale_date,
           SUM(amount) AS total_revenue
    FROM orders
    GROUP BY 1
    """,
    # REFRESH ... CONCURRENTLY requires a unique index on the view
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_daily_sales_mv_sale_date
    ON daily_sales_mv (sale_date)
    """,
)


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async database engine with pool settings from config."""
    return create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,  # Verify connection health
    )


class Database:
    """Owns the engine and session factory for one process."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls(create_engine(settings))

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Provide a session for read-only work."""
        session = self.session_factory()
        try:
            yield session
        finally:
            await session.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Provide a transactional scope around a series of operations.

        Commits when the block exits normally; any exception rolls back
        everything done in the block and is re-raised.

        Usage:
            async with db.transaction() as session:
                await session.execute(...)
        """
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def init_schema(self) -> None:
        """Create the orders table and the daily sales view if missing.

        For production, use Alembic migrations instead.
        """
        from orderflow.persistence.tables import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            for statement in DAILY_SALES_VIEW_DDL:
                await conn.execute(text(statement))

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
