"""In-memory stand-ins for the database used by store tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from uuid import uuid4

import pytest

from orderflow.core.model import DailySale, Order


class FakeSession:
    """Stages writes until the enclosing transaction commits."""

    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.staged: dict[str, Order] = {}


class FakeDatabase:
    """Committed rows plus commit/rollback counters."""

    def __init__(self) -> None:
        self.rows: dict[str, Order] = {}
        self.commits = 0
        self.rollbacks = 0
        self.refreshes = 0

    @asynccontextmanager
    async def session(self) -> AsyncIterator[FakeSession]:
        yield FakeSession(self)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[FakeSession]:
        session = FakeSession(self)
        try:
            yield session
        except BaseException:
            self.rollbacks += 1
            raise
        self.rows.update(session.staged)
        self.commits += 1

    async def health_check(self) -> bool:
        return True


class FakeRepository:
    """OrderRepository semantics over FakeDatabase."""

    def __init__(self, session: FakeSession) -> None:
        self.session = session

    async def insert_if_absent(self, order: Order) -> bool:
        if order.id in self.session.db.rows or order.id in self.session.staged:
            return False
        self.session.staged[order.id] = order
        return True

    async def insert(self, product_name: str, amount: float) -> str:
        order = Order(
            id=str(uuid4()),
            product_name=product_name,
            amount=amount,
            created_at=datetime.now(UTC),
        )
        self.session.staged[order.id] = order
        return order.id

    async def get(self, order_id: str) -> Order | None:
        return self.session.db.rows.get(order_id)

    async def daily_sales(self, limit: int = 30) -> list[DailySale]:
        totals: dict[str, float] = {}
        for order in self.session.db.rows.values():
            day = order.created_at.date().isoformat()
            totals[day] = totals.get(day, 0.0) + order.amount
        return [
            DailySale(date=day, total_revenue=total)
            for day, total in sorted(totals.items(), reverse=True)[:limit]
        ]

    async def refresh_daily_sales(self) -> None:
        self.session.db.refreshes += 1


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def fake_repository() -> type[FakeRepository]:
    return FakeRepository
