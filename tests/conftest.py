"""Shared test fixtures and configuration for ledger tests."""
import pytest
import pytest_asyncio
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.database import Base
from app.models import (
    ExchangeRate,
    InstallmentSchedule,
    PaymentPlan,
    Pledge,
    Tag,
)

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


# Rates used across the suite (units per 1 USD)
#   EUR 0.80 from 2024-01-01, 0.90 from 2024-06-01
#   ILS 4.00 from 2024-01-01
#   GBP 0.50 from 2024-03-01
SEED_RATES = [
    ("EUR", Decimal("0.80"), date(2024, 1, 1)),
    ("EUR", Decimal("0.90"), date(2024, 6, 1)),
    ("ILS", Decimal("4.00"), date(2024, 1, 1)),
    ("GBP", Decimal("0.50"), date(2024, 3, 1)),
]


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Temp-file SQLite database with the ledger schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")

    # pysqlite needs explicit BEGIN for SAVEPOINT to behave
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Database session for one test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def rates(db):
    """Seed the standard exchange rates."""
    rows = [
        ExchangeRate(target_currency=currency, rate=rate, date=effective_date)
        for currency, rate, effective_date in SEED_RATES
    ]
    db.add_all(rows)
    await db.commit()
    return rows


@pytest.fixture
def make_pledge(db):
    """Factory for committed pledges."""
    async def _make(
        currency: str = "USD",
        original_amount: str = "1000",
        contact_id: str = "contact_1",
        original_amount_usd: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Pledge:
        pledge = Pledge(
            contact_id=contact_id,
            currency=currency,
            description=description,
            original_amount=Decimal(original_amount),
            original_amount_usd=Decimal(original_amount_usd) if original_amount_usd else None,
            total_paid=Decimal("0"),
            total_paid_usd=Decimal("0"),
            balance=Decimal(original_amount),
            balance_usd=Decimal(original_amount_usd) if original_amount_usd else None,
        )
        db.add(pledge)
        await db.commit()
        return pledge
    return _make


@pytest.fixture
def make_plan(db):
    """Factory for committed payment plans with pending installments."""
    async def _make(
        pledge: Pledge,
        currency: Optional[str] = None,
        total_planned_amount: str = "1000",
        installments: int = 0,
    ) -> PaymentPlan:
        plan = PaymentPlan(
            pledge_id=pledge.id,
            currency=currency or pledge.currency,
            total_planned_amount=Decimal(total_planned_amount),
            remaining_amount=Decimal(total_planned_amount),
            number_of_installments=installments or None,
        )
        db.add(plan)
        await db.flush()

        for i in range(installments):
            db.add(InstallmentSchedule(
                payment_plan_id=plan.id,
                installment_date=date(2024, i + 1, 1),
                installment_amount=Decimal(total_planned_amount) / installments,
                currency=plan.currency,
            ))

        await db.commit()
        return plan
    return _make


@pytest.fixture
def make_tag(db):
    """Factory for committed tags."""
    async def _make(name: str = "Gala", is_active: bool = True, show_on_payment: bool = True) -> Tag:
        tag = Tag(name=name, is_active=is_active, show_on_payment=show_on_payment)
        db.add(tag)
        await db.commit()
        return tag
    return _make
