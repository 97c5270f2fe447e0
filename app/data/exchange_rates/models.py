"""Exchange rate model."""
from sqlalchemy import Column, String, Date, DateTime, Numeric, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func

from app.database import Base
from app.data.base import generate_id


class ExchangeRate(Base):
    """
    Exchange rate model - one effective-dated rate per currency pair.

    Rates are stored relative to USD (base_currency = "USD"): a row says
    "1 USD buys `rate` units of target_currency from `date` onwards, until a
    later row for the same pair supersedes it". Rows are never updated.
    """

    __tablename__ = "exchange_rates"

    id = Column(String, primary_key=True, default=lambda: generate_id("xrate"))
    base_currency = Column(String(3), nullable=False, default="USD", index=True)
    target_currency = Column(String(3), nullable=False, index=True)
    rate = Column(Numeric(precision=18, scale=8), nullable=False)
    date = Column(Date, nullable=False, index=True)
    source = Column(String, nullable=False, default="manual")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('base_currency', 'target_currency', 'date', name='uq_exchange_rate_currency_date'),
        CheckConstraint('rate > 0', name='ck_exchange_rate_positive'),
    )
