"""
Currency conversion log model.

Append-only audit trail of every conversion struck for a payment, kept
verbatim for reconciliation. Rows are never updated or deleted by the
application.
"""
from sqlalchemy import Column, String, Date, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.sql import func

from app.database import Base
from app.data.base import generate_id


class CurrencyConversionLog(Base):
    """One conversion applied to a payment amount."""

    __tablename__ = "currency_conversion_logs"

    id = Column(String, primary_key=True, default=lambda: generate_id("conv"))

    payment_id = Column(String, ForeignKey("payments.id", ondelete="CASCADE"), nullable=True, index=True)

    from_currency = Column(String(3), nullable=False)
    to_currency = Column(String(3), nullable=False)
    from_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    to_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    exchange_rate = Column(Numeric(precision=12, scale=4), nullable=False)

    # Rate date the conversion was struck at
    conversion_date = Column(Date, nullable=False)

    conversion_type = Column(String, nullable=False)
    # Options:
    # - "usd_reporting": Payment or allocation amount in USD
    # - "pledge": Amount in the target pledge's currency
    # - "plan": Amount in the payment plan's currency
    # - "general": Ad-hoc conversion

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_currency_conversion_logs_date", "conversion_date"),
        Index("ix_currency_conversion_logs_type", "conversion_type"),
    )

    def __repr__(self):
        return (
            f"<CurrencyConversionLog {self.id}: "
            f"{self.from_amount} {self.from_currency} -> {self.to_amount} {self.to_currency} "
            f"({self.conversion_type}) on {self.conversion_date}>"
        )
