"""Payment, allocation and tag models."""
from sqlalchemy import Column, String, DateTime, Date, Numeric, Boolean, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base
from app.data.base import generate_id


class Payment(Base):
    """
    Payment - the unit of money movement.

    A single payment points at one pledge through pledge_id. A split payment
    has pledge_id = NULL and carries its per-pledge breakdown in
    PaymentAllocation rows. Rows are immutable apart from payment_status
    and received_date transitions.
    """

    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: generate_id("pay"))

    # Links
    pledge_id = Column(String, ForeignKey("pledges.id", ondelete="SET NULL"), nullable=True, index=True)
    payment_plan_id = Column(String, ForeignKey("payment_plans.id", ondelete="SET NULL"), nullable=True, index=True)
    installment_schedule_id = Column(
        String, ForeignKey("installment_schedules.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Third-party payment
    is_third_party_payment = Column(Boolean, nullable=False, default=False)
    payer_contact_id = Column(String, nullable=True, index=True)

    # Amount in the currency the money actually moved in
    amount = Column(Numeric(precision=15, scale=2), nullable=False)
    currency = Column(String(3), nullable=False)

    # USD conversion (reporting)
    amount_usd = Column(Numeric(precision=15, scale=2), nullable=True)
    exchange_rate = Column(Numeric(precision=12, scale=4), nullable=True)

    # Pledge currency conversion (single payments only)
    amount_in_pledge_currency = Column(Numeric(precision=15, scale=2), nullable=True)
    pledge_currency_exchange_rate = Column(Numeric(precision=12, scale=4), nullable=True)

    # Plan currency conversion
    amount_in_plan_currency = Column(Numeric(precision=15, scale=2), nullable=True)
    plan_currency_exchange_rate = Column(Numeric(precision=12, scale=4), nullable=True)

    # Dates
    payment_date = Column(Date, nullable=False, index=True)
    received_date = Column(Date, nullable=True)
    check_date = Column(Date, nullable=True)

    payment_status = Column(String, nullable=False, default="completed", index=True)
    # Options: "pending", "completed", "failed", "cancelled", "refunded", "processing", "expected"

    # Method / receipt metadata
    account = Column(String, nullable=True)
    payment_method = Column(String, nullable=True)
    method_detail = Column(String, nullable=True)
    reference_number = Column(String, nullable=True)
    check_number = Column(String, nullable=True)
    receipt_number = Column(String, nullable=True)
    receipt_type = Column(String, nullable=True)
    receipt_issued = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    allocations = relationship("PaymentAllocation", back_populates="payment", cascade="all, delete-orphan")
    payment_tags = relationship("PaymentTag", back_populates="payment", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_payments_currency", "currency"),
    )


class PaymentAllocation(Base):
    """Payment Allocation - the share of a split payment attributed to one pledge."""

    __tablename__ = "payment_allocations"

    id = Column(String, primary_key=True, default=lambda: generate_id("alloc"))
    payment_id = Column(String, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    pledge_id = Column(String, ForeignKey("pledges.id", ondelete="CASCADE"), nullable=False, index=True)
    installment_schedule_id = Column(
        String, ForeignKey("installment_schedules.id", ondelete="SET NULL"), nullable=True, index=True
    )
    payer_contact_id = Column(String, nullable=True)

    allocated_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    currency = Column(String(3), nullable=False)
    allocated_amount_usd = Column(Numeric(precision=15, scale=2), nullable=True)
    allocated_amount_in_pledge_currency = Column(Numeric(precision=15, scale=2), nullable=True)

    receipt_number = Column(String, nullable=True)
    receipt_type = Column(String, nullable=True)
    receipt_issued = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    payment = relationship("Payment", back_populates="allocations")

    __table_args__ = (
        UniqueConstraint(
            "payment_id", "pledge_id", "installment_schedule_id", name="uq_payment_allocation"
        ),
    )


class Tag(Base):
    """Tag - a label that may be attached to payments when active and payment-visible."""

    __tablename__ = "tags"

    id = Column(String, primary_key=True, default=lambda: generate_id("tag"))
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    show_on_payment = Column(Boolean, nullable=False, default=True)
    show_on_pledge = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PaymentTag(Base):
    """Association between a payment and a tag."""

    __tablename__ = "payment_tags"

    id = Column(String, primary_key=True, default=lambda: generate_id("ptag"))
    payment_id = Column(String, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    tag_id = Column(String, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    payment = relationship("Payment", back_populates="payment_tags")
    tag = relationship("Tag")

    __table_args__ = (
        UniqueConstraint("payment_id", "tag_id", name="uq_payment_tag"),
    )
