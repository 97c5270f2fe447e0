"""Pledge, payment plan and installment schedule models."""
from sqlalchemy import Column, String, DateTime, Date, Numeric, Boolean, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base
from app.data.base import generate_id


class Pledge(Base):
    """
    Pledge - a donor's committed amount in a given currency.

    total_paid / total_paid_usd / balance / balance_usd are derived fields.
    They are only ever written by the aggregate recalculator.
    """

    __tablename__ = "pledges"

    id = Column(String, primary_key=True, default=lambda: generate_id("plg"))
    contact_id = Column(String, nullable=False, index=True)

    pledge_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)

    currency = Column(String(3), nullable=False, default="USD")
    original_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    original_amount_usd = Column(Numeric(precision=15, scale=2), nullable=True)
    exchange_rate = Column(Numeric(precision=12, scale=4), nullable=True)

    # Derived aggregates
    total_paid = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    total_paid_usd = Column(Numeric(precision=15, scale=2), nullable=True, default=0)
    balance = Column(Numeric(precision=15, scale=2), nullable=False)
    balance_usd = Column(Numeric(precision=15, scale=2), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    payment_plans = relationship("PaymentPlan", back_populates="pledge", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_pledges_currency", "currency"),
    )


class PaymentPlan(Base):
    """Payment Plan - a scheduled series of installments against a pledge."""

    __tablename__ = "payment_plans"

    id = Column(String, primary_key=True, default=lambda: generate_id("plan"))
    pledge_id = Column(String, ForeignKey("pledges.id", ondelete="CASCADE"), nullable=False, index=True)

    plan_name = Column(String, nullable=True)
    frequency = Column(String, nullable=False, default="monthly")
    # Options: "weekly", "monthly", "quarterly", "biannual", "annual", "one_time", "custom"

    currency = Column(String(3), nullable=False)
    total_planned_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    installment_amount = Column(Numeric(precision=15, scale=2), nullable=True)
    number_of_installments = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=True)

    # Derived aggregates
    installments_paid = Column(Integer, nullable=False, default=0)
    total_paid = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    total_paid_usd = Column(Numeric(precision=15, scale=2), nullable=True)
    remaining_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    remaining_amount_usd = Column(Numeric(precision=15, scale=2), nullable=True)

    plan_status = Column(String, nullable=False, default="active")
    # Options: "active", "completed", "cancelled", "paused", "overdue"

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    pledge = relationship("Pledge", back_populates="payment_plans")
    installments = relationship("InstallmentSchedule", back_populates="payment_plan", cascade="all, delete-orphan")


class InstallmentSchedule(Base):
    """
    Installment Schedule - one expected installment of a payment plan.

    Status only moves as a consequence of payment status changes.
    """

    __tablename__ = "installment_schedules"

    id = Column(String, primary_key=True, default=lambda: generate_id("inst"))
    payment_plan_id = Column(String, ForeignKey("payment_plans.id", ondelete="CASCADE"), nullable=False, index=True)

    installment_date = Column(Date, nullable=True, index=True)
    installment_amount = Column(Numeric(precision=15, scale=2), nullable=True)
    currency = Column(String(3), nullable=True)

    status = Column(String, nullable=False, default="pending")
    # Options: "pending", "paid", "overdue", "cancelled"
    paid_date = Column(Date, nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    payment_plan = relationship("PaymentPlan", back_populates="installments")

    __table_args__ = (
        Index("ix_installment_schedules_status", "status"),
    )
