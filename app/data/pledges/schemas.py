"""Pydantic schemas for pledges, payment plans and their recomputed totals."""
from typing import Optional
from pydantic import BaseModel, ConfigDict
from decimal import Decimal
from datetime import date, datetime


class PledgeResponse(BaseModel):
    """Schema for pledge response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    contact_id: str
    pledge_date: Optional[date]
    description: Optional[str]
    currency: str
    original_amount: Decimal
    original_amount_usd: Optional[Decimal]
    exchange_rate: Optional[Decimal]
    total_paid: Decimal
    total_paid_usd: Optional[Decimal]
    balance: Decimal
    balance_usd: Optional[Decimal]
    is_active: bool
    notes: Optional[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PledgeTotalsResponse(BaseModel):
    """Recomputed pledge aggregates."""

    model_config = ConfigDict(from_attributes=True)

    pledge_id: str
    total_paid: Decimal
    total_paid_usd: Decimal
    balance: Decimal
    balance_usd: Optional[Decimal]


class PaymentPlanTotalsResponse(BaseModel):
    """Recomputed payment plan aggregates."""

    model_config = ConfigDict(from_attributes=True)

    payment_plan_id: str
    installments_paid: int
    total_paid: Decimal
    total_paid_usd: Decimal
    remaining_amount: Decimal
    remaining_amount_usd: Decimal
