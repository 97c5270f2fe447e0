"""
Pydantic schemas for payment creation and reads.

A payment addresses pledges in exactly one of two ways:
- pledge_id: a regular payment against one pledge
- allocations: a split payment distributed across several pledges
"""
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, AliasChoices, ConfigDict, field_validator
from decimal import Decimal
from datetime import date, datetime


CurrencyCode = Literal["USD", "ILS", "EUR", "JPY", "GBP", "AUD", "CAD", "ZAR"]
PaymentStatus = Literal[
    "pending", "completed", "failed", "cancelled", "refunded", "processing", "expected"
]
ReceiptType = Literal["invoice", "receipt", "confirmation", "other"]


# ============================================
# Request Schemas
# ============================================

class AllocationCreate(BaseModel):
    """One pledge's share of a split payment."""

    pledge_id: str = Field(..., min_length=1, description="Pledge receiving this share")
    allocated_amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        validation_alias=AliasChoices("allocated_amount", "amount"),
        description="Amount allocated, in the allocation currency",
    )
    currency: Optional[CurrencyCode] = Field(
        None, description="Allocation currency (defaults to the payment currency)"
    )
    installment_schedule_id: Optional[str] = Field(None, description="Installment this share pays")

    notes: Optional[str] = None
    receipt_number: Optional[str] = None
    receipt_type: Optional[ReceiptType] = None
    receipt_issued: bool = False


class PaymentCreate(BaseModel):
    """Schema for creating a payment (single or split)."""

    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Payment amount in `currency`")
    currency: CurrencyCode = Field(..., description="Currency the money moved in")

    payment_date: date = Field(..., description="Date the payment was made")
    received_date: Optional[date] = Field(
        None, description="Date funds were received; also the exchange rate date"
    )
    check_date: Optional[date] = None

    payment_status: PaymentStatus = Field(..., description="Payment status")

    # Addressing: exactly one of pledge_id / allocations
    pledge_id: Optional[str] = Field(None, description="Pledge for a regular payment")
    allocations: Optional[List[AllocationCreate]] = Field(
        None, description="Per-pledge breakdown for a split payment"
    )
    is_split_payment: bool = False
    is_multi_contact_payment: bool = False

    # Plan linkage
    payment_plan_id: Optional[str] = None
    installment_schedule_id: Optional[str] = None

    # Third-party payment
    is_third_party_payment: bool = False
    payer_contact_id: Optional[str] = None

    # Method / receipt metadata
    account: Optional[str] = None
    payment_method: Optional[str] = None
    method_detail: Optional[str] = None
    reference_number: Optional[str] = None
    check_number: Optional[str] = None
    receipt_number: Optional[str] = None
    receipt_type: Optional[ReceiptType] = None
    receipt_issued: bool = False
    notes: Optional[str] = None

    tag_ids: List[str] = Field(default_factory=list, description="Tags to attach")

    @field_validator("pledge_id", "payment_plan_id", "installment_schedule_id", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if value in ("", "0", 0):
            return None
        return value


class PaymentStatusUpdate(BaseModel):
    """Schema for moving a payment to a new status."""

    payment_status: PaymentStatus
    received_date: Optional[date] = Field(
        None, description="Set or correct the received date together with the status"
    )


# ============================================
# Response Schemas
# ============================================

class AllocationResponse(BaseModel):
    """Schema for allocation response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    payment_id: str
    pledge_id: str
    installment_schedule_id: Optional[str]
    payer_contact_id: Optional[str]
    allocated_amount: Decimal
    currency: str
    allocated_amount_usd: Optional[Decimal]
    allocated_amount_in_pledge_currency: Optional[Decimal]
    receipt_number: Optional[str]
    receipt_type: Optional[str]
    receipt_issued: bool
    notes: Optional[str]

    # Display
    pledge_currency: Optional[str] = None
    pledge_description: Optional[str] = None


class TagSummary(BaseModel):
    id: str
    name: str


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    pledge_id: Optional[str]
    payment_plan_id: Optional[str]
    installment_schedule_id: Optional[str]
    is_third_party_payment: bool
    payer_contact_id: Optional[str]

    amount: Decimal
    currency: str
    amount_usd: Optional[Decimal]
    exchange_rate: Optional[Decimal]
    amount_in_pledge_currency: Optional[Decimal]
    pledge_currency_exchange_rate: Optional[Decimal]
    amount_in_plan_currency: Optional[Decimal]
    plan_currency_exchange_rate: Optional[Decimal]

    payment_date: date
    received_date: Optional[date]
    check_date: Optional[date]
    payment_status: str

    account: Optional[str]
    payment_method: Optional[str]
    method_detail: Optional[str]
    reference_number: Optional[str]
    check_number: Optional[str]
    receipt_number: Optional[str]
    receipt_type: Optional[str]
    receipt_issued: bool
    notes: Optional[str]

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentDetail(PaymentResponse):
    """Payment with allocations, tags and multi-currency display fields."""

    is_split_payment: bool = False
    allocation_count: int = 0
    allocations: List[AllocationResponse] = []
    tag_ids: List[str] = []
    tags: List[TagSummary] = []

    pledge_currency: Optional[str] = None
    pledge_description: Optional[str] = None
    pledge_contact_id: Optional[str] = None
    payment_plan_currency: Optional[str] = None


class PaymentCreateResponse(BaseModel):
    """Response for a created payment."""

    message: str
    payment: PaymentDetail


class ConversionLogResponse(BaseModel):
    """Schema for one conversion log row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    payment_id: Optional[str]
    from_currency: str
    to_currency: str
    from_amount: Decimal
    to_amount: Decimal
    exchange_rate: Decimal
    conversion_date: date
    conversion_type: str
    created_at: Optional[datetime] = None
