"""
Payment shape classification and allocation validation.

The request shape (single / split / multi-contact) is decided once, here,
and carried through the write path as a typed value instead of being
re-derived from flags further down.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.data.payments.schemas import AllocationCreate, PaymentCreate
from app.data.pledges.models import Pledge
from app.services.errors import (
    AllocationMismatch,
    AmbiguousPaymentShape,
    PaymentShapeRequired,
    PledgeNotFound,
    ThirdPartyRequired,
    ValidationError,
    call_with_timeout,
)
from app.services.exchange_rates import CurrencyConverter
from app.services.money import to_money


# =============================================================================
# Payment Shapes
# =============================================================================

@dataclass(frozen=True)
class SinglePledgePayment:
    """Payment applied to one pledge."""
    pledge_id: str


@dataclass(frozen=True)
class SplitPayment:
    """One payment distributed across several pledges."""
    allocations: List[AllocationCreate]

    @property
    def is_multi_contact(self) -> bool:
        return False


@dataclass(frozen=True)
class MultiContactPayment(SplitPayment):
    """Split payment whose pledges belong to different contacts; always third-party."""

    @property
    def is_multi_contact(self) -> bool:
        return True


PaymentShape = Union[SinglePledgePayment, SplitPayment, MultiContactPayment]


def classify_payment(request: PaymentCreate) -> PaymentShape:
    """
    Decide the addressing mode of a payment request.

    Raises:
        AmbiguousPaymentShape: both pledge_id and allocations were given
        PaymentShapeRequired: neither was given
        ValidationError: a split flag was set without any allocations
        ThirdPartyRequired: multi-contact payment not marked third-party
    """
    has_allocations = bool(request.allocations)
    has_pledge_id = bool(request.pledge_id)

    if has_allocations and has_pledge_id:
        raise AmbiguousPaymentShape()
    if not has_allocations and not has_pledge_id:
        raise PaymentShapeRequired()

    is_split = request.is_split_payment or request.is_multi_contact_payment or has_allocations

    if not is_split:
        return SinglePledgePayment(pledge_id=request.pledge_id)

    if not has_allocations:
        raise ValidationError(
            "Split payments must have allocations array with at least one allocation",
            {"field": "allocations"},
        )

    if request.is_multi_contact_payment:
        if not request.is_third_party_payment:
            raise ThirdPartyRequired()
        return MultiContactPayment(allocations=list(request.allocations))

    return SplitPayment(allocations=list(request.allocations))


# =============================================================================
# Allocation Validation
# =============================================================================

class AllocationValidator:
    """
    Validates a split payment's allocations against its amount and against
    the pledges they reference.
    """

    def __init__(self, db: AsyncSession, converter: CurrencyConverter):
        self.db = db
        self.converter = converter

    async def load_pledges(self, pledge_ids: List[str]) -> Dict[str, Pledge]:
        """
        Fetch every referenced pledge in one query.

        Raises:
            PledgeNotFound: listing every id that does not exist
        """
        distinct_ids = list(dict.fromkeys(pledge_ids))
        result = await call_with_timeout(
            self.db.execute(select(Pledge).where(Pledge.id.in_(distinct_ids))),
            "pledge lookup",
        )
        pledges = {pledge.id: pledge for pledge in result.scalars().all()}

        missing = [pledge_id for pledge_id in distinct_ids if pledge_id not in pledges]
        if missing:
            raise PledgeNotFound(missing)

        return pledges

    async def total_in_payment_currency(
        self,
        allocations: List[AllocationCreate],
        payment_currency: str,
        rate_date: date,
    ) -> Decimal:
        """
        Sum allocations as they will be stored: each share rounded to cents,
        foreign-currency shares converted first.
        """
        total = Decimal("0")
        for allocation in allocations:
            amount = to_money(allocation.allocated_amount)
            currency = allocation.currency or payment_currency
            if currency == payment_currency:
                total += amount
            else:
                conversion = await self.converter.convert(amount, currency, payment_currency, rate_date)
                total += conversion.converted_amount
        return to_money(total)

    async def validate(
        self,
        amount: Decimal,
        currency: str,
        allocations: List[AllocationCreate],
        rate_date: date,
    ) -> Dict[str, Pledge]:
        """
        Validate allocations and return the referenced pledges by id.

        Raises:
            PledgeNotFound: some pledge ids do not resolve
            AllocationMismatch: allocations do not add up to the payment amount
        """
        pledges = await self.load_pledges([a.pledge_id for a in allocations])

        total_allocated = await self.total_in_payment_currency(allocations, currency, rate_date)
        payment_amount = to_money(amount)
        if abs(total_allocated - payment_amount) > settings.ALLOCATION_TOLERANCE:
            raise AllocationMismatch(total_allocated, payment_amount)

        return pledges
