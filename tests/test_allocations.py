"""
Tests for payment shape classification and allocation validation.
"""

import pytest
from datetime import date
from decimal import Decimal

from pydantic import ValidationError as SchemaValidationError

from app.data.payments.schemas import AllocationCreate, PaymentCreate
from app.services.allocations import (
    AllocationValidator,
    MultiContactPayment,
    SinglePledgePayment,
    SplitPayment,
    classify_payment,
)
from app.services.errors import (
    AllocationMismatch,
    AmbiguousPaymentShape,
    PaymentShapeRequired,
    PledgeNotFound,
    ThirdPartyRequired,
    ValidationError,
)
from app.services.exchange_rates import CurrencyConverter


def build_request(**overrides) -> PaymentCreate:
    data = {
        "amount": "100",
        "currency": "USD",
        "payment_date": "2024-03-01",
        "received_date": "2024-03-01",
        "payment_status": "completed",
    }
    data.update(overrides)
    return PaymentCreate(**data)


# =============================================================================
# classify_payment
# =============================================================================

class TestClassifyPayment:
    """Tests for classify_payment."""

    def test_single_pledge(self):
        shape = classify_payment(build_request(pledge_id="plg_1"))

        assert shape == SinglePledgePayment(pledge_id="plg_1")

    def test_allocations_without_flag_is_split(self):
        """Allocations alone are enough to make a payment split."""
        shape = classify_payment(build_request(
            allocations=[{"pledge_id": "plg_1", "allocated_amount": "100"}],
        ))

        assert isinstance(shape, SplitPayment)
        assert not shape.is_multi_contact
        assert shape.allocations[0].allocated_amount == Decimal("100")

    def test_multi_contact(self):
        shape = classify_payment(build_request(
            is_multi_contact_payment=True,
            is_third_party_payment=True,
            payer_contact_id="contact_9",
            allocations=[
                {"pledge_id": "plg_1", "allocated_amount": "50"},
                {"pledge_id": "plg_2", "allocated_amount": "50"},
            ],
        ))

        assert isinstance(shape, MultiContactPayment)
        assert shape.is_multi_contact

    def test_multi_contact_requires_third_party(self):
        with pytest.raises(ThirdPartyRequired):
            classify_payment(build_request(
                is_multi_contact_payment=True,
                allocations=[{"pledge_id": "plg_1", "allocated_amount": "100"}],
            ))

    def test_neither_shape_rejected(self):
        with pytest.raises(PaymentShapeRequired) as exc_info:
            classify_payment(build_request())

        assert exc_info.value.status_code == 400

    def test_split_flag_with_pledge_id_only(self):
        with pytest.raises(ValidationError):
            classify_payment(build_request(pledge_id="plg_1", is_split_payment=True))

    def test_both_shapes_rejected(self):
        with pytest.raises(AmbiguousPaymentShape):
            classify_payment(build_request(
                pledge_id="plg_1",
                allocations=[{"pledge_id": "plg_2", "allocated_amount": "100"}],
            ))

    def test_empty_allocations_with_pledge_id_is_single(self):
        shape = classify_payment(build_request(pledge_id="plg_1", allocations=[]))

        assert isinstance(shape, SinglePledgePayment)


class TestPaymentCreateSchema:
    """Edge-of-system request validation."""

    def test_allocation_accepts_amount_alias(self):
        allocation = AllocationCreate(pledge_id="plg_1", amount="12.50")

        assert allocation.allocated_amount == Decimal("12.50")

    def test_blank_ids_become_none(self):
        request = build_request(pledge_id="plg_1", payment_plan_id="", installment_schedule_id="0")

        assert request.payment_plan_id is None
        assert request.installment_schedule_id is None

    @pytest.mark.parametrize("field,value", [
        ("amount", "0"), ("amount", "-5"), ("amount", "0.004"), ("amount", "10.005"), ("currency", "XYZ"),
    ])
    def test_rejects_invalid_fields(self, field, value):
        with pytest.raises(SchemaValidationError):
            build_request(pledge_id="plg_1", **{field: value})

    def test_rejects_sub_cent_allocation(self):
        with pytest.raises(SchemaValidationError):
            AllocationCreate(pledge_id="plg_1", allocated_amount="33.335")


# =============================================================================
# AllocationValidator
# =============================================================================

class TestAllocationValidator:
    """Tests for AllocationValidator."""

    @pytest.mark.asyncio
    async def test_returns_pledges_by_id(self, db, rates, make_pledge):
        p1 = await make_pledge()
        p2 = await make_pledge(currency="EUR", contact_id="contact_2")
        validator = AllocationValidator(db, CurrencyConverter(db))

        pledges = await validator.validate(
            Decimal("100"), "USD",
            [
                AllocationCreate(pledge_id=p1.id, allocated_amount="60"),
                AllocationCreate(pledge_id=p2.id, allocated_amount="40"),
            ],
            date(2024, 3, 1),
        )

        assert set(pledges) == {p1.id, p2.id}

    @pytest.mark.asyncio
    async def test_lists_every_missing_pledge(self, db, make_pledge):
        p1 = await make_pledge()
        validator = AllocationValidator(db, CurrencyConverter(db))

        with pytest.raises(PledgeNotFound) as exc_info:
            await validator.load_pledges([p1.id, "plg_missing_a", "plg_missing_b", "plg_missing_a"])

        assert exc_info.value.missing_ids == ["plg_missing_a", "plg_missing_b"]
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_duplicate_pledges_allowed(self, db, make_pledge):
        p1 = await make_pledge()
        validator = AllocationValidator(db, CurrencyConverter(db))

        pledges = await validator.load_pledges([p1.id, p1.id])

        assert list(pledges) == [p1.id]

    @pytest.mark.asyncio
    async def test_mismatch_reports_totals(self, db, make_pledge):
        p1 = await make_pledge()
        p2 = await make_pledge()
        validator = AllocationValidator(db, CurrencyConverter(db))

        with pytest.raises(AllocationMismatch) as exc_info:
            await validator.validate(
                Decimal("100"), "USD",
                [
                    AllocationCreate(pledge_id=p1.id, allocated_amount="60"),
                    AllocationCreate(pledge_id=p2.id, allocated_amount="30"),
                ],
                date(2024, 3, 1),
            )

        error = exc_info.value
        assert error.total_allocated == Decimal("90.00")
        assert error.payment_amount == Decimal("100.00")
        assert error.difference == Decimal("10.00")
        assert error.details["difference"] == "10.00"

    @pytest.mark.asyncio
    async def test_within_tolerance_passes(self, db, make_pledge):
        p1 = await make_pledge()
        p2 = await make_pledge()
        validator = AllocationValidator(db, CurrencyConverter(db))

        pledges = await validator.validate(
            Decimal("100"), "USD",
            [
                AllocationCreate(pledge_id=p1.id, allocated_amount="33.33"),
                AllocationCreate(pledge_id=p2.id, allocated_amount="66.66"),
            ],
            date(2024, 3, 1),
        )

        assert len(pledges) == 2

    @pytest.mark.asyncio
    async def test_foreign_currency_allocations_converted_before_sum(self, db, rates, make_pledge):
        """60 USD + 32 EUR (= 40 USD at 0.80) matches a 100 USD payment."""
        p1 = await make_pledge()
        p2 = await make_pledge(currency="EUR")
        validator = AllocationValidator(db, CurrencyConverter(db))

        total = await validator.total_in_payment_currency(
            [
                AllocationCreate(pledge_id=p1.id, allocated_amount="60"),
                AllocationCreate(pledge_id=p2.id, allocated_amount="32", currency="EUR"),
            ],
            "USD",
            date(2024, 3, 1),
        )

        assert total == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_shares_rounded_before_sum(self, db, make_pledge):
        """Three shares of 33.335 are stored as 33.34 each, 0.02 over a 100.00 payment."""
        pledges = [await make_pledge() for _ in range(3)]
        validator = AllocationValidator(db, CurrencyConverter(db))
        allocations = [
            AllocationCreate.model_construct(
                pledge_id=pledge.id, allocated_amount=Decimal("33.335"), currency=None,
            )
            for pledge in pledges
        ]

        with pytest.raises(AllocationMismatch) as exc_info:
            await validator.validate(Decimal("100.00"), "USD", allocations, date(2024, 3, 1))

        assert exc_info.value.total_allocated == Decimal("100.02")
        assert exc_info.value.difference == Decimal("0.02")
