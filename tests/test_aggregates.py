"""
Tests for AggregateRecalculator.

Tests cover full recomputation from completed, received payments, reuse
of stored conversions, on-the-fly conversion at the received date, and
the plan-level USD snapshot at today's rate.
"""

import pytest
from datetime import date
from decimal import Decimal

from app.data.base import generate_id
from app.data.payments.models import Payment, PaymentAllocation
from app.data.pledges.models import PaymentPlan, Pledge
from app.services.aggregates import AggregateRecalculator
from app.services.errors import NotFoundError


@pytest.fixture
def add_payment(db):
    """Insert a payment row directly, bypassing the write path."""
    async def _add(
        amount: str,
        currency: str = "USD",
        pledge_id=None,
        payment_plan_id=None,
        payment_status: str = "completed",
        received_date=date(2024, 3, 1),
        **converted,
    ) -> Payment:
        payment = Payment(
            id=generate_id("pay"),
            pledge_id=pledge_id,
            payment_plan_id=payment_plan_id,
            amount=Decimal(amount),
            currency=currency,
            payment_date=received_date or date(2024, 3, 1),
            received_date=received_date,
            payment_status=payment_status,
            **converted,
        )
        db.add(payment)
        await db.commit()
        return payment
    return _add


class TestRecalculatePledge:
    """Tests for recalculate_pledge."""

    @pytest.mark.asyncio
    async def test_no_payments_leaves_full_balance(self, db, make_pledge):
        pledge = await make_pledge(original_amount="750", original_amount_usd="750")

        totals = await AggregateRecalculator(db).recalculate_pledge(pledge.id)

        assert totals.total_paid == Decimal("0")
        assert totals.total_paid_usd == Decimal("0")
        assert totals.balance == Decimal("750.00")
        assert totals.balance_usd == Decimal("750.00")

    @pytest.mark.asyncio
    async def test_is_idempotent(self, db, rates, make_pledge, add_payment):
        pledge = await make_pledge(original_amount="1000")
        await add_payment("120", pledge_id=pledge.id)
        await add_payment("80", currency="EUR", pledge_id=pledge.id)
        recalculator = AggregateRecalculator(db)

        first = await recalculator.recalculate_pledge(pledge.id)
        await db.commit()
        second = await recalculator.recalculate_pledge(pledge.id)
        await db.commit()

        assert first == second
        assert second.total_paid == Decimal("220.00")

    @pytest.mark.asyncio
    async def test_converts_missing_amounts_at_received_date(self, db, rates, make_pledge, add_payment):
        """90 EUR after the June rate change is 100 USD; 80 EUR before it is also 100 USD."""
        pledge = await make_pledge(original_amount="1000")
        await add_payment("90", currency="EUR", pledge_id=pledge.id, received_date=date(2024, 7, 1))
        await add_payment("80", currency="EUR", pledge_id=pledge.id, received_date=date(2024, 2, 1))

        totals = await AggregateRecalculator(db).recalculate_pledge(pledge.id)

        assert totals.total_paid == Decimal("200.00")
        assert totals.total_paid_usd == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_stored_conversions_are_reused(self, db, rates, make_pledge, add_payment):
        pledge = await make_pledge(currency="EUR", original_amount="1000")
        await add_payment(
            "100", pledge_id=pledge.id,
            amount_in_pledge_currency=Decimal("85.00"), amount_usd=Decimal("100.00"),
        )

        totals = await AggregateRecalculator(db).recalculate_pledge(pledge.id)

        # Recorded 85.00, not today's 80.00
        assert totals.total_paid == Decimal("85.00")
        assert totals.balance == Decimal("915.00")

    @pytest.mark.asyncio
    async def test_only_completed_and_received_count(self, db, rates, make_pledge, add_payment):
        pledge = await make_pledge(original_amount="1000")
        await add_payment("100", pledge_id=pledge.id)
        await add_payment("200", pledge_id=pledge.id, payment_status="pending")
        await add_payment("300", pledge_id=pledge.id, payment_status="processing")
        await add_payment("400", pledge_id=pledge.id, received_date=None)

        totals = await AggregateRecalculator(db).recalculate_pledge(pledge.id)

        assert totals.total_paid == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_allocations_of_completed_payments(self, db, rates, make_pledge, add_payment):
        pledge = await make_pledge(currency="ILS", original_amount="4000")
        completed = await add_payment("100")
        pending = await add_payment("100", payment_status="pending")

        db.add_all([
            PaymentAllocation(
                payment_id=completed.id, pledge_id=pledge.id,
                allocated_amount=Decimal("50"), currency="USD",
            ),
            PaymentAllocation(
                payment_id=pending.id, pledge_id=pledge.id,
                allocated_amount=Decimal("50"), currency="USD",
            ),
        ])
        await db.commit()

        totals = await AggregateRecalculator(db).recalculate_pledge(pledge.id)

        assert totals.total_paid == Decimal("200.00")
        assert totals.total_paid_usd == Decimal("50.00")
        assert totals.balance == Decimal("3800.00")

    @pytest.mark.asyncio
    async def test_balance_never_negative(self, db, rates, make_pledge, add_payment):
        pledge = await make_pledge(original_amount="100", original_amount_usd="100")
        await add_payment("150", pledge_id=pledge.id)

        totals = await AggregateRecalculator(db).recalculate_pledge(pledge.id)

        assert totals.total_paid == Decimal("150.00")
        assert totals.balance == Decimal("0")
        assert totals.balance_usd == Decimal("0")

    @pytest.mark.asyncio
    async def test_unknown_usd_original_leaves_balance_usd_empty(self, db, rates, make_pledge, add_payment):
        pledge = await make_pledge(original_amount="100")
        await add_payment("10", pledge_id=pledge.id)

        totals = await AggregateRecalculator(db).recalculate_pledge(pledge.id)

        assert totals.balance_usd is None
        stored = await db.get(Pledge, pledge.id, populate_existing=True)
        assert stored.balance_usd is None

    @pytest.mark.asyncio
    async def test_missing_pledge(self, db):
        with pytest.raises(NotFoundError):
            await AggregateRecalculator(db).recalculate_pledge("plg_missing")

    @pytest.mark.asyncio
    async def test_recalculate_pledges_dedupes(self, db, make_pledge):
        p1 = await make_pledge()
        p2 = await make_pledge()

        totals = await AggregateRecalculator(db).recalculate_pledges([p2.id, p1.id, p2.id])

        assert [t.pledge_id for t in totals] == sorted([p1.id, p2.id])


class TestRecalculatePaymentPlan:
    """Tests for recalculate_payment_plan."""

    @pytest.mark.asyncio
    async def test_plan_usd_uses_todays_rate(self, db, rates, make_pledge, make_plan, add_payment):
        """Plan totals are EUR; USD figures use the latest (0.90) rate."""
        pledge = await make_pledge(currency="EUR", original_amount="800")
        plan = await make_plan(pledge, total_planned_amount="800")
        await add_payment(
            "80", currency="EUR", pledge_id=pledge.id, payment_plan_id=plan.id,
            received_date=date(2024, 3, 1),
        )

        totals = await AggregateRecalculator(db).recalculate_payment_plan(plan.id)

        assert totals.installments_paid == 1
        assert totals.total_paid == Decimal("80.00")
        assert totals.remaining_amount == Decimal("720.00")
        assert totals.total_paid_usd == Decimal("88.89")
        assert totals.remaining_amount_usd == Decimal("800.00")

        stored = await db.get(PaymentPlan, plan.id, populate_existing=True)
        assert stored.total_paid_usd == Decimal("88.89")

    @pytest.mark.asyncio
    async def test_plan_total_converted_at_received_date(self, db, rates, make_pledge, make_plan, add_payment):
        """A USD payment into an EUR plan is struck at the payment's received date."""
        pledge = await make_pledge(currency="EUR", original_amount="800")
        plan = await make_plan(pledge, total_planned_amount="800")
        await add_payment("100", payment_plan_id=plan.id, received_date=date(2024, 3, 1))

        totals = await AggregateRecalculator(db).recalculate_payment_plan(plan.id)

        assert totals.total_paid == Decimal("80.00")

    @pytest.mark.asyncio
    async def test_pending_payments_not_counted(self, db, rates, make_pledge, make_plan, add_payment):
        pledge = await make_pledge()
        plan = await make_plan(pledge, total_planned_amount="600")
        await add_payment("200", payment_plan_id=plan.id, payment_status="pending")

        totals = await AggregateRecalculator(db).recalculate_payment_plan(plan.id)

        assert totals.installments_paid == 0
        assert totals.remaining_amount == Decimal("600.00")

    @pytest.mark.asyncio
    async def test_missing_plan(self, db):
        with pytest.raises(NotFoundError):
            await AggregateRecalculator(db).recalculate_payment_plan("plan_missing")
