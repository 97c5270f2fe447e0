"""
Aggregate Recalculator - derived totals on pledges and payment plans.

Pledge.total_paid / balance (+ USD variants) and PaymentPlan.total_paid /
remaining_amount / installments_paid are a materialized view over the set of
completed, received payments. They are always recomputed in full, never
patched incrementally, and the pledge / plan row is locked (SELECT ... FOR
UPDATE) for the duration of the read-modify-write so concurrent payment
creations against the same pledge serialize instead of losing updates.

Rate dates:
    Pledge totals are struck per payment at that payment's received_date.
    Plan USD totals are struck at today's rate (a live snapshot), while the
    plan-currency total itself is struck per payment at received_date.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.data.payments.models import Payment, PaymentAllocation
from app.data.pledges.models import Pledge, PaymentPlan
from app.services.errors import NotFoundError, call_with_timeout
from app.services.exchange_rates import CurrencyConverter
from app.services.money import ZERO, to_money


logger = logging.getLogger(__name__)

COUNTED_STATUS = "completed"


@dataclass
class PledgeTotals:
    """Recomputed pledge aggregates."""
    pledge_id: str
    total_paid: Decimal
    total_paid_usd: Decimal
    balance: Decimal
    balance_usd: Optional[Decimal]


@dataclass
class PaymentPlanTotals:
    """Recomputed payment plan aggregates."""
    payment_plan_id: str
    installments_paid: int
    total_paid: Decimal
    total_paid_usd: Decimal
    remaining_amount: Decimal
    remaining_amount_usd: Decimal


class AggregateRecalculator:
    """
    Full-recompute of pledge and payment plan totals.

    Methods flush but never commit: the caller owns the transaction, so the
    row lock taken here is held until the caller's commit.
    """

    def __init__(self, db: AsyncSession, converter: Optional[CurrencyConverter] = None):
        self.db = db
        self.converter = converter or CurrencyConverter(db)

    # ==========================================================================
    # Pledges
    # ==========================================================================

    async def recalculate_pledge(self, pledge_id: str) -> PledgeTotals:
        """
        Recompute and persist one pledge's totals.

        Raises:
            NotFoundError: if the pledge does not exist
        """
        pledge = await self._lock(Pledge, pledge_id)
        if pledge is None:
            raise NotFoundError(f"Pledge not found: {pledge_id}", {"pledge_id": pledge_id})

        payments = await self._completed_payments(Payment.pledge_id == pledge_id)

        allocation_rows = await call_with_timeout(
            self.db.execute(
                select(PaymentAllocation, Payment.received_date)
                .join(Payment, PaymentAllocation.payment_id == Payment.id)
                .where(
                    PaymentAllocation.pledge_id == pledge_id,
                    Payment.payment_status == COUNTED_STATUS,
                    Payment.received_date.is_not(None),
                )
            ),
            "pledge allocation lookup",
        )

        total_paid = Decimal("0")
        total_paid_usd = Decimal("0")

        # Direct payments
        for p in payments:
            total_paid += await self._stored_or_converted(
                p.amount_in_pledge_currency, p.amount, p.currency, pledge.currency,
                p.received_date, "pledge_total_update",
            )
            total_paid_usd += await self._stored_or_converted(
                p.amount_usd, p.amount, p.currency, "USD",
                p.received_date, "usd_reporting",
            )

        # Split payment allocations
        for allocation, received_date in allocation_rows.all():
            total_paid += await self._stored_or_converted(
                allocation.allocated_amount_in_pledge_currency, allocation.allocated_amount,
                allocation.currency, pledge.currency, received_date, "pledge_total_update",
            )
            total_paid_usd += await self._stored_or_converted(
                allocation.allocated_amount_usd, allocation.allocated_amount,
                allocation.currency, "USD", received_date, "usd_reporting",
            )

        total_paid = to_money(total_paid)
        total_paid_usd = to_money(total_paid_usd)
        balance = to_money(max(ZERO, Decimal(pledge.original_amount) - total_paid))

        balance_usd = None
        if pledge.original_amount_usd is not None:
            balance_usd = to_money(max(ZERO, Decimal(pledge.original_amount_usd) - total_paid_usd))

        pledge.total_paid = total_paid
        pledge.total_paid_usd = total_paid_usd
        pledge.balance = balance
        pledge.balance_usd = balance_usd
        pledge.updated_at = datetime.now(timezone.utc)

        await call_with_timeout(self.db.flush(), "pledge totals update")

        logger.info(
            f"Recalculated pledge {pledge_id}: total_paid={total_paid} {pledge.currency}, "
            f"balance={balance}"
        )
        return PledgeTotals(
            pledge_id=pledge_id,
            total_paid=total_paid,
            total_paid_usd=total_paid_usd,
            balance=balance,
            balance_usd=balance_usd,
        )

    async def recalculate_pledges(self, pledge_ids: Iterable[str]) -> List[PledgeTotals]:
        """Recalculate each distinct pledge once, locking in id order."""
        return [await self.recalculate_pledge(pledge_id) for pledge_id in sorted(set(pledge_ids))]

    # ==========================================================================
    # Payment Plans
    # ==========================================================================

    async def recalculate_payment_plan(self, payment_plan_id: str) -> PaymentPlanTotals:
        """
        Recompute and persist one payment plan's totals.

        Raises:
            NotFoundError: if the plan does not exist
        """
        plan = await self._lock(PaymentPlan, payment_plan_id)
        if plan is None:
            raise NotFoundError(
                f"Payment plan not found: {payment_plan_id}", {"payment_plan_id": payment_plan_id}
            )

        payments = await self._completed_payments(Payment.payment_plan_id == payment_plan_id)

        total_paid = Decimal("0")
        for p in payments:
            total_paid += await self._stored_or_converted(
                p.amount_in_plan_currency, p.amount, p.currency, plan.currency,
                p.received_date, "plan_total_update",
            )

        total_paid = to_money(total_paid)
        remaining_amount = to_money(max(ZERO, Decimal(plan.total_planned_amount) - total_paid))

        # Plan-level USD figures are a snapshot at today's rate
        today = date.today()
        total_paid_usd = (await self.converter.convert(total_paid, plan.currency, "USD", today)).converted_amount
        remaining_amount_usd = (
            await self.converter.convert(remaining_amount, plan.currency, "USD", today)
        ).converted_amount

        plan.installments_paid = len(payments)
        plan.total_paid = total_paid
        plan.total_paid_usd = total_paid_usd
        plan.remaining_amount = remaining_amount
        plan.remaining_amount_usd = remaining_amount_usd
        plan.updated_at = datetime.now(timezone.utc)

        await call_with_timeout(self.db.flush(), "payment plan totals update")

        logger.info(
            f"Recalculated payment plan {payment_plan_id}: installments_paid={len(payments)}, "
            f"total_paid={total_paid} {plan.currency}, remaining={remaining_amount}"
        )
        return PaymentPlanTotals(
            payment_plan_id=payment_plan_id,
            installments_paid=len(payments),
            total_paid=total_paid,
            total_paid_usd=total_paid_usd,
            remaining_amount=remaining_amount,
            remaining_amount_usd=remaining_amount_usd,
        )

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _lock(self, model, entity_id: str):
        """Load a row with FOR UPDATE, refreshing any copy already in the session."""
        result = await call_with_timeout(
            self.db.execute(
                select(model)
                .where(model.id == entity_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ),
            f"{model.__tablename__} lock",
        )
        return result.scalar_one_or_none()

    async def _completed_payments(self, condition) -> List[Payment]:
        """Completed payments with a received date matching `condition`."""
        result = await call_with_timeout(
            self.db.execute(
                select(Payment).where(
                    condition,
                    Payment.payment_status == COUNTED_STATUS,
                    Payment.received_date.is_not(None),
                )
            ),
            "payment lookup",
        )
        return list(result.scalars().all())

    async def _stored_or_converted(
        self,
        stored: Optional[Decimal],
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        received_date: date,
        conversion_type: str,
    ) -> Decimal:
        """Reuse the amount converted at write time, or convert at the received date."""
        if stored is not None:
            return Decimal(stored)
        if from_currency == to_currency:
            return Decimal(amount)
        conversion = await self.converter.convert(
            Decimal(amount), from_currency, to_currency, received_date, conversion_type=conversion_type
        )
        return conversion.converted_amount
