"""
Payment Service - creates payments and drives status transitions.

Data Flow:
    PaymentCreate (validated request)
                ↓
    classify_payment → SinglePledgePayment | SplitPayment | MultiContactPayment
                ↓
    AllocationValidator (split only)
                ↓
    CurrencyConverter (USD, pledge and plan currency, one rate date per request)
                ↓
    Payment + PaymentAllocation + PaymentTag rows, conversion log, installments
                ↓
    AggregateRecalculator (each distinct pledge, then the plan)
                ↓
    COMMIT (all or nothing)
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.data.base import generate_id
from app.data.payments.models import Payment, PaymentAllocation, PaymentTag, Tag
from app.data.payments.schemas import PaymentCreate, PaymentStatusUpdate
from app.data.pledges.models import InstallmentSchedule, PaymentPlan, Pledge
from app.services.aggregates import AggregateRecalculator, PaymentPlanTotals, PledgeTotals
from app.services.allocations import (
    AllocationValidator,
    PaymentShape,
    SinglePledgePayment,
    SplitPayment,
    classify_payment,
)
from app.services.errors import (
    InvalidTags,
    LedgerError,
    NotFoundError,
    PersistenceFailure,
    PledgeNotFound,
    call_with_timeout,
)
from app.services.exchange_rates import Conversion, CurrencyConverter
from app.services.money import to_money, to_rate


logger = logging.getLogger(__name__)

INSTALLMENT_STATUS_BY_PAYMENT_STATUS = {
    "completed": "paid",
    "processing": "paid",
    "cancelled": "cancelled",
    "failed": "cancelled",
}


def installment_status_for(payment_status: str) -> str:
    """Installment status implied by a payment status."""
    return INSTALLMENT_STATUS_BY_PAYMENT_STATUS.get(payment_status, "pending")


@dataclass
class PaymentWriteResult:
    """A persisted payment with its allocations and the aggregates it moved."""
    payment: Payment
    allocations: List[PaymentAllocation] = field(default_factory=list)
    shape: Optional[PaymentShape] = None
    pledge_totals: List[PledgeTotals] = field(default_factory=list)
    plan_totals: Optional[PaymentPlanTotals] = None

    @property
    def is_split_payment(self) -> bool:
        return isinstance(self.shape, SplitPayment) or bool(self.allocations)


class PaymentService:
    """
    Service for writing payments.

    This service handles:
    1. Single payments against one pledge
    2. Split and multi-contact payments across several pledges
    3. Installment status updates driven by payment status
    4. Payment status transitions with aggregate recalculation
    """

    def __init__(self, db: AsyncSession, converter: Optional[CurrencyConverter] = None):
        self.db = db
        self.converter = converter or CurrencyConverter(db)
        self.validator = AllocationValidator(db, self.converter)
        self.recalculator = AggregateRecalculator(db, self.converter)

    # ==========================================================================
    # Create
    # ==========================================================================

    async def create_payment(self, request: PaymentCreate) -> PaymentWriteResult:
        """
        Create a single or split payment and recompute affected aggregates.

        Every conversion inside the request is struck at one rate date:
        received_date when present, otherwise today.

        Raises:
            LedgerError: any validation, lookup or persistence failure; nothing
                is written in that case
        """
        shape = classify_payment(request)
        rate_date = request.received_date or date.today()

        logger.info(
            f"Creating {type(shape).__name__}: amount={request.amount} {request.currency}, "
            f"status={request.payment_status}, rate_date={rate_date.isoformat()}, "
            f"third_party={request.is_third_party_payment}"
        )

        try:
            tag_ids = await self._validate_tags(request.tag_ids)
            plan = await self._get_payment_plan(request.payment_plan_id)

            if isinstance(shape, SplitPayment):
                result = await self._create_split_payment(request, shape, plan, tag_ids, rate_date)
            else:
                result = await self._create_single_payment(request, shape, plan, tag_ids, rate_date)

            await call_with_timeout(self.db.commit(), "payment commit")
        except LedgerError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Payment creation failed: {e}")
            raise PersistenceFailure("Failed to create payment", retryable=True) from e

        logger.info(
            f"Created payment {result.payment.id} with {len(result.allocations)} allocations"
        )
        return result

    async def _create_split_payment(
        self,
        request: PaymentCreate,
        shape: SplitPayment,
        plan: Optional[PaymentPlan],
        tag_ids: List[str],
        rate_date: date,
    ) -> PaymentWriteResult:
        """One payment row with pledge_id = NULL plus one allocation per pledge share."""
        pledges = await self.validator.validate(
            request.amount, request.currency, shape.allocations, rate_date
        )

        usd = await self.converter.convert(request.amount, request.currency, "USD", rate_date)
        plan_conversion = await self._convert_to_plan(request, plan, rate_date)

        payment = Payment(
            id=generate_id("pay"),
            pledge_id=None,
            amount=to_money(request.amount),
            currency=request.currency,
            amount_usd=usd.converted_amount,
            exchange_rate=to_rate(usd.rate),
            amount_in_pledge_currency=None,
            pledge_currency_exchange_rate=None,
            amount_in_plan_currency=plan_conversion.converted_amount if plan_conversion else None,
            plan_currency_exchange_rate=to_rate(plan_conversion.rate) if plan_conversion else None,
            **self._common_fields(request),
        )
        self.db.add(payment)
        await call_with_timeout(self.db.flush(), "payment insert")

        await self.converter.record(usd, payment.id, "usd_reporting")
        if plan_conversion:
            await self.converter.record(plan_conversion, payment.id, "plan")

        self._attach_tags(payment.id, tag_ids)

        paid_date = request.received_date or request.payment_date
        allocations = []
        for allocation in shape.allocations:
            pledge = pledges[allocation.pledge_id]
            currency = allocation.currency or request.currency
            allocated_amount = to_money(allocation.allocated_amount)

            if currency == "USD":
                allocated_amount_usd = allocated_amount
            else:
                allocated_amount_usd = (await self.converter.convert(
                    allocated_amount, currency, "USD", rate_date,
                    payment_id=payment.id, conversion_type="usd_reporting",
                )).converted_amount

            if currency == pledge.currency:
                in_pledge_currency = allocated_amount
            else:
                in_pledge_currency = (await self.converter.convert(
                    allocated_amount, currency, pledge.currency, rate_date,
                    payment_id=payment.id, conversion_type="pledge",
                )).converted_amount

            row = PaymentAllocation(
                id=generate_id("alloc"),
                payment_id=payment.id,
                pledge_id=pledge.id,
                installment_schedule_id=allocation.installment_schedule_id,
                payer_contact_id=payment.payer_contact_id,
                allocated_amount=allocated_amount,
                currency=currency,
                allocated_amount_usd=allocated_amount_usd,
                allocated_amount_in_pledge_currency=in_pledge_currency,
                receipt_number=allocation.receipt_number,
                receipt_type=allocation.receipt_type,
                receipt_issued=allocation.receipt_issued,
                notes=allocation.notes,
            )
            self.db.add(row)
            allocations.append(row)

            if allocation.installment_schedule_id:
                await self._update_installment_status(
                    allocation.installment_schedule_id, request.payment_status, paid_date
                )

        if request.installment_schedule_id:
            await self._update_installment_status(
                request.installment_schedule_id, request.payment_status, paid_date
            )

        await call_with_timeout(self.db.flush(), "allocation insert")

        pledge_totals = await self.recalculator.recalculate_pledges(pledges.keys())
        plan_totals = None
        if plan:
            plan_totals = await self.recalculator.recalculate_payment_plan(plan.id)

        return PaymentWriteResult(
            payment=payment,
            allocations=allocations,
            shape=shape,
            pledge_totals=pledge_totals,
            plan_totals=plan_totals,
        )

    async def _create_single_payment(
        self,
        request: PaymentCreate,
        shape: SinglePledgePayment,
        plan: Optional[PaymentPlan],
        tag_ids: List[str],
        rate_date: date,
    ) -> PaymentWriteResult:
        """One payment row pointing at one pledge."""
        result = await call_with_timeout(
            self.db.execute(select(Pledge).where(Pledge.id == shape.pledge_id)),
            "pledge lookup",
        )
        pledge = result.scalar_one_or_none()
        if pledge is None:
            raise PledgeNotFound([shape.pledge_id])

        usd = await self.converter.convert(request.amount, request.currency, "USD", rate_date)
        in_pledge_currency = await self.converter.convert(
            request.amount, request.currency, pledge.currency, rate_date
        )
        plan_conversion = await self._convert_to_plan(request, plan, rate_date)

        payment = Payment(
            id=generate_id("pay"),
            pledge_id=pledge.id,
            amount=to_money(request.amount),
            currency=request.currency,
            amount_usd=usd.converted_amount,
            exchange_rate=to_rate(usd.rate),
            amount_in_pledge_currency=in_pledge_currency.converted_amount,
            pledge_currency_exchange_rate=to_rate(in_pledge_currency.rate),
            amount_in_plan_currency=plan_conversion.converted_amount if plan_conversion else None,
            plan_currency_exchange_rate=to_rate(plan_conversion.rate) if plan_conversion else None,
            **self._common_fields(request),
        )
        self.db.add(payment)
        await call_with_timeout(self.db.flush(), "payment insert")

        await self.converter.record(usd, payment.id, "usd_reporting")
        await self.converter.record(in_pledge_currency, payment.id, "pledge")
        if plan_conversion:
            await self.converter.record(plan_conversion, payment.id, "plan")

        self._attach_tags(payment.id, tag_ids)

        if request.installment_schedule_id:
            await self._update_installment_status(
                request.installment_schedule_id,
                request.payment_status,
                request.received_date or request.payment_date,
            )

        await call_with_timeout(self.db.flush(), "payment details insert")

        pledge_totals = [await self.recalculator.recalculate_pledge(pledge.id)]
        plan_totals = None
        if plan:
            plan_totals = await self.recalculator.recalculate_payment_plan(plan.id)

        return PaymentWriteResult(
            payment=payment,
            shape=shape,
            pledge_totals=pledge_totals,
            plan_totals=plan_totals,
        )

    # ==========================================================================
    # Status Transitions
    # ==========================================================================

    async def update_payment_status(
        self,
        payment_id: str,
        update: PaymentStatusUpdate,
    ) -> PaymentWriteResult:
        """
        Move a payment to a new status and recompute everything it touches.

        Installments referenced by the payment or its allocations follow the
        new status; every affected pledge and the plan are recalculated.
        """
        try:
            result = await call_with_timeout(
                self.db.execute(
                    select(Payment)
                    .where(Payment.id == payment_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ),
                "payment lock",
            )
            payment = result.scalar_one_or_none()
            if payment is None:
                raise NotFoundError(f"Payment not found: {payment_id}", {"payment_id": payment_id})

            previous_status = payment.payment_status
            payment.payment_status = update.payment_status
            if update.received_date is not None:
                payment.received_date = update.received_date
            payment.updated_at = datetime.now(timezone.utc)

            allocation_result = await call_with_timeout(
                self.db.execute(
                    select(PaymentAllocation).where(PaymentAllocation.payment_id == payment_id)
                ),
                "allocation lookup",
            )
            allocations = list(allocation_result.scalars().all())

            installment_ids: Set[str] = {
                a.installment_schedule_id for a in allocations if a.installment_schedule_id
            }
            if payment.installment_schedule_id:
                installment_ids.add(payment.installment_schedule_id)

            paid_date = payment.received_date or payment.payment_date
            for installment_id in sorted(installment_ids):
                await self._update_installment_status(installment_id, payment.payment_status, paid_date)

            await call_with_timeout(self.db.flush(), "payment status update")

            pledge_ids = [a.pledge_id for a in allocations]
            if payment.pledge_id:
                pledge_ids.append(payment.pledge_id)

            pledge_totals = await self.recalculator.recalculate_pledges(pledge_ids)
            plan_totals = None
            if payment.payment_plan_id:
                plan_totals = await self.recalculator.recalculate_payment_plan(payment.payment_plan_id)

            await call_with_timeout(self.db.commit(), "payment status commit")
        except LedgerError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Payment status update failed for {payment_id}: {e}")
            raise PersistenceFailure("Failed to update payment status", retryable=True) from e

        logger.info(f"Payment {payment_id} status {previous_status} -> {update.payment_status}")
        return PaymentWriteResult(
            payment=payment,
            allocations=allocations,
            pledge_totals=pledge_totals,
            plan_totals=plan_totals,
        )

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _common_fields(self, request: PaymentCreate) -> Dict:
        """Columns shared by single and split payments."""
        return {
            "payment_plan_id": request.payment_plan_id,
            "installment_schedule_id": request.installment_schedule_id,
            "is_third_party_payment": request.is_third_party_payment,
            # Payer is only meaningful when someone else paid
            "payer_contact_id": request.payer_contact_id if request.is_third_party_payment else None,
            "payment_date": request.payment_date,
            "received_date": request.received_date,
            "check_date": request.check_date,
            "payment_status": request.payment_status,
            "account": request.account,
            "payment_method": request.payment_method,
            "method_detail": request.method_detail,
            "reference_number": request.reference_number,
            "check_number": request.check_number,
            "receipt_number": request.receipt_number,
            "receipt_type": request.receipt_type,
            "receipt_issued": request.receipt_issued,
            "notes": request.notes,
        }

    async def _get_payment_plan(self, payment_plan_id: Optional[str]) -> Optional[PaymentPlan]:
        if not payment_plan_id:
            return None
        result = await call_with_timeout(
            self.db.execute(select(PaymentPlan).where(PaymentPlan.id == payment_plan_id)),
            "payment plan lookup",
        )
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError(
                f"Payment plan not found: {payment_plan_id}", {"payment_plan_id": payment_plan_id}
            )
        return plan

    async def _convert_to_plan(
        self,
        request: PaymentCreate,
        plan: Optional[PaymentPlan],
        rate_date: date,
    ) -> Optional[Conversion]:
        if plan is None:
            return None
        return await self.converter.convert(request.amount, request.currency, plan.currency, rate_date)

    async def _validate_tags(self, tag_ids: List[str]) -> List[str]:
        """
        Check every tag is active and shown on payments.

        Raises:
            InvalidTags: listing the ids that failed
        """
        requested = list(dict.fromkeys(tag_ids))
        if not requested:
            return []

        result = await call_with_timeout(
            self.db.execute(
                select(Tag.id).where(
                    Tag.id.in_(requested),
                    Tag.is_active.is_(True),
                    Tag.show_on_payment.is_(True),
                )
            ),
            "tag lookup",
        )
        valid = set(result.scalars().all())

        invalid = [tag_id for tag_id in requested if tag_id not in valid]
        if invalid:
            raise InvalidTags(invalid, [tag_id for tag_id in requested if tag_id in valid])
        return requested

    def _attach_tags(self, payment_id: str, tag_ids: List[str]) -> None:
        for tag_id in tag_ids:
            self.db.add(PaymentTag(id=generate_id("ptag"), payment_id=payment_id, tag_id=tag_id))

    async def _update_installment_status(
        self,
        installment_schedule_id: str,
        payment_status: str,
        paid_date: Optional[date],
    ) -> InstallmentSchedule:
        """Apply the payment status → installment status mapping."""
        result = await call_with_timeout(
            self.db.execute(
                select(InstallmentSchedule).where(InstallmentSchedule.id == installment_schedule_id)
            ),
            "installment lookup",
        )
        installment = result.scalar_one_or_none()
        if installment is None:
            raise NotFoundError(
                f"Installment schedule not found: {installment_schedule_id}",
                {"installment_schedule_id": installment_schedule_id},
            )

        status = installment_status_for(payment_status)
        installment.status = status
        installment.paid_date = paid_date if status == "paid" and paid_date else None
        installment.updated_at = datetime.now(timezone.utc)
        return installment
