"""
Payment read path.

Reassembles payments with their allocations, payment-visible tags and the
pledge / plan currencies needed to display multi-currency figures.
"""
from datetime import date
from typing import Dict, Iterable, List, Literal, Optional

from sqlalchemy import select, or_, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.data.payments.models import Payment, PaymentAllocation, PaymentTag
from app.data.payments.schemas import (
    AllocationResponse,
    PaymentDetail,
    PaymentResponse,
    TagSummary,
)
from app.data.pledges.models import PaymentPlan, Pledge
from app.services.errors import NotFoundError, call_with_timeout


ContactDirection = Literal["all", "made", "received"]


class PaymentQueryService:
    """Read-only access to payments for API responses and reporting."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _base_query(self):
        # populate_existing so rows written earlier in this session are reread
        return (
            select(Payment)
            .options(
                selectinload(Payment.allocations),
                selectinload(Payment.payment_tags).selectinload(PaymentTag.tag),
            )
            .execution_options(populate_existing=True)
        )

    async def get_payment(self, payment_id: str) -> PaymentDetail:
        """
        Get one payment with allocations and tags.

        Raises:
            NotFoundError: if the payment does not exist
        """
        result = await call_with_timeout(
            self.db.execute(self._base_query().where(Payment.id == payment_id)),
            "payment lookup",
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError(f"Payment not found: {payment_id}", {"payment_id": payment_id})

        details = await self._to_details([payment])
        return details[0]

    async def list_payments(
        self,
        pledge_id: Optional[str] = None,
        contact_id: Optional[str] = None,
        direction: ContactDirection = "all",
        payment_status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[PaymentDetail]:
        """
        List payments, newest payment_date first.

        Args:
            pledge_id: Payments made directly to the pledge or allocated to it
            contact_id: Payments involving the contact, narrowed by `direction`
            direction: "made" (contact paid as third party), "received"
                (contact's own pledges) or "all"
            payment_status: Exact status filter
            start_date: Inclusive lower bound on payment_date
            end_date: Inclusive upper bound on payment_date
        """
        conditions = []

        if pledge_id:
            allocated_to_pledge = select(PaymentAllocation.payment_id).where(
                PaymentAllocation.pledge_id == pledge_id
            )
            conditions.append(
                or_(Payment.pledge_id == pledge_id, Payment.id.in_(allocated_to_pledge))
            )

        if contact_id:
            contact_pledges = select(Pledge.id).where(Pledge.contact_id == contact_id)
            made = Payment.payer_contact_id == contact_id
            received = or_(
                and_(
                    Payment.pledge_id.in_(contact_pledges),
                    Payment.is_third_party_payment.is_(False),
                ),
                Payment.id.in_(
                    select(PaymentAllocation.payment_id).where(
                        PaymentAllocation.pledge_id.in_(contact_pledges)
                    )
                ),
            )
            if direction == "made":
                conditions.append(made)
            elif direction == "received":
                conditions.append(received)
            else:
                conditions.append(or_(made, received))

        if payment_status:
            conditions.append(Payment.payment_status == payment_status)
        if start_date:
            conditions.append(Payment.payment_date >= start_date)
        if end_date:
            conditions.append(Payment.payment_date <= end_date)

        query = self._base_query().order_by(desc(Payment.payment_date), desc(Payment.id))
        if conditions:
            query = query.where(and_(*conditions))

        result = await call_with_timeout(self.db.execute(query), "payment list")
        return await self._to_details(list(result.scalars().all()))

    async def _to_details(self, payments: List[Payment]) -> List[PaymentDetail]:
        pledge_ids = set()
        plan_ids = set()
        for payment in payments:
            if payment.pledge_id:
                pledge_ids.add(payment.pledge_id)
            if payment.payment_plan_id:
                plan_ids.add(payment.payment_plan_id)
            pledge_ids.update(a.pledge_id for a in payment.allocations)

        pledges = await self._load(Pledge, pledge_ids)
        plans = await self._load(PaymentPlan, plan_ids)

        details = []
        for payment in payments:
            pledge = pledges.get(payment.pledge_id) if payment.pledge_id else None
            plan = plans.get(payment.payment_plan_id) if payment.payment_plan_id else None

            allocations = []
            for allocation in payment.allocations:
                allocation_pledge = pledges.get(allocation.pledge_id)
                allocations.append(
                    AllocationResponse.model_validate(allocation).model_copy(update={
                        "pledge_currency": allocation_pledge.currency if allocation_pledge else None,
                        "pledge_description": allocation_pledge.description if allocation_pledge else None,
                    })
                )

            tags = [
                TagSummary(id=pt.tag.id, name=pt.tag.name)
                for pt in payment.payment_tags
                if pt.tag is not None and pt.tag.is_active and pt.tag.show_on_payment
            ]

            details.append(PaymentDetail(
                **PaymentResponse.model_validate(payment).model_dump(),
                is_split_payment=bool(allocations),
                allocation_count=len(allocations),
                allocations=allocations,
                tag_ids=[tag.id for tag in tags],
                tags=tags,
                pledge_currency=pledge.currency if pledge else None,
                pledge_description=pledge.description if pledge else None,
                pledge_contact_id=pledge.contact_id if pledge else None,
                payment_plan_currency=plan.currency if plan else None,
            ))

        return details

    async def _load(self, model, ids: Iterable[str]) -> Dict:
        ids = list(ids)
        if not ids:
            return {}
        result = await call_with_timeout(
            self.db.execute(select(model).where(model.id.in_(ids))),
            f"{model.__tablename__} lookup",
        )
        return {row.id: row for row in result.scalars().all()}
