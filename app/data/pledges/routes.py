"""Pledge and payment plan routes - reads and aggregate repair."""
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.data.pledges.models import Pledge
from app.data.pledges.schemas import (
    PledgeResponse,
    PledgeTotalsResponse,
    PaymentPlanTotalsResponse,
)
from app.services.aggregates import AggregateRecalculator
from app.services.errors import NotFoundError, call_with_timeout


router = APIRouter()


@router.get("/pledges/{pledge_id}", response_model=PledgeResponse)
async def get_pledge(pledge_id: str, db: AsyncSession = Depends(get_db)):
    """Get a pledge with its current totals."""
    result = await db.execute(select(Pledge).where(Pledge.id == pledge_id))
    pledge = result.scalar_one_or_none()
    if not pledge:
        raise NotFoundError(f"Pledge not found: {pledge_id}", {"pledge_id": pledge_id})
    return pledge


@router.post("/pledges/{pledge_id}/recalculate", response_model=PledgeTotalsResponse)
async def recalculate_pledge(pledge_id: str, db: AsyncSession = Depends(get_db)):
    """Recompute a pledge's totals from its completed, received payments."""
    totals = await AggregateRecalculator(db).recalculate_pledge(pledge_id)
    await call_with_timeout(db.commit(), "pledge recalculation commit")
    return totals


@router.post("/payment-plans/{payment_plan_id}/recalculate", response_model=PaymentPlanTotalsResponse)
async def recalculate_payment_plan(payment_plan_id: str, db: AsyncSession = Depends(get_db)):
    """Recompute a payment plan's totals from its completed, received payments."""
    totals = await AggregateRecalculator(db).recalculate_payment_plan(payment_plan_id)
    await call_with_timeout(db.commit(), "payment plan recalculation commit")
    return totals
