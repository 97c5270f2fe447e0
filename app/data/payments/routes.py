"""Payment routes - creation, reads and status transitions."""
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.data.payments.schemas import (
    PaymentCreate,
    PaymentCreateResponse,
    PaymentDetail,
    PaymentStatus,
    PaymentStatusUpdate,
)
from app.services.payment_queries import PaymentQueryService
from app.services.payments import PaymentService

router = APIRouter()


@router.post("/payments", response_model=PaymentCreateResponse, status_code=201)
async def create_payment(data: PaymentCreate, db: AsyncSession = Depends(get_db)):
    """Create a single or split payment and update affected pledge and plan totals."""
    result = await PaymentService(db).create_payment(data)
    payment = await PaymentQueryService(db).get_payment(result.payment.id)

    if result.is_split_payment:
        message = f"Split payment created successfully with {len(result.allocations)} allocations"
    else:
        message = "Payment created successfully"

    return PaymentCreateResponse(message=message, payment=payment)


@router.get("/payments", response_model=List[PaymentDetail])
async def list_payments(
    pledge_id: Optional[str] = Query(default=None, description="Payments to this pledge"),
    contact_id: Optional[str] = Query(default=None, description="Payments involving this contact"),
    direction: Literal["all", "made", "received"] = Query(default="all", description="Contact direction"),
    payment_status: Optional[PaymentStatus] = Query(default=None),
    start_date: Optional[date] = Query(default=None, description="Earliest payment date"),
    end_date: Optional[date] = Query(default=None, description="Latest payment date"),
    db: AsyncSession = Depends(get_db),
):
    """List payments, newest first."""
    return await PaymentQueryService(db).list_payments(
        pledge_id=pledge_id,
        contact_id=contact_id,
        direction=direction,
        payment_status=payment_status,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/payments/{payment_id}", response_model=PaymentDetail)
async def get_payment(payment_id: str, db: AsyncSession = Depends(get_db)):
    """Get a payment with allocations and tags."""
    return await PaymentQueryService(db).get_payment(payment_id)


@router.patch("/payments/{payment_id}/status", response_model=PaymentDetail)
async def update_payment_status(
    payment_id: str,
    data: PaymentStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Move a payment to a new status; installments and totals follow."""
    await PaymentService(db).update_payment_status(payment_id, data)
    return await PaymentQueryService(db).get_payment(payment_id)
