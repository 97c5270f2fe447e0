"""
Conversion audit service.

Writes CurrencyConversionLog rows inside the caller's transaction, each in
its own SAVEPOINT, so a log row commits atomically with the payment it
describes while a failed log write never takes the payment down with it.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional

from sqlalchemy import select, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit.models import CurrencyConversionLog
from app.services.money import to_money, to_rate


logger = logging.getLogger(__name__)

ConversionType = Literal[
    "usd_reporting", "pledge", "plan", "pledge_total_update",
    "plan_total_update", "plan_reporting", "general"
]


class ConversionAuditService:
    """
    Service for recording currency conversions against payments.

    Usage:
        audit = ConversionAuditService(db)
        await audit.record(payment.id, "EUR", "USD", Decimal("100"), Decimal("108.70"),
                           Decimal("1.087"), date(2024, 3, 1), "usd_reporting")
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        payment_id: str,
        from_currency: str,
        to_currency: str,
        from_amount: Decimal,
        to_amount: Decimal,
        rate: Decimal,
        conversion_date: date,
        conversion_type: ConversionType,
    ) -> Optional[CurrencyConversionLog]:
        """
        Append one conversion log row.

        Returns the row, or None when the write failed. Failures are logged
        and never propagate.
        """
        try:
            async with self.db.begin_nested():
                entry = CurrencyConversionLog(
                    payment_id=payment_id,
                    from_currency=from_currency,
                    to_currency=to_currency,
                    from_amount=to_money(from_amount),
                    to_amount=to_money(to_amount),
                    exchange_rate=to_rate(rate),
                    conversion_date=conversion_date,
                    conversion_type=conversion_type,
                )
                self.db.add(entry)
            return entry
        except Exception as e:
            # Audit trail is best-effort; the conversion itself already succeeded
            logger.error(
                f"Error logging currency conversion for payment {payment_id} "
                f"({from_currency}->{to_currency}, {conversion_type}): {e}"
            )
            return None

    async def get_payment_history(
        self,
        payment_id: str,
        conversion_type: Optional[ConversionType] = None,
    ) -> List[CurrencyConversionLog]:
        """Get all conversions recorded for a payment, oldest first."""
        conditions = [CurrencyConversionLog.payment_id == payment_id]
        if conversion_type:
            conditions.append(CurrencyConversionLog.conversion_type == conversion_type)

        query = (
            select(CurrencyConversionLog)
            .where(and_(*conditions))
            .order_by(CurrencyConversionLog.created_at, CurrencyConversionLog.id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
