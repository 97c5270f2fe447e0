"""
Exchange rate resolution, currency conversion and rate ingestion.

All rates are stored relative to USD. A cross rate A->B on a date is
    (USD->B on or before date) / (USD->A on or before date)
with the USD side short-circuited to exactly 1.
"""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Optional, Tuple

import httpx
from sqlalchemy import select, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit.services import ConversionAuditService, ConversionType
from app.config import settings
from app.data.exchange_rates.models import ExchangeRate
from app.services.errors import (
    PersistenceFailure,
    RateFeedError,
    RateNotFound,
    ValidationError,
    call_with_timeout,
)
from app.services.money import to_money


logger = logging.getLogger(__name__)

BASE_CURRENCY = settings.BASE_CURRENCY

# Supported currencies
SUPPORTED_CURRENCIES = ['USD', 'ILS', 'EUR', 'JPY', 'GBP', 'AUD', 'CAD', 'ZAR']


# =============================================================================
# Resolution
# =============================================================================

class ExchangeRateResolver:
    """
    Looks up historical rates, most recent on or before the requested date.

    One resolver lives for one request; lookups are memoised per
    (currency, date) so a payment touching several pledges does not hit the
    rate table repeatedly for the same factor.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._usd_rates: Dict[Tuple[str, date], Optional[Decimal]] = {}

    async def get_usd_rate(self, currency: str, on_date: date) -> Optional[Decimal]:
        """Units of `currency` per 1 USD in effect on `on_date`, or None."""
        if currency == BASE_CURRENCY:
            return Decimal("1")

        key = (currency, on_date)
        if key in self._usd_rates:
            return self._usd_rates[key]

        result = await call_with_timeout(
            self.db.execute(
                select(ExchangeRate.rate)
                .where(
                    ExchangeRate.base_currency == BASE_CURRENCY,
                    ExchangeRate.target_currency == currency,
                    ExchangeRate.date <= on_date,
                )
                .order_by(desc(ExchangeRate.date))
                .limit(1)
            ),
            "exchange rate lookup",
        )
        rate = result.scalar_one_or_none()
        self._usd_rates[key] = rate
        return rate

    async def get_rate(self, from_currency: str, to_currency: str, on_date: date) -> Decimal:
        """
        Rate converting `from_currency` into `to_currency` on `on_date`.

        Raises:
            RateNotFound: if either leg has no rate on or before the date
        """
        if from_currency == to_currency:
            return Decimal("1")

        usd_to_from = await self.get_usd_rate(from_currency, on_date)
        usd_to_to = await self.get_usd_rate(to_currency, on_date)

        if not usd_to_from or not usd_to_to:
            raise RateNotFound(from_currency, to_currency, on_date)

        return usd_to_to / usd_to_from


# =============================================================================
# Conversion
# =============================================================================

@dataclass
class Conversion:
    """Result of converting one amount. `rate` keeps full precision."""
    from_currency: str
    to_currency: str
    amount: Decimal
    converted_amount: Decimal
    rate: Decimal
    conversion_date: date


class CurrencyConverter:
    """Converts amounts through the resolver and records them for payments."""

    def __init__(
        self,
        db: AsyncSession,
        resolver: Optional[ExchangeRateResolver] = None,
        audit: Optional[ConversionAuditService] = None,
    ):
        self.db = db
        self.resolver = resolver or ExchangeRateResolver(db)
        self.audit = audit or ConversionAuditService(db)

    async def convert(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        on_date: date,
        payment_id: Optional[str] = None,
        conversion_type: ConversionType = "general",
    ) -> Conversion:
        """
        Convert `amount` at the rate in effect on `on_date`.

        When `payment_id` is given the conversion is appended to the
        conversion log; a failed log write does not fail the conversion.
        """
        rate = await self.resolver.get_rate(from_currency, to_currency, on_date)
        conversion = Conversion(
            from_currency=from_currency,
            to_currency=to_currency,
            amount=amount,
            converted_amount=to_money(amount * rate),
            rate=rate,
            conversion_date=on_date,
        )

        if payment_id:
            await self.record(conversion, payment_id, conversion_type)

        return conversion

    async def record(
        self,
        conversion: Conversion,
        payment_id: str,
        conversion_type: ConversionType,
    ) -> None:
        """Log an already computed conversion against a payment."""
        await self.audit.record(
            payment_id=payment_id,
            from_currency=conversion.from_currency,
            to_currency=conversion.to_currency,
            from_amount=conversion.amount,
            to_amount=conversion.converted_amount,
            rate=conversion.rate,
            conversion_date=conversion.conversion_date,
            conversion_type=conversion_type,
        )


# =============================================================================
# Ingestion
# =============================================================================

# Scale of exchange_rates.rate (Numeric(18, 8))
STORED_RATE_PLACES = Decimal("0.00000001")


async def _get_recorded_rate(
    db: AsyncSession,
    target_currency: str,
    effective_date: date,
) -> Optional[ExchangeRate]:
    result = await call_with_timeout(
        db.execute(
            select(ExchangeRate).where(
                ExchangeRate.base_currency == BASE_CURRENCY,
                ExchangeRate.target_currency == target_currency,
                ExchangeRate.date == effective_date,
            )
        ),
        "exchange rate lookup",
    )
    return result.scalar_one_or_none()


def _ensure_unchanged(recorded: ExchangeRate, stored_rate: Decimal, submitted: Decimal) -> ExchangeRate:
    if Decimal(recorded.rate) != stored_rate:
        raise ValidationError(
            f"Exchange rate for {BASE_CURRENCY}->{recorded.target_currency} on "
            f"{recorded.date.isoformat()} is already recorded",
            {"recorded_rate": str(recorded.rate), "submitted_rate": str(submitted)},
        )
    return recorded


async def record_exchange_rate(
    db: AsyncSession,
    target_currency: str,
    rate: Decimal,
    effective_date: date,
    source: str = "manual",
) -> Tuple[ExchangeRate, bool]:
    """
    Record a USD-based rate for one currency and date.

    Rates are immutable: an existing row with the same rate is returned
    unchanged, an existing row with a different rate is rejected. Rates are
    compared at the stored scale of 8 decimal places.

    Returns:
        Tuple of (rate row, created flag). Does not commit.
    """
    if target_currency not in SUPPORTED_CURRENCIES or target_currency == BASE_CURRENCY:
        raise ValidationError(f"Unsupported target currency: {target_currency}")
    if rate <= 0:
        raise ValidationError("Exchange rate must be positive")

    stored_rate = Decimal(rate).quantize(STORED_RATE_PLACES, rounding=ROUND_HALF_UP)

    existing_rate = await _get_recorded_rate(db, target_currency, effective_date)
    if existing_rate:
        return _ensure_unchanged(existing_rate, stored_rate, rate), False

    new_rate = ExchangeRate(
        base_currency=BASE_CURRENCY,
        target_currency=target_currency,
        rate=stored_rate,
        date=effective_date,
        source=source,
    )
    try:
        async with db.begin_nested():
            db.add(new_rate)
    except IntegrityError as e:
        # Another writer recorded this currency and date after the lookup
        logger.warning(
            f"Concurrent insert of {BASE_CURRENCY}->{target_currency} rate for {effective_date.isoformat()}"
        )
        existing_rate = await _get_recorded_rate(db, target_currency, effective_date)
        if existing_rate is None:
            raise PersistenceFailure("Failed to record exchange rate", retryable=True) from e
        return _ensure_unchanged(existing_rate, stored_rate, rate), False

    return new_rate, True


async def fetch_usd_rates() -> Dict[str, Decimal]:
    """
    Fetch current USD-based rates from the configured feed.

    Returns:
        Dict mapping supported currency codes to units per 1 USD
        e.g., {'EUR': Decimal('0.92'), 'ILS': Decimal('3.71'), ...}
    """
    try:
        async with httpx.AsyncClient(timeout=settings.RATE_FEED_TIMEOUT_SECONDS) as client:
            response = await client.get(settings.RATE_FEED_URL, headers={'Accept': 'application/json'})
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Error fetching exchange rates from feed: {e}")
        raise RateFeedError("Exchange rate feed unavailable", {"reason": str(e)}) from e

    raw_rates = data.get("rates") if isinstance(data, dict) else None
    if not isinstance(raw_rates, dict):
        logger.error("Exchange rate feed returned no 'rates' object")
        raise RateFeedError("Exchange rate feed returned an invalid payload")

    rates = {}
    for currency in SUPPORTED_CURRENCIES:
        if currency == BASE_CURRENCY or currency not in raw_rates:
            continue
        try:
            value = Decimal(str(raw_rates[currency]))
        except InvalidOperation:
            logger.warning(f"Skipping unparseable feed rate for {currency}: {raw_rates[currency]!r}")
            continue
        if value > 0:
            rates[currency] = value

    return rates


async def refresh_exchange_rates(db: AsyncSession, effective_date: Optional[date] = None) -> int:
    """
    Fetch and store rates for `effective_date` (default today).

    Only pairs not yet recorded for that date are stored; recorded rates
    are never overwritten.

    Returns:
        Number of rates stored
    """
    effective_date = effective_date or date.today()
    rates = await fetch_usd_rates()

    recorded = await db.execute(
        select(ExchangeRate.target_currency).where(
            ExchangeRate.base_currency == BASE_CURRENCY,
            ExchangeRate.date == effective_date,
        )
    )
    already_recorded = set(recorded.scalars().all())

    stored = 0
    for currency, rate in rates.items():
        if currency in already_recorded:
            continue
        db.add(ExchangeRate(
            base_currency=BASE_CURRENCY,
            target_currency=currency,
            rate=rate.quantize(STORED_RATE_PLACES, rounding=ROUND_HALF_UP),
            date=effective_date,
            source="feed",
        ))
        stored += 1

    try:
        await call_with_timeout(db.commit(), "exchange rate refresh commit")
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Exchange rate refresh for {effective_date.isoformat()} raced another writer: {e}")
        raise PersistenceFailure("Exchange rate refresh conflicted with a concurrent insert", retryable=True) from e

    logger.info(f"Stored {stored} exchange rates for {effective_date.isoformat()}")
    return stored
