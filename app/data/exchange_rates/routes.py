"""Exchange rate routes."""
from datetime import date
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field

from app.database import get_db
from app.services.errors import call_with_timeout
from app.services.exchange_rates import (
    CurrencyConverter,
    ExchangeRateResolver,
    record_exchange_rate,
    refresh_exchange_rates,
    SUPPORTED_CURRENCIES,
)

router = APIRouter()


class ExchangeRateResponse(BaseModel):
    """Response for exchange rate query."""
    from_currency: str
    to_currency: str
    rate: str
    rate_date: str


class ConversionResponse(BaseModel):
    """Response for a currency conversion."""
    from_currency: str
    to_currency: str
    amount: str
    converted_amount: str
    rate: str
    rate_date: str


class ExchangeRateCreate(BaseModel):
    """Request to record one USD-based rate."""
    target_currency: str = Field(..., min_length=3, max_length=3)
    rate: Decimal = Field(..., gt=0, description="Units of target currency per 1 USD")
    rate_date: date
    source: str = "manual"


class ExchangeRateRecordResponse(BaseModel):
    """Response for a recorded rate."""
    id: str
    base_currency: str
    target_currency: str
    rate: str
    rate_date: str
    source: str
    created: bool


class RefreshResponse(BaseModel):
    """Response for a feed refresh."""
    rate_date: str
    stored: int


def _check_currency(currency: str, label: str) -> None:
    if currency not in SUPPORTED_CURRENCIES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported {label} currency: {currency}. Supported: {', '.join(SUPPORTED_CURRENCIES)}"
        )


@router.get("/rate", response_model=ExchangeRateResponse)
async def get_exchange_rate(
    from_currency: str = Query(..., description="Source currency"),
    to_currency: str = Query(..., description="Target currency"),
    target_date: date | None = Query(default=None, description="Date for rate (defaults to today)"),
    db: AsyncSession = Depends(get_db)
):
    """Get the exchange rate between two currencies in effect on a date."""
    _check_currency(from_currency, "source")
    _check_currency(to_currency, "target")

    rate_date = target_date or date.today()
    rate = await ExchangeRateResolver(db).get_rate(from_currency, to_currency, rate_date)

    return ExchangeRateResponse(
        from_currency=from_currency,
        to_currency=to_currency,
        rate=str(rate),
        rate_date=rate_date.isoformat()
    )


@router.get("/convert", response_model=ConversionResponse)
async def convert_currency(
    amount: Decimal = Query(..., description="Amount to convert"),
    from_currency: str = Query(..., description="Source currency"),
    to_currency: str = Query(..., description="Target currency"),
    target_date: date | None = Query(default=None, description="Date for rate (defaults to today)"),
    db: AsyncSession = Depends(get_db)
):
    """Convert an amount the same way the ledger does."""
    _check_currency(from_currency, "source")
    _check_currency(to_currency, "target")

    conversion = await CurrencyConverter(db).convert(
        amount, from_currency, to_currency, target_date or date.today()
    )

    return ConversionResponse(
        from_currency=conversion.from_currency,
        to_currency=conversion.to_currency,
        amount=str(conversion.amount),
        converted_amount=str(conversion.converted_amount),
        rate=str(conversion.rate),
        rate_date=conversion.conversion_date.isoformat()
    )


@router.post("", response_model=ExchangeRateRecordResponse)
async def create_exchange_rate(data: ExchangeRateCreate, db: AsyncSession = Depends(get_db)):
    """Record a USD-based rate. Recorded rates cannot be changed."""
    rate, created = await record_exchange_rate(
        db, data.target_currency, data.rate, data.rate_date, source=data.source
    )
    await call_with_timeout(db.commit(), "exchange rate commit")

    return ExchangeRateRecordResponse(
        id=rate.id,
        base_currency=rate.base_currency,
        target_currency=rate.target_currency,
        rate=str(rate.rate),
        rate_date=rate.date.isoformat(),
        source=rate.source,
        created=created
    )


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_rates(
    target_date: date | None = Query(default=None, description="Date to store rates for (defaults to today)"),
    db: AsyncSession = Depends(get_db)
):
    """Fetch rates from the configured feed and store any not yet recorded."""
    rate_date = target_date or date.today()
    stored = await refresh_exchange_rates(db, rate_date)
    return RefreshResponse(rate_date=rate_date.isoformat(), stored=stored)
