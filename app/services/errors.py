"""
Ledger error taxonomy.

Every failure the payment core can raise on purpose derives from LedgerError,
which carries an HTTP-equivalent status code and a structured `details`
dict. app.main renders these as {"error": ..., "details": ...}.
"""
import asyncio
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Dict, Iterable, Optional, TypeVar

from app.config import settings


T = TypeVar("T")


class LedgerError(Exception):
    """Base class for expected ledger failures."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


# =============================================================================
# Client-fixable (400)
# =============================================================================

class ValidationError(LedgerError):
    """Malformed or missing required input."""


class PaymentShapeRequired(ValidationError):
    def __init__(self):
        super().__init__(
            "Either pledge_id (for a regular payment) or allocations (for a split payment) is required"
        )


class InvalidTags(ValidationError):
    def __init__(self, invalid_tag_ids: Iterable[str], valid_tag_ids: Iterable[str] = ()):
        invalid = list(invalid_tag_ids)
        super().__init__(
            f"Invalid or inactive tag IDs: {', '.join(invalid)}",
            {"invalid_tag_ids": invalid, "valid_tag_ids": list(valid_tag_ids)},
        )
        self.invalid_tag_ids = invalid


class RateNotFound(LedgerError):
    def __init__(self, from_currency: str, to_currency: str, on_date: date):
        super().__init__(
            f"Exchange rate not found for {from_currency} to {to_currency} on or before {on_date.isoformat()}",
            {
                "from_currency": from_currency,
                "to_currency": to_currency,
                "date": on_date.isoformat(),
            },
        )
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.on_date = on_date


class AllocationMismatch(LedgerError):
    def __init__(self, total_allocated: Decimal, payment_amount: Decimal):
        difference = abs(total_allocated - payment_amount)
        super().__init__(
            "Invalid allocation amounts",
            {
                "message": (
                    f"Total allocated amount ({total_allocated:.2f}) must equal "
                    f"payment amount ({payment_amount:.2f})."
                ),
                "total_allocated": str(total_allocated),
                "payment_amount": str(payment_amount),
                "difference": str(difference),
            },
        )
        self.total_allocated = total_allocated
        self.payment_amount = payment_amount
        self.difference = difference


class AmbiguousPaymentShape(LedgerError):
    def __init__(self):
        super().__init__(
            "A payment must have either pledge_id or allocations, not both"
        )


class ThirdPartyRequired(LedgerError):
    def __init__(self):
        super().__init__(
            "Multi-contact payments require third-party payment to be enabled",
            {"field": "is_third_party_payment"},
        )


# =============================================================================
# Missing entities (404)
# =============================================================================

class NotFoundError(LedgerError):
    status_code = 404


class PledgeNotFound(NotFoundError):
    def __init__(self, missing_ids: Iterable[str]):
        missing = list(missing_ids)
        label = "Pledge not found" if len(missing) == 1 else "Pledges not found"
        super().__init__(f"{label}: {', '.join(missing)}", {"missing_pledge_ids": missing})
        self.missing_ids = missing


# =============================================================================
# Infrastructure (5xx)
# =============================================================================

class PersistenceFailure(LedgerError):
    """Storage failed or timed out. Callers may retry when `retryable` is set."""

    status_code = 500

    def __init__(self, message: str, retryable: bool = True, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, {"retryable": retryable, **(details or {})})
        self.retryable = retryable


class RateFeedError(LedgerError):
    status_code = 502


async def call_with_timeout(
    awaitable: Awaitable[T],
    operation: str,
    timeout: Optional[float] = None,
) -> T:
    """Await a storage call, turning a timeout into a retryable PersistenceFailure."""
    try:
        return await asyncio.wait_for(awaitable, timeout or settings.DB_CALL_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as e:
        raise PersistenceFailure(f"{operation} timed out", retryable=True) from e
