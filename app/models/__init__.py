"""
Consolidated models package.

IMPORTANT: Explicit imports only - no wildcards to prevent circular imports.
Use string-based forward references in relationships: relationship("Pledge", ...)

Importing this package registers every table on Base.metadata, which is
what Alembic and the test fixtures rely on.
"""

# Base utilities
from app.data.base import generate_id

# Exchange rates
from app.data.exchange_rates.models import ExchangeRate

# Pledges and payment plans
from app.data.pledges.models import Pledge, PaymentPlan, InstallmentSchedule

# Payments
from app.data.payments.models import Payment, PaymentAllocation, Tag, PaymentTag

# Conversion audit trail
from app.audit.models import CurrencyConversionLog

__all__ = [
    "generate_id",
    "ExchangeRate",
    "Pledge",
    "PaymentPlan",
    "InstallmentSchedule",
    "Payment",
    "PaymentAllocation",
    "Tag",
    "PaymentTag",
    "CurrencyConversionLog",
]
