"""
Consolidated services module.

All ledger services are exported from this module.

Usage:
    from app.services import PaymentService, AggregateRecalculator
    from app.services import CurrencyConverter, ExchangeRateResolver
"""

# Exchange rates
from app.services.exchange_rates import (
    ExchangeRateResolver,
    CurrencyConverter,
    Conversion,
    record_exchange_rate,
    fetch_usd_rates,
    refresh_exchange_rates,
    SUPPORTED_CURRENCIES,
)

# Allocation validation
from app.services.allocations import (
    AllocationValidator,
    SinglePledgePayment,
    SplitPayment,
    MultiContactPayment,
    classify_payment,
)

# Aggregates
from app.services.aggregates import AggregateRecalculator, PledgeTotals, PaymentPlanTotals

# Payments
from app.services.payments import PaymentService, PaymentWriteResult, installment_status_for
from app.services.payment_queries import PaymentQueryService

__all__ = [
    # Exchange rates
    "ExchangeRateResolver",
    "CurrencyConverter",
    "Conversion",
    "record_exchange_rate",
    "fetch_usd_rates",
    "refresh_exchange_rates",
    "SUPPORTED_CURRENCIES",
    # Allocations
    "AllocationValidator",
    "SinglePledgePayment",
    "SplitPayment",
    "MultiContactPayment",
    "classify_payment",
    # Aggregates
    "AggregateRecalculator",
    "PledgeTotals",
    "PaymentPlanTotals",
    # Payments
    "PaymentService",
    "PaymentWriteResult",
    "installment_status_for",
    "PaymentQueryService",
]
