"""Payments module - payments, split allocations and payment tags."""
from app.data.payments.models import Payment, PaymentAllocation, Tag, PaymentTag

__all__ = ["Payment", "PaymentAllocation", "Tag", "PaymentTag"]
