"""Audit trail for currency conversions."""
from app.audit.models import CurrencyConversionLog
from app.audit.services import ConversionAuditService

__all__ = ["CurrencyConversionLog", "ConversionAuditService"]
