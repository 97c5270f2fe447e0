"""Exchange rates module - effective-dated USD-based rates."""
from app.data.exchange_rates.models import ExchangeRate

__all__ = ["ExchangeRate"]
