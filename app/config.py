"""Application configuration."""
from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/pledge_ledger"
    DB_ECHO: bool = False
    # Upper bound for any single rate lookup or flush/commit round-trip
    DB_CALL_TIMEOUT_SECONDS: float = 10.0

    # Application
    APP_ENV: str = "development"
    API_V1_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    # Frontend
    FRONTEND_URL: str = "http://localhost:3000"

    # Ledger
    BASE_CURRENCY: str = "USD"
    ALLOCATION_TOLERANCE: Decimal = Decimal("0.01")

    # Exchange rate feed (USD based, {"rates": {"EUR": 0.92, ...}})
    RATE_FEED_URL: str = "https://api.exchangerate-api.com/v4/latest/USD"
    RATE_FEED_TIMEOUT_SECONDS: float = 30.0

    # CORS
    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        if self.APP_ENV == "development":
            return ["*"]  # Allow all origins in development
        return [self.FRONTEND_URL, "http://localhost:3000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True
    )


settings = Settings()
