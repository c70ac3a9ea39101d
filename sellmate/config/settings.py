"""
Application Settings for SellMate

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Includes the business rule settings for order expiry, trials and
    payment retries.
    """

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Order lifecycle
    order_expiration_hours: int = 48

    # Billing
    trial_days: int = 14
    default_currency: str = "NGN"
    max_failed_payments: int = 3

    # Pagination
    default_page_size: int = 20

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_business_rules(self) -> "Settings":
        """Business windows and retry counts must be positive; page size stays in 1..100."""
        if self.order_expiration_hours <= 0:
            raise ValueError("ORDER_EXPIRATION_HOURS must be positive")
        if self.trial_days <= 0:
            raise ValueError("TRIAL_DAYS must be positive")
        if self.max_failed_payments <= 0:
            raise ValueError("MAX_FAILED_PAYMENTS must be positive")
        if not 1 <= self.default_page_size <= 100:
            raise ValueError("DEFAULT_PAGE_SIZE must be between 1 and 100")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
