# backend/ledger/core/settings.py
"""
Ledger Core - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Calculate path to .env in project root (4 levels up from this file)
# backend/ledger/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"


class Settings(BaseSettings):
    """
    Ledger settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "Ledger Core"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="ledger", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )
    DB_ECHO: bool = Field(default=False, description="Log every SQL statement")

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # json or text
    LOG_FILE: Optional[str] = None

    # ===================
    # Ledger Rules
    # ===================
    BALANCE_TOLERANCE: Decimal = Field(
        default=Decimal("0.01"),
        description="Differences below this amount count as balanced",
    )
    MIN_REOPEN_REASON_LENGTH: int = Field(
        default=10, description="Minimum characters in a period reopen reason"
    )
    MIN_VOID_REASON_LENGTH: int = Field(
        default=3, description="Minimum characters in a journal entry void reason"
    )
    MIN_FISCAL_YEAR: int = 1900

    # ===================
    # Bank Reconciliation
    # ===================
    AUTO_MATCH_DATE_WINDOW_DAYS: int = Field(
        default=3, description="Max days between bank transaction and journal line for auto-match"
    )
    AUTO_MATCH_AMOUNT_TOLERANCE: Decimal = Field(
        default=Decimal("0"), description="Max absolute amount difference for auto-match"
    )

    # ===================
    # Fixed Assets
    # ===================
    DECLINING_BALANCE_FACTOR: Decimal = Field(
        default=Decimal("2"),
        description="Multiplier on the straight-line rate when a category sets no declining rate",
    )
    DISPOSAL_PROCEEDS_ACCOUNT_CODE: str = Field(
        default="1101", description="Account debited with disposal proceeds"
    )

    # ===================
    # Event-Driven Postings (order-service)
    # ===================
    EVENT_CASH_ACCOUNT_CODE: str = "1101"
    EVENT_REVENUE_ACCOUNT_CODE: str = "4101"
    EVENT_TAX_PAYABLE_ACCOUNT_CODE: str = "2201"
    EVENT_SALES_DISCOUNT_ACCOUNT_CODE: str = "4201"
    EVENT_SYSTEM_USER: str = "system"

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    @field_validator("AUTO_MATCH_DATE_WINDOW_DAYS")
    @classmethod
    def validate_date_window(cls, v: int) -> int:
        if v < 0:
            raise ValueError("AUTO_MATCH_DATE_WINDOW_DAYS cannot be negative")
        return v

    @field_validator("BALANCE_TOLERANCE", "AUTO_MATCH_AMOUNT_TOLERANCE", "DECLINING_BALANCE_FACTOR")
    @classmethod
    def validate_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("must not be negative")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
