from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings (tokens are issued by the identity provider)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # App Settings
    APP_NAME: str = "Pawtrait Referrals"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Storefront URL used to build share links
    FRONTEND_URL: str = "http://localhost:3000"

    # Payment provider webhook
    PAYMENT_WEBHOOK_SECRET: Optional[str] = None  # For webhook verification
    PAYMENT_WEBHOOK_TOLERANCE_SECONDS: int = 300  # Max age of a signed webhook

    # Referral codes
    REFERRAL_CODE_LENGTH: int = 6  # Random suffix length
    REFERRAL_CODE_MAX_ATTEMPTS: int = 10  # Uniqueness retries before giving up
    DEFAULT_PARTNER_CODE_PREFIX: str = "PAR"
    CUSTOMER_CODE_PREFIX: str = "PET"

    # Referral lifecycle
    REFERRAL_EXPIRY_DAYS: int = 90

    # Commission rates (percentages, 10.00 == 10%)
    DEFAULT_COMMISSION_RATE: Decimal = Decimal("10.00")
    CUSTOMER_CREDIT_RATE: Decimal = Decimal("10.00")

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    REFERRAL_EXPIRY_JOB_INTERVAL_MINUTES: int = 60

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
