"""Application configuration using Pydantic Settings."""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentProvider(str, Enum):
    TPAY = "tpay"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "Rental Marketplace"
    debug: bool = False
    api_v1_prefix: str = "/v1"
    allowed_origins: str = "http://localhost:3000"

    # Database
    database_url: str
    database_echo: bool = False

    # Firebase Auth
    firebase_project_id: Optional[str] = None
    google_application_credentials: Optional[str] = None

    # Booking lifecycle
    hold_window_minutes: int = 15
    transaction_max_attempts: int = 3

    # Hold-expiry reaper
    reaper_enabled: bool = True
    reaper_interval_seconds: float = 60.0
    reaper_batch_size: int = 100

    # Payments
    payment_provider: PaymentProvider = PaymentProvider.TPAY
    payment_timeout_seconds: float = 15.0
    payment_link_ttl_hours: int = 24

    # T-Pay Config
    tpay_base_url: str = "https://openapi.sandbox.tpay.com"
    tpay_client_id: Optional[str] = None
    tpay_secret: Optional[str] = None
    tpay_merchant_id: Optional[str] = None
    tpay_pos_id: Optional[str] = None
    tpay_api_key: Optional[str] = None
    tpay_webhook_url: Optional[str] = None
    tpay_language_code: str = "PL"

    @property
    def tpay_configured(self) -> bool:
        """True when the T-Pay OAuth credentials are present."""
        return bool(self.tpay_client_id and self.tpay_secret)


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
