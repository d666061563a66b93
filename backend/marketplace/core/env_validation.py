"""
Startup environment validation.

validate_environment() runs from the FastAPI lifespan before any request is
served. Every problem found is reported at once, then the process exits with
code 1 so a misconfigured deployment never takes bookings.
"""

import os
import sys
from typing import Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProductionSettings(BaseSettings):
    """Variables a production deployment must provide."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # REQUIRED
    database_url: str
    firebase_project_id: str
    allowed_origins: str

    google_application_credentials: Optional[str] = None
    app_name: str = "Rental Marketplace"
    debug: bool = False

    # Holds and the reaper
    hold_window_minutes: int = 15
    transaction_max_attempts: int = 3
    reaper_enabled: bool = True
    reaper_interval_seconds: float = 60.0
    reaper_batch_size: int = 100

    # T-Pay
    payment_provider: str = "tpay"
    tpay_client_id: Optional[str] = None
    tpay_secret: Optional[str] = None
    tpay_api_key: Optional[str] = None
    tpay_webhook_url: Optional[str] = None


def _cors_problems(settings: ProductionSettings) -> list[str]:
    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    if not origins:
        return ["ALLOWED_ORIGINS is empty"]
    if not settings.debug and "*" in origins:
        return ["Wildcard CORS origin (*) is not allowed outside debug mode"]
    return []


def _payment_problems(settings: ProductionSettings) -> list[str]:
    if settings.payment_provider != "tpay":
        return [f"Invalid PAYMENT_PROVIDER '{settings.payment_provider}'. Must be 'tpay'."]
    missing = [
        name.upper()
        for name in ("tpay_client_id", "tpay_secret", "tpay_api_key")
        if not getattr(settings, name)
    ]
    problems = []
    if missing:
        problems.append(f"{', '.join(missing)} required when PAYMENT_PROVIDER=tpay")
    if settings.tpay_webhook_url and not settings.debug and not settings.tpay_webhook_url.startswith("https://"):
        problems.append("TPAY_WEBHOOK_URL must use https outside debug mode")
    return problems


def _booking_problems(settings: ProductionSettings) -> list[str]:
    problems = []
    if settings.hold_window_minutes <= 0:
        problems.append("HOLD_WINDOW_MINUTES must be positive")
    if settings.transaction_max_attempts < 1:
        problems.append("TRANSACTION_MAX_ATTEMPTS must be at least 1")
    if settings.reaper_enabled and (settings.reaper_interval_seconds <= 0 or settings.reaper_batch_size <= 0):
        problems.append("REAPER_INTERVAL_SECONDS and REAPER_BATCH_SIZE must be positive")
    return problems


def _infrastructure_problems(settings: ProductionSettings) -> list[str]:
    problems = []
    if not settings.database_url.startswith("postgresql"):
        problems.append("DATABASE_URL must be a PostgreSQL connection string (postgresql+asyncpg://)")
    credentials = settings.google_application_credentials
    if credentials and not os.path.exists(credentials):
        problems.append(f"Firebase credentials file not found: {credentials}")
    return problems


def validate_environment() -> ProductionSettings:
    """
    Validate the environment or exit.

    Returns:
        ProductionSettings: the validated settings

    Raises:
        SystemExit: exit code 1 on any problem
    """
    try:
        settings = ProductionSettings()
    except ValidationError as e:
        print("❌ FATAL: Environment validation failed", file=sys.stderr)
        print("\nMissing or invalid environment variables:", file=sys.stderr)
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            print(f"   • {field}: {error['msg']}", file=sys.stderr)
        print("\nPlease check your .env file or environment variables.", file=sys.stderr)
        sys.exit(1)

    problems = [
        *_cors_problems(settings),
        *_payment_problems(settings),
        *_booking_problems(settings),
        *_infrastructure_problems(settings),
    ]
    if problems:
        print("❌ FATAL: Invalid production configuration", file=sys.stderr)
        for problem in problems:
            print(f"   • {problem}", file=sys.stderr)
        sys.exit(1)

    print("✅ Environment validation passed")
    print(f"   App: {settings.app_name} (debug={settings.debug})")
    print(f"   Payments: {settings.payment_provider}")
    print(
        f"   Holds: {settings.hold_window_minutes} min, reaper "
        f"{'every ' + str(settings.reaper_interval_seconds) + 's' if settings.reaper_enabled else 'disabled'}"
    )
    print(f"   CORS Origins: {settings.allowed_origins}")
    return settings


if __name__ == "__main__":
    validate_environment()
