"""Services for the rental marketplace, plus the factories routers depend on."""

from datetime import timedelta

from marketplace.core.config import get_settings
from marketplace.services.audit import AuditService
from marketplace.services.bookings import BookingLifecycleManager, BookingResult
from marketplace.services.listings import ListingService
from marketplace.services.payments import PaymentLinkProvider, get_payment_provider
from marketplace.services.reaper import HoldExpiryReaper
from marketplace.services.transactions import TransactionalCoordinator


def get_coordinator() -> TransactionalCoordinator:
    """Coordinator bound to the application session factory."""
    from marketplace.core.database import SessionLocal

    settings = get_settings()
    return TransactionalCoordinator(SessionLocal, max_attempts=settings.transaction_max_attempts)


def get_booking_manager() -> BookingLifecycleManager:
    settings = get_settings()
    return BookingLifecycleManager(
        coordinator=get_coordinator(),
        payment_provider=get_payment_provider(),
        hold_window=timedelta(minutes=settings.hold_window_minutes),
        payment_link_ttl=timedelta(hours=settings.payment_link_ttl_hours),
        payment_timeout=settings.payment_timeout_seconds,
    )


def get_listing_service() -> ListingService:
    return ListingService(get_coordinator())


def get_reaper() -> HoldExpiryReaper:
    settings = get_settings()
    return HoldExpiryReaper(get_coordinator(), batch_size=settings.reaper_batch_size)


__all__ = [
    "AuditService",
    "BookingLifecycleManager",
    "BookingResult",
    "ListingService",
    "PaymentLinkProvider",
    "HoldExpiryReaper",
    "TransactionalCoordinator",
    "get_coordinator",
    "get_booking_manager",
    "get_listing_service",
    "get_payment_provider",
    "get_reaper",
]
