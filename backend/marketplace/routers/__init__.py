"""API Routers for the rental marketplace."""

from marketplace.routers.auth import router as auth_router
from marketplace.routers.listings import router as listings_router
from marketplace.routers.bookings import router as bookings_router
from marketplace.routers.payments import router as payments_router

__all__ = [
    "auth_router",
    "listings_router",
    "bookings_router",
    "payments_router",
]
