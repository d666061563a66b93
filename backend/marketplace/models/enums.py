"""Enumeration types for the rental marketplace domain model."""

from enum import Enum


class ListingStatus(str, Enum):
    """Publication status of a listing."""
    DRAFT = "draft"
    PUBLISHED = "published"
    BOOSTED = "boosted"
    EXPIRED = "expired"


class BookingStatus(str, Enum):
    """Lifecycle status of a booking.

    HOLD is a short-lived pre-payment reservation. ACTIVE and COMPLETED are
    derived from pickup/return progress.
    """
    HOLD = "hold"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class HandoverStatus(str, Enum):
    """Pickup / return sub-state."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditAction(str, Enum):
    """Audit log action types."""
    LISTING_CREATED = "listing_created"
    LISTING_UPDATED = "listing_updated"
    BOOKING_HELD = "booking_held"
    BOOKING_PAID = "booking_paid"
    BOOKING_PAYMENT_FAILED = "booking_payment_failed"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_STATUS_UPDATED = "booking_status_updated"
    HOLD_EXPIRED = "hold_expired"
