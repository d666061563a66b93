"""Booking model - a renter's reservation of a listing for a date range."""

import secrets
import string
import time
import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.core.database import Base
from marketplace.models.enums import BookingStatus, HandoverStatus, PaymentStatus

if TYPE_CHECKING:
    from marketplace.models.listing import Listing

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_booking_code() -> str:
    """Human-readable booking reference, e.g. ``BK482913Q7ZD``."""
    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(4))
    return f"BK{timestamp}{suffix}"


class Booking(Base):
    """A booking of a listing.

    date_range is the materialized list of every ISO day from start_date to
    end_date inclusive. It is set once at creation and never changes; the
    listing calendar is the mutable side.
    """

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    booking_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        default=generate_booking_code,
    )
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    renter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Denormalized from the listing for authorization checks
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Dates
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    date_range: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )

    # Financials
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="PLN")

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus),
        default=BookingStatus.HOLD,
        nullable=False,
        index=True,
    )
    hold_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, index=True
    )

    # Handover tracking
    pickup_status: Mapped[HandoverStatus] = mapped_column(
        SQLEnum(HandoverStatus), default=HandoverStatus.PENDING, nullable=False
    )
    return_status: Mapped[HandoverStatus] = mapped_column(
        SQLEnum(HandoverStatus), default=HandoverStatus.PENDING, nullable=False
    )
    pickup_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    return_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Renter details
    renter_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    renter_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Owner decision
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Cancellation
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Payment
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_attempts: Mapped[int] = mapped_column(Integer, default=0)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    listing: Mapped["Listing"] = relationship("Listing", back_populates="bookings")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_bookings_listing_status", "listing_id", "status"),
        Index("ix_bookings_renter_status", "renter_id", "status"),
        Index("ix_bookings_owner_status", "owner_id", "status"),
        Index("ix_bookings_dates", "start_date", "end_date"),
    )

    @property
    def duration_days(self) -> int:
        return len(self.date_range or [])
