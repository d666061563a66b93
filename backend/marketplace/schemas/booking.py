"""Booking schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, EmailStr, Field, model_validator

from marketplace.models.enums import BookingStatus, HandoverStatus, PaymentStatus
from marketplace.schemas.base import BaseSchema, IDMixin, TimestampMixin


class RenterContact(BaseSchema):
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)


class BookingCreate(BaseSchema):
    """Request a booking. Both dates are inclusive calendar days."""

    listing_id: UUID
    start_date: date
    end_date: date
    renter_contact: RenterContact
    special_requests: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_dates(self):
        """End date must be after start date."""
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class BookingRejectRequest(BaseSchema):
    rejection_reason: str = Field(..., min_length=1, max_length=2000)


class BookingCancelRequest(BaseSchema):
    reason: Optional[str] = Field(None, max_length=2000)


class BookingStatusUpdate(BaseSchema):
    """Pickup / return progress. At least one field is required."""

    pickup_status: Optional[HandoverStatus] = Field(
        None, validation_alias=AliasChoices("pickup_status", "pickupStatus")
    )
    return_status: Optional[HandoverStatus] = Field(
        None, validation_alias=AliasChoices("return_status", "returnStatus")
    )


class BookingResponse(BaseSchema, IDMixin, TimestampMixin):
    """Booking response."""

    booking_code: str
    listing_id: UUID
    renter_id: UUID
    owner_id: UUID
    start_date: date
    end_date: date
    date_range: list[date]
    duration_days: int
    total_amount: Decimal
    deposit_amount: Decimal
    currency: str
    status: BookingStatus
    hold_expires_at: Optional[datetime] = None
    pickup_status: HandoverStatus
    return_status: HandoverStatus
    pickup_completed_at: Optional[datetime] = None
    return_completed_at: Optional[datetime] = None
    special_requests: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[UUID] = None
    cancellation_reason: Optional[str] = None
    payment_status: PaymentStatus
    payment_url: Optional[str] = None
    payment_expires_at: Optional[datetime] = None


class BookingCreateResponse(BaseSchema):
    """New hold plus the payment link, or the reason the link is missing."""

    booking: BookingResponse
    payment_link: Optional[str] = None
    payment_error: Optional[str] = None


class BookingListResponse(BaseSchema):
    count: int
    bookings: list[BookingResponse]
