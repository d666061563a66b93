"""Listing schemas."""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from marketplace.models.enums import ListingStatus
from marketplace.schemas.base import BaseSchema, IDMixin, TimestampMixin


class ListingCreate(BaseSchema):
    """Create a new listing."""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price_per_day: Decimal = Field(..., gt=0, decimal_places=2)
    deposit_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    currency: str = Field(default="PLN", min_length=3, max_length=3)
    status: ListingStatus = ListingStatus.PUBLISHED
    available_months: list[str] = Field(default_factory=list)
    available_days_of_week: list[str] = Field(default_factory=list)
    pickup_hours: Optional[str] = Field(None, max_length=50, examples=["9:00 AM - 5:00 PM"])
    return_hours: Optional[str] = Field(None, max_length=50)


class ListingAvailabilityUpdate(BaseSchema):
    """Availability settings. Omitted fields stay unchanged, empty lists mean no restriction."""

    available_months: Optional[list[str]] = None
    available_days_of_week: Optional[list[str]] = None
    pickup_hours: Optional[str] = Field(None, max_length=50)
    return_hours: Optional[str] = Field(None, max_length=50)


class ListingPricingUpdate(BaseSchema):
    """Pricing update."""

    price_per_day: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    deposit_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)


class ListingStatusUpdate(BaseSchema):
    status: ListingStatus


class ListingResponse(BaseSchema, IDMixin, TimestampMixin):
    """Listing response."""

    owner_id: UUID
    title: str
    description: Optional[str] = None
    price_per_day: Decimal
    deposit_amount: Decimal
    currency: str
    status: ListingStatus
    available_months: list[str]
    available_days_of_week: list[str]
    pickup_hours: Optional[str] = None
    return_hours: Optional[str] = None


class ListingCalendarResponse(BaseSchema):
    """Days currently taken on a listing."""

    listing_id: UUID
    reserved_dates: list[date]
    confirmed_dates: list[date]
