"""Listings router."""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from marketplace.core.security import AuthenticatedUser, require_user
from marketplace.schemas.listing import (
    ListingAvailabilityUpdate,
    ListingCalendarResponse,
    ListingCreate,
    ListingPricingUpdate,
    ListingResponse,
    ListingStatusUpdate,
)
from marketplace.services import ListingService, get_listing_service

router = APIRouter(prefix="/listings", tags=["listings"])


@router.post("", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    data: ListingCreate,
    service: ListingService = Depends(get_listing_service),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Create a listing owned by the caller."""
    return await service.create_listing(
        owner_id=current_user.db_user_id,
        title=data.title,
        description=data.description,
        price_per_day=data.price_per_day,
        deposit_amount=data.deposit_amount,
        currency=data.currency,
        status=data.status,
        available_months=data.available_months,
        available_days_of_week=data.available_days_of_week,
        pickup_hours=data.pickup_hours,
        return_hours=data.return_hours,
    )


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: UUID,
    service: ListingService = Depends(get_listing_service),
):
    """Get a listing by ID."""
    return await service.get_listing(listing_id)


@router.get("/{listing_id}/calendar", response_model=ListingCalendarResponse)
async def get_listing_calendar(
    listing_id: UUID,
    service: ListingService = Depends(get_listing_service),
):
    """Days currently held or booked on a listing."""
    listing = await service.get_listing(listing_id)
    return ListingCalendarResponse(
        listing_id=listing.id,
        reserved_dates=listing.reserved_dates,
        confirmed_dates=listing.confirmed_dates,
    )


@router.patch("/{listing_id}/availability", response_model=ListingResponse)
async def update_availability(
    listing_id: UUID,
    data: ListingAvailabilityUpdate,
    service: ListingService = Depends(get_listing_service),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Update allowed months, days of week and pickup/return hours."""
    return await service.update_availability_settings(
        listing_id,
        current_user.db_user_id,
        available_months=data.available_months,
        available_days_of_week=data.available_days_of_week,
        pickup_hours=data.pickup_hours,
        return_hours=data.return_hours,
    )


@router.patch("/{listing_id}/pricing", response_model=ListingResponse)
async def update_pricing(
    listing_id: UUID,
    data: ListingPricingUpdate,
    service: ListingService = Depends(get_listing_service),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Update the daily price and/or deposit."""
    return await service.update_pricing(
        listing_id,
        current_user.db_user_id,
        price_per_day=data.price_per_day,
        deposit_amount=data.deposit_amount,
    )


@router.patch("/{listing_id}/status", response_model=ListingResponse)
async def update_status(
    listing_id: UUID,
    data: ListingStatusUpdate,
    service: ListingService = Depends(get_listing_service),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Publish, unpublish or expire a listing."""
    return await service.update_status(listing_id, current_user.db_user_id, data.status)
