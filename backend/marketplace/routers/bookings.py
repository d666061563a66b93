"""Bookings router.

Thin HTTP layer over BookingLifecycleManager. Domain failures are raised as
BookingError and rendered by the handler registered in main.py.
"""

from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from marketplace.core.security import AuthenticatedUser, require_user
from marketplace.models.enums import BookingStatus
from marketplace.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingCreateResponse,
    BookingListResponse,
    BookingRejectRequest,
    BookingResponse,
    BookingStatusUpdate,
)
from marketplace.services import BookingLifecycleManager, BookingResult, get_booking_manager
from marketplace.services.payments import CustomerContact

router = APIRouter(prefix="/bookings", tags=["bookings"])

SortOrder = Literal["newest", "oldest"]


def _to_create_response(result: BookingResult) -> BookingCreateResponse:
    return BookingCreateResponse(
        booking=BookingResponse.model_validate(result.booking),
        payment_link=result.payment_link,
        payment_error=result.payment_error,
    )


@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Place a hold on a listing and return the payment link.

    If the payment link could not be generated the hold is still created;
    payment_error explains why and the link can be requested again.
    """
    result = await manager.create_booking(
        listing_id=data.listing_id,
        renter_id=current_user.db_user_id,
        start_date=data.start_date,
        end_date=data.end_date,
        contact=CustomerContact(
            email=data.renter_contact.email,
            phone=data.renter_contact.phone,
        ),
        special_requests=data.special_requests,
    )
    return _to_create_response(result)


@router.get("/renter", response_model=BookingListResponse)
async def list_renter_bookings(
    status_filter: Optional[BookingStatus] = None,
    sort_by: SortOrder = "newest",
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Bookings made by the caller."""
    bookings = await manager.list_bookings_for_renter(
        current_user.db_user_id, status=status_filter, sort=sort_by
    )
    return BookingListResponse(count=len(bookings), bookings=bookings)


@router.get("/owner", response_model=BookingListResponse)
async def list_owner_bookings(
    status_filter: Optional[BookingStatus] = None,
    sort_by: SortOrder = "newest",
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Bookings on the caller's listings."""
    bookings = await manager.list_bookings_for_owner(
        current_user.db_user_id, status=status_filter, sort=sort_by
    )
    return BookingListResponse(count=len(bookings), bookings=bookings)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Get a booking (renter or owner only)."""
    return await manager.get_booking(booking_id, current_user.db_user_id)


@router.post("/{booking_id}/payment-link", response_model=BookingCreateResponse)
async def refresh_payment_link(
    booking_id: UUID,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Request a new payment link for an unexpired hold."""
    result = await manager.refresh_payment_link(booking_id, current_user.db_user_id)
    return _to_create_response(result)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: UUID,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Owner confirms a paid booking."""
    return await manager.confirm_booking(booking_id, current_user.db_user_id)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: UUID,
    data: BookingRejectRequest,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Owner rejects a paid booking and frees its dates."""
    return await manager.reject_booking(
        booking_id, current_user.db_user_id, data.rejection_reason
    )


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    data: BookingCancelRequest,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Renter or owner cancels a booking and frees its dates."""
    return await manager.cancel_booking(booking_id, current_user.db_user_id, data.reason)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    data: BookingStatusUpdate,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    current_user: AuthenticatedUser = Depends(require_user),
):
    """Advance pickup and/or return status."""
    return await manager.update_booking_status(
        booking_id,
        current_user.db_user_id,
        pickup_status=data.pickup_status,
        return_status=data.return_status,
    )
