"""Per-listing booking calendar.

The listing row is the authoritative record of which days are taken.
reserved_dates holds days of hold/pending bookings, confirmed_dates holds days
of owner-approved bookings. All writes are plain set union / difference on
the row loaded in the caller's session; the caller owns the transaction.
"""

import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.errors import NotFound
from marketplace.models.booking import Booking
from marketplace.models.listing import Listing
from marketplace.services.availability import DateLike, normalize_dates, to_iso_list

logger = logging.getLogger(__name__)


async def load_listing_for_update(session: AsyncSession, listing_id: uuid.UUID) -> Listing:
    """Load a listing row for a calendar read-then-write.

    Locks the row on dialects with SELECT ... FOR UPDATE. Everywhere else the
    version counter rejects the second of two writers at flush time.
    """
    result = await session.execute(
        select(Listing)
        .where(Listing.id == listing_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    listing = result.scalar_one_or_none()
    if listing is None:
        raise NotFound("Listing not found")
    return listing


async def lock_booking_with_listing(
    session: AsyncSession, booking_id: uuid.UUID
) -> tuple[Optional[Booking], Optional[Listing]]:
    """Lock a booking and its listing, listing first.

    Every unit of work that holds both locks takes them in this order, the
    same order create_booking uses when it reaps a listing's lapsed holds.
    The booking is None when it does not exist.
    """
    listing_id = await session.scalar(select(Booking.listing_id).where(Booking.id == booking_id))
    if listing_id is None:
        return None, None
    listing = await load_listing_for_update(session, listing_id)
    result = await session.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none(), listing


def reserve_dates(listing: Listing, dates: Iterable[DateLike]) -> None:
    """Add days to reserved_dates. Idempotent; does not check conflicts."""
    listing.reserved_dates = to_iso_list([*(listing.reserved_dates or []), *dates])


def confirm_dates(listing: Listing, dates: Iterable[DateLike]) -> None:
    """Move days from reserved_dates to confirmed_dates."""
    days = normalize_dates(dates)
    remaining = normalize_dates(listing.reserved_dates or []) - days
    listing.reserved_dates = to_iso_list(remaining)
    listing.confirmed_dates = to_iso_list([*(listing.confirmed_dates or []), *days])


def release_dates(listing: Listing, dates: Iterable[DateLike], *, confirmed: bool = False) -> None:
    """Remove days from reserved_dates, or from confirmed_dates if ``confirmed``.

    Releasing days that are not present is a no-op.
    """
    days = normalize_dates(dates)
    if confirmed:
        current = normalize_dates(listing.confirmed_dates or [])
        if current & days:
            listing.confirmed_dates = to_iso_list(current - days)
    else:
        current = normalize_dates(listing.reserved_dates or [])
        if current & days:
            listing.reserved_dates = to_iso_list(current - days)
    logger.debug(
        f"[CALENDAR] Released {len(days)} day(s) on listing {listing.id} "
        f"({'confirmed' if confirmed else 'reserved'})"
    )
