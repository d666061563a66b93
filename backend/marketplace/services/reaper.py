"""Hold-expiry reaper.

A hold that was never paid must not lock calendar days forever. Reaping a
hold deletes the booking row and, in the same transaction, removes its days
from the listing's reserved_dates. Reaping is idempotent: a hold that is
already gone, was paid in the meantime, or has not expired yet is skipped.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.errors import TransactionAbort
from marketplace.models.booking import Booking
from marketplace.models.enums import AuditAction, BookingStatus
from marketplace.models.listing import Listing
from marketplace.services.audit import AuditService
from marketplace.services.calendar import lock_booking_with_listing, release_dates
from marketplace.services.transactions import TransactionalCoordinator

logger = logging.getLogger(__name__)


def is_expired_hold(booking: Booking, now: datetime) -> bool:
    return (
        booking.status == BookingStatus.HOLD
        and booking.hold_expires_at is not None
        and booking.hold_expires_at <= now
    )


async def reap_expired_hold(session: AsyncSession, listing: Listing, booking: Booking) -> None:
    """Release a hold's days and delete it. Both rows must be loaded in ``session``."""
    release_dates(listing, booking.date_range)
    await AuditService(session).log_booking(
        AuditAction.HOLD_EXPIRED,
        booking,
        dates=list(booking.date_range),
        hold_expires_at=booking.hold_expires_at.isoformat(),
    )
    await session.delete(booking)
    logger.info(f"[REAPER] Released dates for expired hold {booking.booking_code} ({booking.id})")


async def reap_listing_holds(session: AsyncSession, listing: Listing, now: datetime) -> int:
    """Reap every expired hold of one listing inside the caller's transaction."""
    result = await session.execute(
        select(Booking)
        .where(
            Booking.listing_id == listing.id,
            Booking.status == BookingStatus.HOLD,
            Booking.hold_expires_at <= now,
        )
        .with_for_update()
    )
    holds = result.scalars().all()
    for booking in holds:
        await reap_expired_hold(session, listing, booking)
    return len(holds)


class HoldExpiryReaper:
    """Periodic sweep that reaps expired holds, one transaction per hold."""

    def __init__(
        self,
        coordinator: TransactionalCoordinator,
        batch_size: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.coordinator = coordinator
        self.batch_size = batch_size
        self.clock = clock or datetime.utcnow

    async def find_expired_holds(self, now: datetime) -> list[uuid.UUID]:
        async def work(session: AsyncSession) -> list[uuid.UUID]:
            result = await session.execute(
                select(Booking.id)
                .where(
                    Booking.status == BookingStatus.HOLD,
                    Booking.hold_expires_at <= now,
                )
                .order_by(Booking.hold_expires_at)
                .limit(self.batch_size)
            )
            return list(result.scalars().all())

        return await self.coordinator.run(work, name="find_expired_holds")

    async def reap_hold(self, booking_id: uuid.UUID, now: Optional[datetime] = None) -> bool:
        """Reap one hold if it is still an expired hold. Returns True if reaped."""
        now = now or self.clock()

        async def work(session: AsyncSession) -> bool:
            booking, listing = await lock_booking_with_listing(session, booking_id)
            if booking is None or not is_expired_hold(booking, now):
                return False
            await reap_expired_hold(session, listing, booking)
            return True

        return await self.coordinator.run(work, name="reap_hold")

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Reap all holds expired at ``now``. Returns the number reaped."""
        now = now or self.clock()
        reaped = 0
        for booking_id in await self.find_expired_holds(now):
            try:
                if await self.reap_hold(booking_id, now):
                    reaped += 1
            except TransactionAbort as e:
                # Left in place; the next sweep picks it up again
                logger.warning(f"[REAPER] Could not reap hold {booking_id}: {e.message}")
        if reaped:
            logger.info(f"[REAPER] Sweep reaped {reaped} expired hold(s)")
        return reaped

    async def run_forever(self, interval_seconds: float) -> None:
        """Sweep every ``interval_seconds`` until cancelled."""
        logger.info(f"[REAPER] Started, sweeping every {interval_seconds}s")
        while True:
            try:
                await self.sweep()
            except TransactionAbort as e:
                logger.error(f"[REAPER] Sweep failed: {e.message}")
            await asyncio.sleep(interval_seconds)
