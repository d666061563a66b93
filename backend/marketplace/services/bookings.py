"""Booking lifecycle manager.

State machine::

    hold -> pending -> confirmed -> active -> completed
      |        |           |
      +--------+-----------+--> cancelled
               +--> rejected

hold is a pre-payment reservation that expires, pending is paid and awaiting
the owner, active and completed follow pickup and return completion. Every
transition that touches the listing calendar runs in a single unit of work
with the booking change, so the calendar and the booking never diverge.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.errors import (
    BookingError,
    DatesUnavailable,
    ExternalServiceFailure,
    InvalidInput,
    InvalidStateTransition,
    NotFound,
    Unauthorized,
)
from marketplace.models.booking import Booking
from marketplace.models.enums import (
    AuditAction,
    BookingStatus,
    HandoverStatus,
    PaymentStatus,
)
from marketplace.models.listing import Listing
from marketplace.services.audit import AuditService
from marketplace.services.availability import (
    DateLike,
    expand_date_range,
    find_unavailable_dates,
    is_within_operating_hours,
    normalize_date,
    time_of_day,
    to_iso_list,
)
from marketplace.services.calendar import (
    confirm_dates,
    load_listing_for_update,
    lock_booking_with_listing,
    release_dates,
    reserve_dates,
)
from marketplace.services.payments import (
    CustomerContact,
    PaymentLinkError,
    PaymentLinkProvider,
)
from marketplace.services.reaper import reap_listing_holds
from marketplace.services.transactions import TransactionalCoordinator

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (BookingStatus.HOLD, BookingStatus.PENDING, BookingStatus.CONFIRMED)
HANDOVER_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.ACTIVE)

# Forward-only transitions for pickup and return
HANDOVER_TRANSITIONS = {
    HandoverStatus.PENDING: {HandoverStatus.IN_PROGRESS, HandoverStatus.CANCELLED},
    HandoverStatus.IN_PROGRESS: {HandoverStatus.COMPLETED, HandoverStatus.CANCELLED},
    HandoverStatus.COMPLETED: set(),
    HandoverStatus.CANCELLED: set(),
}

CENT = Decimal("0.01")


@dataclass
class BookingResult:
    """A mutated booking plus the outcome of the payment link request."""

    booking: Booking
    payment_link: Optional[str] = None
    payment_error: Optional[str] = None


def _parse_handover_status(value: Union[HandoverStatus, str, None], field: str) -> Optional[HandoverStatus]:
    if value is None or isinstance(value, HandoverStatus):
        return value
    try:
        return HandoverStatus(value)
    except ValueError:
        raise InvalidInput(f"Invalid {field}: {value}")


class BookingLifecycleManager:
    """Creates bookings and drives them through their lifecycle."""

    def __init__(
        self,
        coordinator: TransactionalCoordinator,
        payment_provider: PaymentLinkProvider,
        hold_window: timedelta = timedelta(minutes=15),
        payment_link_ttl: timedelta = timedelta(hours=24),
        payment_timeout: float = 15.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.coordinator = coordinator
        self.payment_provider = payment_provider
        self.hold_window = hold_window
        self.payment_link_ttl = payment_link_ttl
        self.payment_timeout = payment_timeout
        self.clock = clock or datetime.utcnow

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_booking_for_update(self, session: AsyncSession, booking_id: uuid.UUID) -> Booking:
        result = await session.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFound("Booking not found")
        return booking

    async def _get_booking_and_listing_for_update(
        self, session: AsyncSession, booking_id: uuid.UUID
    ) -> tuple[Booking, Listing]:
        booking, listing = await lock_booking_with_listing(session, booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        return booking, listing

    @staticmethod
    def _require_participant(booking: Booking, user_id: uuid.UUID, message: str) -> None:
        if user_id not in (booking.renter_id, booking.owner_id):
            raise Unauthorized(message)

    @staticmethod
    def _require_status(booking: Booking, allowed: tuple[BookingStatus, ...], message: str) -> None:
        if booking.status not in allowed:
            raise InvalidStateTransition(message, booking.status.value)

    async def _request_payment_link(
        self, booking: Booking, listing_title: str
    ) -> tuple[Optional[str], Optional[str]]:
        """Ask the gateway for a link. Returns (url, error); never raises."""
        try:
            url = await asyncio.wait_for(
                self.payment_provider.create_payment_link(
                    amount=booking.total_amount,
                    currency=booking.currency,
                    description=f"Booking for {listing_title}",
                    reference_id=str(booking.id),
                    customer_contact=CustomerContact(
                        email=booking.renter_email,
                        phone=booking.renter_phone,
                    ),
                ),
                timeout=self.payment_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[BOOKING] Payment link timed out for {booking.booking_code}")
            return None, "Payment link generation timed out"
        except PaymentLinkError as e:
            logger.warning(f"[BOOKING] Payment link failed for {booking.booking_code}: {e}")
            return None, str(e) or "Payment link generation failed"
        except Exception:
            logger.exception(f"[BOOKING] Payment provider error for {booking.booking_code}")
            return None, "Payment link generation failed"
        return url, None

    async def _store_payment_link(self, booking_id: uuid.UUID, url: str) -> Optional[Booking]:
        now = self.clock()

        async def work(session: AsyncSession) -> Optional[Booking]:
            result = await session.execute(
                select(Booking).where(Booking.id == booking_id).with_for_update()
            )
            booking = result.scalar_one_or_none()
            if booking is None:
                # Reaped while the gateway was answering
                return None
            booking.payment_url = url
            booking.payment_method = self.payment_provider.method
            booking.payment_expires_at = now + self.payment_link_ttl
            return booking

        return await self.coordinator.run(work, name="store_payment_link")

    # ------------------------------------------------------------------
    # Creation and payment
    # ------------------------------------------------------------------

    async def create_booking(
        self,
        listing_id: uuid.UUID,
        renter_id: uuid.UUID,
        start_date: Optional[DateLike],
        end_date: Optional[DateLike],
        contact: Optional[CustomerContact],
        special_requests: Optional[str] = None,
    ) -> BookingResult:
        """Place a hold on a listing for ``start_date``..``end_date`` inclusive.

        The availability check, the calendar reservation and the booking
        insert are one unit of work. The payment link is requested after the
        commit; if that fails the hold stays and expires on its own.
        """
        if not listing_id or start_date is None or end_date is None:
            raise InvalidInput("Missing required booking fields")
        try:
            start = normalize_date(start_date)
            end = normalize_date(end_date)
            pickup_time = time_of_day(start_date)
            return_time = time_of_day(end_date)
        except (TypeError, ValueError) as e:
            raise InvalidInput(str(e))
        if contact is None or not contact.email:
            raise InvalidInput("Renter contact email is required")

        now = self.clock()
        if start < now.date():
            raise InvalidInput("Start date cannot be in the past")
        if end <= start:
            raise InvalidInput("End date must be after start date")

        days = expand_date_range(start, end)

        async def work(session: AsyncSession) -> tuple[Booking, str]:
            listing = await load_listing_for_update(session, listing_id)
            if not listing.is_bookable():
                raise InvalidInput("Listing is not available for booking")
            if listing.owner_id == renter_id:
                raise InvalidInput("You cannot book your own listing")

            if pickup_time is not None and not is_within_operating_hours(
                pickup_time, listing.pickup_hours
            ):
                raise DatesUnavailable([start], "Pickup time is outside the listing's pickup hours")
            if return_time is not None and not is_within_operating_hours(
                return_time, listing.return_hours
            ):
                raise DatesUnavailable([end], "Return time is outside the listing's return hours")

            # Lapsed holds must never block a new booking, even between sweeps
            await reap_listing_holds(session, listing, now)

            unavailable = find_unavailable_dates(
                days,
                listing.reserved_dates,
                listing.confirmed_dates,
                listing.available_months,
                listing.available_days_of_week,
            )
            if unavailable:
                raise DatesUnavailable(unavailable)

            reserve_dates(listing, days)
            booking = Booking(
                listing_id=listing.id,
                renter_id=renter_id,
                owner_id=listing.owner_id,
                start_date=start,
                end_date=end,
                date_range=to_iso_list(days),
                total_amount=(Decimal(listing.price_per_day) * len(days)).quantize(CENT),
                deposit_amount=listing.deposit_amount or Decimal("0"),
                currency=listing.currency,
                status=BookingStatus.HOLD,
                hold_expires_at=now + self.hold_window,
                renter_email=contact.email,
                renter_phone=contact.phone,
                special_requests=special_requests,
                payment_status=PaymentStatus.PENDING,
            )
            session.add(booking)
            await session.flush()

            await AuditService(session).log_booking(
                AuditAction.BOOKING_HELD,
                booking,
                user_id=renter_id,
                dates=booking.date_range,
                total_amount=str(booking.total_amount),
            )
            return booking, listing.title

        booking, title = await self.coordinator.run(work, name="create_booking")
        logger.info(
            f"[BOOKING] Hold {booking.booking_code} placed on listing {listing_id} "
            f"for {start.isoformat()}..{end.isoformat()}"
        )

        url, error = await self._request_payment_link(booking, title)
        if url:
            try:
                stored = await self._store_payment_link(booking.id, url)
            except BookingError as e:
                # The hold is committed; report the link failure on the result
                logger.warning(
                    f"[BOOKING] Could not store payment link for {booking.booking_code}: {e.message}"
                )
                url, error = None, "Payment link could not be saved"
            else:
                booking = stored or booking
        return BookingResult(booking=booking, payment_link=url, payment_error=error)

    async def refresh_payment_link(self, booking_id: uuid.UUID, renter_id: uuid.UUID) -> BookingResult:
        """Request a new payment link for an unexpired hold."""
        now = self.clock()

        async def work(session: AsyncSession) -> tuple[Booking, str]:
            result = await session.execute(
                select(Booking, Listing.title)
                .join(Listing, Listing.id == Booking.listing_id)
                .where(Booking.id == booking_id)
            )
            row = result.first()
            if row is None:
                raise NotFound("Booking not found")
            booking, title = row
            if booking.renter_id != renter_id:
                raise Unauthorized("Only the renter can pay for this booking")
            if booking.status != BookingStatus.HOLD or booking.hold_expires_at <= now:
                raise InvalidStateTransition(
                    f"Payment link is only available for active holds (booking is {booking.status.value})",
                    booking.status.value,
                )
            return booking, title

        booking, title = await self.coordinator.run(work, name="refresh_payment_link")
        url, error = await self._request_payment_link(booking, title)
        if error:
            raise ExternalServiceFailure(f"Payment link generation failed: {error}")
        stored = await self._store_payment_link(booking.id, url)
        if stored is None:
            raise NotFound("Booking not found")
        return BookingResult(booking=stored, payment_link=url)

    async def record_payment(
        self,
        booking_id: uuid.UUID,
        transaction_id: Optional[str],
        amount: Optional[Union[Decimal, str, float]],
        paid: bool,
    ) -> Booking:
        """Apply a payment notification. A paid hold becomes pending.

        Redelivered notifications for an already paid booking are no-ops.
        """
        now = self.clock()
        try:
            amount_value = Decimal(str(amount)).quantize(CENT) if amount is not None else None
        except InvalidOperation:
            raise InvalidInput(f"Invalid payment amount: {amount}")

        async def work(session: AsyncSession) -> Booking:
            booking = await self._get_booking_for_update(session, booking_id)
            if booking.payment_status == PaymentStatus.COMPLETED:
                return booking
            if amount_value is not None and amount_value != booking.total_amount:
                raise InvalidInput("Amount mismatch")

            audit = AuditService(session)
            if not paid:
                booking.payment_status = PaymentStatus.FAILED
                booking.payment_attempts = (booking.payment_attempts or 0) + 1
                await audit.log_booking(
                    AuditAction.BOOKING_PAYMENT_FAILED,
                    booking,
                    transaction_id=transaction_id,
                    attempts=booking.payment_attempts,
                )
                return booking

            self._require_status(
                booking,
                (BookingStatus.HOLD,),
                f"Booking is already {booking.status.value}",
            )
            booking.status = BookingStatus.PENDING
            booking.payment_status = PaymentStatus.COMPLETED
            booking.payment_id = transaction_id
            booking.paid_at = now
            booking.hold_expires_at = None
            await audit.log_booking(
                AuditAction.BOOKING_PAID, booking, transaction_id=transaction_id
            )
            return booking

        booking = await self.coordinator.run(work, name="record_payment")
        logger.info(
            f"[BOOKING] Payment {'completed' if paid else 'failed'} for {booking.booking_code}"
        )
        return booking

    # ------------------------------------------------------------------
    # Owner decisions and cancellation
    # ------------------------------------------------------------------

    async def confirm_booking(self, booking_id: uuid.UUID, owner_id: uuid.UUID) -> Booking:
        """Owner approves a paid booking; its days move to confirmed_dates."""
        now = self.clock()

        async def work(session: AsyncSession) -> Booking:
            booking, listing = await self._get_booking_and_listing_for_update(session, booking_id)
            if booking.owner_id != owner_id:
                raise Unauthorized("You are not authorized to confirm this booking")
            self._require_status(
                booking, (BookingStatus.PENDING,), f"Booking is already {booking.status.value}"
            )

            confirm_dates(listing, booking.date_range)

            booking.status = BookingStatus.CONFIRMED
            booking.confirmed_at = now
            await AuditService(session).log_booking(
                AuditAction.BOOKING_CONFIRMED, booking, user_id=owner_id
            )
            return booking

        booking = await self.coordinator.run(work, name="confirm_booking")
        logger.info(f"[BOOKING] {booking.booking_code} confirmed by owner")
        return booking

    async def reject_booking(
        self, booking_id: uuid.UUID, owner_id: uuid.UUID, reason: Optional[str]
    ) -> Booking:
        """Owner declines a paid booking; its reserved days are released."""
        reason = (reason or "").strip()
        if not reason:
            raise InvalidInput("Rejection reason is required")
        now = self.clock()

        async def work(session: AsyncSession) -> Booking:
            booking, listing = await self._get_booking_and_listing_for_update(session, booking_id)
            if booking.owner_id != owner_id:
                raise Unauthorized("You are not authorized to reject this booking")
            self._require_status(
                booking, (BookingStatus.PENDING,), f"Booking is already {booking.status.value}"
            )

            release_dates(listing, booking.date_range)

            booking.status = BookingStatus.REJECTED
            booking.rejected_at = now
            booking.rejection_reason = reason
            await AuditService(session).log_booking(
                AuditAction.BOOKING_REJECTED, booking, user_id=owner_id, reason=reason
            )
            return booking

        booking = await self.coordinator.run(work, name="reject_booking")
        logger.info(f"[BOOKING] {booking.booking_code} rejected by owner")
        return booking

    async def cancel_booking(
        self, booking_id: uuid.UUID, user_id: uuid.UUID, reason: Optional[str] = None
    ) -> Booking:
        """Renter or owner cancels. Days are released from the set they occupy:
        reserved_dates for hold/pending, confirmed_dates for confirmed.
        """
        reason = (reason or "").strip() or None
        now = self.clock()

        async def work(session: AsyncSession) -> Booking:
            booking, listing = await self._get_booking_and_listing_for_update(session, booking_id)
            self._require_participant(booking, user_id, "You can only cancel your own bookings")
            self._require_status(
                booking,
                CANCELLABLE_STATUSES,
                f"Booking cannot be cancelled (booking is {booking.status.value})",
            )

            previous = booking.status
            release_dates(
                listing,
                booking.date_range,
                confirmed=previous == BookingStatus.CONFIRMED,
            )

            booking.status = BookingStatus.CANCELLED
            booking.cancelled_by = user_id
            booking.cancelled_at = now
            booking.cancellation_reason = reason
            booking.hold_expires_at = None
            await AuditService(session).log_booking(
                AuditAction.BOOKING_CANCELLED,
                booking,
                user_id=user_id,
                previous_status=previous.value,
                reason=reason,
            )
            return booking

        booking = await self.coordinator.run(work, name="cancel_booking")
        logger.info(f"[BOOKING] {booking.booking_code} cancelled by {user_id}")
        return booking

    # ------------------------------------------------------------------
    # Pickup / return
    # ------------------------------------------------------------------

    async def update_booking_status(
        self,
        booking_id: uuid.UUID,
        user_id: uuid.UUID,
        pickup_status: Union[HandoverStatus, str, None] = None,
        return_status: Union[HandoverStatus, str, None] = None,
    ) -> Booking:
        """Advance pickup and/or return. Pickup completion makes the booking
        active, return completion makes it completed.
        """
        pickup = _parse_handover_status(pickup_status, "pickupStatus")
        ret = _parse_handover_status(return_status, "returnStatus")
        if pickup is None and ret is None:
            raise InvalidInput("Must provide either pickupStatus or returnStatus")
        now = self.clock()

        def advance(current: HandoverStatus, target: HandoverStatus, label: str) -> bool:
            if target == current:
                return False
            if target not in HANDOVER_TRANSITIONS[current]:
                raise InvalidStateTransition(
                    f"Cannot move {label} from {current.value} to {target.value}",
                    current.value,
                )
            return True

        async def work(session: AsyncSession) -> Booking:
            booking = await self._get_booking_for_update(session, booking_id)
            self._require_participant(booking, user_id, "Booking not found or unauthorized access")
            self._require_status(
                booking,
                HANDOVER_STATUSES,
                f"Pickup and return can only be tracked for confirmed bookings (booking is {booking.status.value})",
            )

            changes: dict[str, str] = {}
            if pickup is not None and advance(booking.pickup_status, pickup, "pickup"):
                booking.pickup_status = pickup
                changes["pickup_status"] = pickup.value
                if pickup == HandoverStatus.COMPLETED:
                    booking.pickup_completed_at = now

            if ret is not None and ret != booking.return_status:
                if booking.pickup_status != HandoverStatus.COMPLETED:
                    raise InvalidStateTransition(
                        f"Return cannot start before pickup is completed (pickup is {booking.pickup_status.value})",
                        booking.pickup_status.value,
                    )
                advance(booking.return_status, ret, "return")
                booking.return_status = ret
                changes["return_status"] = ret.value
                if ret == HandoverStatus.COMPLETED:
                    booking.return_completed_at = now

            if booking.return_status == HandoverStatus.COMPLETED:
                booking.status = BookingStatus.COMPLETED
            elif booking.pickup_status == HandoverStatus.COMPLETED:
                booking.status = BookingStatus.ACTIVE

            if changes:
                await AuditService(session).log_booking(
                    AuditAction.BOOKING_STATUS_UPDATED, booking, user_id=user_id, **changes
                )
            return booking

        return await self.coordinator.run(work, name="update_booking_status")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: uuid.UUID, user_id: uuid.UUID) -> Booking:
        async def work(session: AsyncSession) -> Booking:
            booking = await session.get(Booking, booking_id)
            if booking is None:
                raise NotFound("Booking not found")
            self._require_participant(booking, user_id, "Access denied")
            return booking

        return await self.coordinator.run(work, name="get_booking")

    async def _list_bookings(
        self,
        column,
        user_id: uuid.UUID,
        status: Optional[BookingStatus],
        sort: str,
    ) -> list[Booking]:
        query = select(Booking).where(column == user_id)
        if status is not None:
            query = query.where(Booking.status == status)
        if sort == "oldest":
            query = query.order_by(Booking.created_at.asc())
        else:
            query = query.order_by(Booking.created_at.desc())

        async def work(session: AsyncSession) -> list[Booking]:
            result = await session.execute(query)
            return list(result.scalars().all())

        return await self.coordinator.run(work, name="list_bookings")

    async def list_bookings_for_renter(
        self,
        renter_id: uuid.UUID,
        status: Optional[BookingStatus] = None,
        sort: str = "newest",
    ) -> list[Booking]:
        return await self._list_bookings(Booking.renter_id, renter_id, status, sort)

    async def list_bookings_for_owner(
        self,
        owner_id: uuid.UUID,
        status: Optional[BookingStatus] = None,
        sort: str = "newest",
    ) -> list[Booking]:
        return await self._list_bookings(Booking.owner_id, owner_id, status, sort)
