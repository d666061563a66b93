"""Tests for the booking lifecycle: holds, payment, owner decisions,
cancellation and pickup/return tracking.
"""

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from marketplace.core.errors import (
    DatesUnavailable,
    ExternalServiceFailure,
    InvalidInput,
    InvalidStateTransition,
    NotFound,
    TransactionAbort,
    Unauthorized,
)
from marketplace.models.enums import (
    AuditAction,
    BookingStatus,
    HandoverStatus,
    ListingStatus,
    PaymentStatus,
)
from marketplace.services.bookings import BookingLifecycleManager
from marketplace.services.payments import CustomerContact, UnconfiguredPaymentProvider
from marketplace.services.transactions import TransactionalCoordinator

JUNE_1_3 = ["2025-06-01", "2025-06-02", "2025-06-03"]


# ----------------------------------------------------------------------
# create_booking
# ----------------------------------------------------------------------


async def test_create_booking_places_hold(hold_factory, listing, renter, clock, fetch_listing, payment_provider):
    result = await hold_factory()
    booking = result.booking

    assert booking.status == BookingStatus.HOLD
    assert booking.total_amount == Decimal("300.00")
    assert booking.deposit_amount == Decimal("50.00")
    assert booking.date_range == JUNE_1_3
    assert booking.start_date == date(2025, 6, 1)
    assert booking.end_date == date(2025, 6, 3)
    assert booking.renter_id == renter.id
    assert booking.owner_id == listing.owner_id
    assert booking.hold_expires_at == clock() + timedelta(minutes=15)
    assert booking.booking_code.startswith("BK")

    assert result.payment_link == f"https://pay.example.test/{booking.id}"
    assert result.payment_error is None
    assert booking.payment_url == result.payment_link
    assert booking.payment_method == "fake"
    assert payment_provider.calls[0]["amount"] == Decimal("300.00")

    stored = await fetch_listing(listing.id)
    assert set(JUNE_1_3) <= set(stored.reserved_dates)
    assert stored.confirmed_dates == []


async def test_overlapping_booking_reports_conflicting_dates(hold_factory, other_renter, fetch_listing, listing):
    await hold_factory()

    with pytest.raises(DatesUnavailable) as exc_info:
        await hold_factory(start="2025-06-02", end="2025-06-04", renter_id=other_renter.id)

    assert exc_info.value.conflicting_dates == [date(2025, 6, 2), date(2025, 6, 3)]
    assert exc_info.value.data == {"conflicting_dates": ["2025-06-02", "2025-06-03"]}
    stored = await fetch_listing(listing.id)
    assert stored.reserved_dates == JUNE_1_3


async def test_adjacent_booking_succeeds(hold_factory, other_renter):
    await hold_factory()
    result = await hold_factory(start="2025-06-04", end="2025-06-05", renter_id=other_renter.id)
    assert result.booking.status == BookingStatus.HOLD


async def test_create_booking_audits_the_hold(hold_factory, fetch_audit):
    result = await hold_factory()
    entries = await fetch_audit(result.booking.id)
    assert [e.action for e in entries] == [AuditAction.BOOKING_HELD]
    assert entries[0].details["dates"] == JUNE_1_3


@pytest.mark.parametrize(
    "start,end",
    [
        ("2025-04-30", "2025-05-03"),  # starts in the past
        ("2025-06-03", "2025-06-03"),  # end not after start
        ("2025-06-05", "2025-06-01"),
        ("not-a-date", "2025-06-01"),
        (None, "2025-06-01"),
    ],
)
async def test_create_booking_rejects_bad_dates(hold_factory, start, end):
    with pytest.raises(InvalidInput):
        await hold_factory(start=start, end=end)


async def test_create_booking_requires_contact_email(manager, listing, renter):
    with pytest.raises(InvalidInput):
        await manager.create_booking(listing.id, renter.id, "2025-06-01", "2025-06-03", contact=None)
    with pytest.raises(InvalidInput):
        await manager.create_booking(
            listing.id, renter.id, "2025-06-01", "2025-06-03", contact=CustomerContact(email="")
        )


async def test_owner_cannot_book_own_listing(hold_factory, owner):
    with pytest.raises(InvalidInput):
        await hold_factory(renter_id=owner.id)


async def test_unpublished_listing_cannot_be_booked(hold_factory, listing_service, listing, owner):
    await listing_service.update_status(listing.id, owner.id, ListingStatus.DRAFT)
    with pytest.raises(InvalidInput):
        await hold_factory()


async def test_unknown_listing(hold_factory):
    with pytest.raises(NotFound):
        await hold_factory(listing_id=uuid.uuid4())


async def test_availability_settings_are_enforced(hold_factory, listing_service, listing, owner):
    await listing_service.update_availability_settings(
        listing.id, owner.id, available_days_of_week=["saturday", "sunday"]
    )
    # 2025-06-01 is a Sunday, the 2nd and 3rd are weekdays
    with pytest.raises(DatesUnavailable) as exc_info:
        await hold_factory()
    assert exc_info.value.conflicting_dates == [date(2025, 6, 2), date(2025, 6, 3)]

    result = await hold_factory(start="2025-06-07", end="2025-06-08")
    assert result.booking.date_range == ["2025-06-07", "2025-06-08"]


async def test_pickup_time_must_fall_in_pickup_hours(hold_factory, listing_service, listing, owner):
    await listing_service.update_availability_settings(
        listing.id, owner.id, pickup_hours="9:00 AM - 5:00 PM"
    )
    with pytest.raises(DatesUnavailable):
        await hold_factory(start=datetime(2025, 6, 1, 7, 30), end=datetime(2025, 6, 3, 10, 0))

    result = await hold_factory(start=datetime(2025, 6, 1, 10, 0), end=datetime(2025, 6, 3, 10, 0))
    assert result.booking.date_range == JUNE_1_3


async def test_payment_link_failure_keeps_the_hold(hold_factory, payment_provider, fetch_booking, fetch_listing, listing):
    payment_provider.fail = True
    result = await hold_factory()

    assert result.payment_link is None
    assert result.payment_error == "Gateway unavailable"
    stored = await fetch_booking(result.booking.id)
    assert stored.status == BookingStatus.HOLD
    assert stored.payment_url is None
    assert (await fetch_listing(listing.id)).reserved_dates == JUNE_1_3


async def test_payment_link_timeout_keeps_the_hold(hold_factory, payment_provider, fetch_booking):
    payment_provider.delay = 1.0
    result = await hold_factory()

    assert result.payment_link is None
    assert "timed out" in result.payment_error
    assert (await fetch_booking(result.booking.id)).status == BookingStatus.HOLD


async def test_payment_provider_crash_keeps_the_hold(hold_factory, payment_provider, fetch_booking, fetch_listing, listing):
    payment_provider.error = AttributeError("'list' object has no attribute 'get'")
    result = await hold_factory()

    assert result.payment_link is None
    assert result.payment_error == "Payment link generation failed"
    assert result.booking.status == BookingStatus.HOLD
    assert (await fetch_booking(result.booking.id)).status == BookingStatus.HOLD
    assert (await fetch_listing(listing.id)).reserved_dates == JUNE_1_3


class LinkStoreFailingCoordinator(TransactionalCoordinator):
    async def run(self, work, *, name="unit"):
        if name == "store_payment_link":
            raise TransactionAbort("Database unavailable")
        return await super().run(work, name=name)


async def test_payment_link_store_failure_is_reported_on_the_result(
    session_factory, payment_provider, clock, listing, renter, contact, fetch_booking, fetch_listing
):
    manager = BookingLifecycleManager(
        LinkStoreFailingCoordinator(session_factory),
        payment_provider,
        clock=clock,
    )

    result = await manager.create_booking(listing.id, renter.id, "2025-06-01", "2025-06-03", contact)

    assert result.payment_link is None
    assert result.payment_error == "Payment link could not be saved"
    stored = await fetch_booking(result.booking.id)
    assert stored.status == BookingStatus.HOLD
    assert stored.payment_url is None
    assert (await fetch_listing(listing.id)).reserved_dates == JUNE_1_3


async def test_unconfigured_gateway_only_affects_payment_links(
    coordinator, clock, listing, renter, owner, contact
):
    manager = BookingLifecycleManager(
        coordinator,
        UnconfiguredPaymentProvider("Payment provider is not configured"),
        clock=clock,
    )

    result = await manager.create_booking(listing.id, renter.id, "2025-06-01", "2025-06-03", contact)
    assert result.payment_error == "Payment provider is not configured"

    await manager.record_payment(result.booking.id, "TR-1", result.booking.total_amount, paid=True)
    booking = await manager.confirm_booking(result.booking.id, owner.id)
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.parametrize(
    "start",
    [datetime(2025, 6, 1, 0, 0), "2025-06-01T00:00:00", "2025-06-01T07:30", "2025-06-01 20:00"],
)
async def test_pickup_hours_apply_to_any_explicit_time(hold_factory, listing_service, listing, owner, start):
    await listing_service.update_availability_settings(
        listing.id, owner.id, pickup_hours="9:00 AM - 5:00 PM"
    )
    with pytest.raises(DatesUnavailable):
        await hold_factory(start=start, end="2025-06-03")


async def test_expired_hold_does_not_block_new_booking(hold_factory, other_renter, clock, fetch_booking):
    first = await hold_factory()
    clock.advance(minutes=16)

    second = await hold_factory(renter_id=other_renter.id)

    assert second.booking.date_range == JUNE_1_3
    assert await fetch_booking(first.booking.id) is None


# ----------------------------------------------------------------------
# Payment link refresh and payment notifications
# ----------------------------------------------------------------------


async def test_refresh_payment_link_after_failure(manager, hold_factory, payment_provider, renter):
    payment_provider.fail = True
    result = await hold_factory()

    payment_provider.fail = False
    refreshed = await manager.refresh_payment_link(result.booking.id, renter.id)
    assert refreshed.payment_link == f"https://pay.example.test/{result.booking.id}"
    assert refreshed.booking.payment_url == refreshed.payment_link


async def test_refresh_payment_link_guards(manager, hold_factory, payment_provider, renter, other_renter, clock):
    result = await hold_factory()

    with pytest.raises(Unauthorized):
        await manager.refresh_payment_link(result.booking.id, other_renter.id)

    payment_provider.fail = True
    with pytest.raises(ExternalServiceFailure):
        await manager.refresh_payment_link(result.booking.id, renter.id)

    clock.advance(minutes=20)
    with pytest.raises(InvalidStateTransition):
        await manager.refresh_payment_link(result.booking.id, renter.id)


async def test_payment_moves_hold_to_pending(paid_booking_factory, clock):
    booking = await paid_booking_factory()

    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.COMPLETED
    assert booking.paid_at == clock()
    assert booking.hold_expires_at is None
    assert booking.payment_id.startswith("TR-")


async def test_payment_notification_is_idempotent(manager, paid_booking_factory):
    booking = await paid_booking_factory()
    again = await manager.record_payment(booking.id, "TR-again", booking.total_amount, paid=True)
    assert again.status == BookingStatus.PENDING
    assert again.payment_id == booking.payment_id


async def test_payment_amount_mismatch(manager, hold_factory):
    result = await hold_factory()
    with pytest.raises(InvalidInput):
        await manager.record_payment(result.booking.id, "TR-1", "299.99", paid=True)


async def test_failed_payment_keeps_hold(manager, hold_factory, fetch_audit):
    result = await hold_factory()
    booking = await manager.record_payment(result.booking.id, "TR-1", "300.00", paid=False)

    assert booking.status == BookingStatus.HOLD
    assert booking.payment_status == PaymentStatus.FAILED
    assert booking.payment_attempts == 1
    actions = {e.action for e in await fetch_audit(booking.id)}
    assert AuditAction.BOOKING_PAYMENT_FAILED in actions


async def test_payment_for_unknown_booking(manager):
    with pytest.raises(NotFound):
        await manager.record_payment(uuid.uuid4(), "TR-1", "10.00", paid=True)


# ----------------------------------------------------------------------
# Owner decisions
# ----------------------------------------------------------------------


async def test_confirm_moves_dates_to_confirmed(manager, paid_booking_factory, owner, listing, fetch_listing):
    booking = await paid_booking_factory()
    confirmed = await manager.confirm_booking(booking.id, owner.id)

    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.confirmed_at is not None
    stored = await fetch_listing(listing.id)
    assert stored.reserved_dates == []
    assert stored.confirmed_dates == JUNE_1_3


async def test_only_owner_can_confirm(manager, paid_booking_factory, renter):
    booking = await paid_booking_factory()
    with pytest.raises(Unauthorized):
        await manager.confirm_booking(booking.id, renter.id)


async def test_confirm_requires_pending(manager, hold_factory, confirmed_booking_factory, owner):
    hold = await hold_factory(start="2025-07-01", end="2025-07-02")
    with pytest.raises(InvalidStateTransition) as exc_info:
        await manager.confirm_booking(hold.booking.id, owner.id)
    assert exc_info.value.current_state == "hold"

    confirmed = await confirmed_booking_factory()
    with pytest.raises(InvalidStateTransition):
        await manager.confirm_booking(confirmed.id, owner.id)


@pytest.mark.parametrize("status", ["hold", "confirmed", "cancelled"])
async def test_refused_confirm_changes_nothing(
    manager, hold_factory, confirmed_booking_factory, owner, renter, listing, clock,
    fetch_booking, fetch_listing, status,
):
    if status == "confirmed":
        booking_id = (await confirmed_booking_factory()).id
    else:
        booking_id = (await hold_factory()).booking.id
        if status == "cancelled":
            await manager.cancel_booking(booking_id, renter.id)
    before = await fetch_booking(booking_id)
    calendar_before = await fetch_listing(listing.id)

    clock.advance(hours=1)
    with pytest.raises(InvalidStateTransition):
        await manager.confirm_booking(booking_id, owner.id)

    after = await fetch_booking(booking_id)
    calendar_after = await fetch_listing(listing.id)
    assert after.status == before.status
    assert after.confirmed_at == before.confirmed_at
    assert after.version == before.version
    assert calendar_after.reserved_dates == calendar_before.reserved_dates
    assert calendar_after.confirmed_dates == calendar_before.confirmed_dates
    assert calendar_after.version == calendar_before.version



async def test_reject_releases_dates(manager, paid_booking_factory, hold_factory, owner, other_renter, listing, fetch_listing):
    booking = await paid_booking_factory()
    rejected = await manager.reject_booking(booking.id, owner.id, "unavailable")

    assert rejected.status == BookingStatus.REJECTED
    assert rejected.rejected_at is not None
    assert rejected.rejection_reason == "unavailable"
    assert (await fetch_listing(listing.id)).reserved_dates == []

    again = await hold_factory(renter_id=other_renter.id)
    assert again.booking.date_range == JUNE_1_3


async def test_reject_requires_reason_and_owner(manager, paid_booking_factory, owner, renter):
    booking = await paid_booking_factory()
    with pytest.raises(InvalidInput):
        await manager.reject_booking(booking.id, owner.id, "   ")
    with pytest.raises(Unauthorized):
        await manager.reject_booking(booking.id, renter.id, "unavailable")


# ----------------------------------------------------------------------
# Cancellation
# ----------------------------------------------------------------------


async def test_cancel_confirmed_releases_confirmed_dates(
    manager, confirmed_booking_factory, hold_factory, renter, other_renter, listing, fetch_listing
):
    booking = await confirmed_booking_factory()
    other = await hold_factory(start="2025-06-10", end="2025-06-11", renter_id=other_renter.id)

    cancelled = await manager.cancel_booking(booking.id, renter.id, "change of plans")

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancelled_by == renter.id
    assert cancelled.cancelled_at is not None
    assert cancelled.cancellation_reason == "change of plans"
    stored = await fetch_listing(listing.id)
    assert stored.confirmed_dates == []
    assert stored.reserved_dates == other.booking.date_range


async def test_owner_can_cancel_pending(manager, paid_booking_factory, owner, listing, fetch_listing):
    booking = await paid_booking_factory()
    cancelled = await manager.cancel_booking(booking.id, owner.id)
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancellation_reason is None
    assert (await fetch_listing(listing.id)).reserved_dates == []


async def test_cancel_hold_releases_reserved_dates(manager, hold_factory, renter, listing, fetch_listing):
    result = await hold_factory()
    cancelled = await manager.cancel_booking(result.booking.id, renter.id)
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.hold_expires_at is None
    assert (await fetch_listing(listing.id)).reserved_dates == []


async def test_cancel_guards(manager, paid_booking_factory, owner, other_renter, renter):
    booking = await paid_booking_factory()
    with pytest.raises(Unauthorized):
        await manager.cancel_booking(booking.id, other_renter.id)

    await manager.reject_booking(booking.id, owner.id, "unavailable")
    with pytest.raises(InvalidStateTransition, match=r"booking is rejected") as exc_info:
        await manager.cancel_booking(booking.id, renter.id)
    assert exc_info.value.current_state == "rejected"


# ----------------------------------------------------------------------
# Pickup / return
# ----------------------------------------------------------------------


async def test_pickup_and_return_drive_active_and_completed(manager, confirmed_booking_factory, renter, owner, clock):
    booking = await confirmed_booking_factory()

    booking = await manager.update_booking_status(booking.id, owner.id, pickup_status="in-progress")
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.pickup_status == HandoverStatus.IN_PROGRESS

    booking = await manager.update_booking_status(booking.id, renter.id, pickup_status="completed")
    assert booking.status == BookingStatus.ACTIVE
    assert booking.pickup_completed_at == clock()

    booking = await manager.update_booking_status(
        booking.id, owner.id, return_status=HandoverStatus.IN_PROGRESS
    )
    booking = await manager.update_booking_status(booking.id, owner.id, return_status="completed")
    assert booking.status == BookingStatus.COMPLETED
    assert booking.return_status == HandoverStatus.COMPLETED
    assert booking.return_completed_at == clock()


async def test_return_cannot_start_before_pickup(manager, confirmed_booking_factory, owner):
    booking = await confirmed_booking_factory()
    with pytest.raises(InvalidStateTransition, match=r"pickup is pending"):
        await manager.update_booking_status(booking.id, owner.id, return_status="in-progress")


async def test_handover_cannot_move_backwards(manager, confirmed_booking_factory, owner):
    booking = await confirmed_booking_factory()
    await manager.update_booking_status(booking.id, owner.id, pickup_status="in-progress")
    await manager.update_booking_status(booking.id, owner.id, pickup_status="completed")
    with pytest.raises(InvalidStateTransition):
        await manager.update_booking_status(booking.id, owner.id, pickup_status="pending")


async def test_status_update_guards(manager, paid_booking_factory, confirmed_booking_factory, owner, other_renter):
    pending = await paid_booking_factory(start="2025-07-01", end="2025-07-02")
    with pytest.raises(InvalidStateTransition):
        await manager.update_booking_status(pending.id, owner.id, pickup_status="in-progress")

    booking = await confirmed_booking_factory()
    with pytest.raises(InvalidInput):
        await manager.update_booking_status(booking.id, owner.id)
    with pytest.raises(InvalidInput):
        await manager.update_booking_status(booking.id, owner.id, pickup_status="teleported")
    with pytest.raises(Unauthorized):
        await manager.update_booking_status(booking.id, other_renter.id, pickup_status="in-progress")


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------


async def test_get_booking_is_limited_to_participants(manager, hold_factory, renter, owner, other_renter):
    result = await hold_factory()
    assert (await manager.get_booking(result.booking.id, renter.id)).id == result.booking.id
    assert (await manager.get_booking(result.booking.id, owner.id)).id == result.booking.id
    with pytest.raises(Unauthorized):
        await manager.get_booking(result.booking.id, other_renter.id)
    with pytest.raises(NotFound):
        await manager.get_booking(uuid.uuid4(), renter.id)


async def test_list_bookings(manager, hold_factory, paid_booking_factory, renter, other_renter, owner):
    await hold_factory()
    await paid_booking_factory(start="2025-06-10", end="2025-06-12")
    await hold_factory(start="2025-06-20", end="2025-06-21", renter_id=other_renter.id)

    assert len(await manager.list_bookings_for_renter(renter.id)) == 2
    assert len(await manager.list_bookings_for_renter(other_renter.id)) == 1
    assert len(await manager.list_bookings_for_owner(owner.id)) == 3

    pending = await manager.list_bookings_for_owner(owner.id, status=BookingStatus.PENDING)
    assert [b.date_range[0] for b in pending] == ["2025-06-10"]
    oldest = await manager.list_bookings_for_owner(owner.id, sort="oldest")
    assert len(oldest) == 3
