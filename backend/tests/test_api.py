"""HTTP-level tests: routing, status codes and error bodies."""

import hashlib
from decimal import Decimal

import httpx
import pytest

from marketplace.core.config import Settings, get_settings
from marketplace.core.security import AuthenticatedUser, require_user
from marketplace.main import app
from marketplace.models.enums import BookingStatus
from marketplace.services import get_booking_manager, get_listing_service

API_KEY = "notify-key"


class Caller:
    """The user the overridden auth dependency returns."""

    def __init__(self):
        self.user = None

    def act_as(self, user):
        self.user = AuthenticatedUser(uid=user.firebase_uid, email=user.email, email_verified=True)
        self.user.db_user_id = user.id

    def __call__(self):
        return self.user


@pytest.fixture
def caller():
    return Caller()


@pytest.fixture
async def client(manager, listing_service, caller):
    settings = Settings(database_url="sqlite+aiosqlite://", tpay_api_key=API_KEY)
    app.dependency_overrides[require_user] = caller
    app.dependency_overrides[get_booking_manager] = lambda: manager
    app.dependency_overrides[get_listing_service] = lambda: listing_service
    app.dependency_overrides[get_settings] = lambda: settings
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def booking_payload(listing, start="2025-06-01", end="2025-06-03"):
    return {
        "listing_id": str(listing.id),
        "start_date": start,
        "end_date": end,
        "renter_contact": {"email": "renter@example.com", "phone": "+48 600 000 000"},
    }


def notification(booking_id, amount="300.00", status="TRUE", api_key=API_KEY, paid=None):
    fields = {"id": "1010", "tr_id": "TR-42", "tr_amount": amount, "tr_crc": str(booking_id)}
    raw = f"{fields['id']}{fields['tr_id']}{fields['tr_amount']}{fields['tr_crc']}{api_key}"
    fields["md5sum"] = hashlib.md5(raw.encode("utf-8")).hexdigest()
    fields["tr_status"] = status
    if paid is not None:
        fields["tr_paid"] = paid
    return fields


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_create_booking(client, caller, renter, listing):
    caller.act_as(renter)
    response = await client.post("/v1/bookings", json=booking_payload(listing))

    assert response.status_code == 201
    body = response.json()
    assert body["booking"]["status"] == "hold"
    assert Decimal(body["booking"]["total_amount"]) == Decimal("300")
    assert body["booking"]["date_range"] == ["2025-06-01", "2025-06-02", "2025-06-03"]
    assert body["booking"]["duration_days"] == 3
    assert body["payment_link"].startswith("https://pay.example.test/")
    assert body["payment_error"] is None


async def test_conflicting_booking_returns_409_with_dates(client, caller, renter, other_renter, listing):
    caller.act_as(renter)
    await client.post("/v1/bookings", json=booking_payload(listing))

    caller.act_as(other_renter)
    response = await client.post("/v1/bookings", json=booking_payload(listing, "2025-06-02", "2025-06-04"))

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "dates_unavailable"
    assert body["data"]["conflicting_dates"] == ["2025-06-02", "2025-06-03"]


async def test_end_before_start_is_a_validation_error(client, caller, renter, listing):
    caller.act_as(renter)
    response = await client.post("/v1/bookings", json=booking_payload(listing, "2025-06-03", "2025-06-01"))
    assert response.status_code == 422


async def test_renter_cannot_confirm(client, caller, renter, listing, paid_booking_factory):
    booking = await paid_booking_factory()
    caller.act_as(renter)
    response = await client.post(f"/v1/bookings/{booking.id}/confirm")
    assert response.status_code == 403
    assert response.json()["error"] == "unauthorized"


async def test_owner_confirm_and_calendar(client, caller, owner, listing, paid_booking_factory):
    booking = await paid_booking_factory()
    caller.act_as(owner)

    response = await client.post(f"/v1/bookings/{booking.id}/confirm")
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    calendar = (await client.get(f"/v1/listings/{listing.id}/calendar")).json()
    assert calendar["reserved_dates"] == []
    assert calendar["confirmed_dates"] == ["2025-06-01", "2025-06-02", "2025-06-03"]


async def test_confirm_twice_is_a_conflict(client, caller, owner, confirmed_booking_factory):
    booking = await confirmed_booking_factory()
    caller.act_as(owner)
    response = await client.post(f"/v1/bookings/{booking.id}/confirm")
    assert response.status_code == 409
    assert response.json()["data"]["current_state"] == "confirmed"


async def test_reject_requires_reason(client, caller, owner, paid_booking_factory):
    booking = await paid_booking_factory()
    caller.act_as(owner)
    response = await client.post(f"/v1/bookings/{booking.id}/reject", json={"rejection_reason": ""})
    assert response.status_code == 422

    response = await client.post(f"/v1/bookings/{booking.id}/reject", json={"rejection_reason": "unavailable"})
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"


async def test_cancel_and_list(client, caller, renter, hold_factory):
    result = await hold_factory()
    caller.act_as(renter)

    response = await client.post(f"/v1/bookings/{result.booking.id}/cancel", json={"reason": "change of plans"})
    assert response.status_code == 200
    assert response.json()["cancellation_reason"] == "change of plans"

    listed = (await client.get("/v1/bookings/renter", params={"status_filter": "cancelled"})).json()
    assert listed["count"] == 1
    assert listed["bookings"][0]["id"] == str(result.booking.id)


async def test_status_update_accepts_camel_case(client, caller, owner, confirmed_booking_factory):
    booking = await confirmed_booking_factory()
    caller.act_as(owner)
    response = await client.patch(f"/v1/bookings/{booking.id}/status", json={"pickupStatus": "in-progress"})
    assert response.status_code == 200
    assert response.json()["pickup_status"] == "in-progress"


async def test_unknown_booking_is_404(client, caller, renter):
    caller.act_as(renter)
    response = await client.get("/v1/bookings/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


async def test_payment_webhook_marks_booking_paid(client, hold_factory, fetch_booking):
    result = await hold_factory()

    response = await client.post("/v1/payments/webhook", data=notification(result.booking.id))

    assert response.status_code == 200
    assert response.text == "TRUE"
    stored = await fetch_booking(result.booking.id)
    assert stored.status == BookingStatus.PENDING
    assert stored.payment_id == "TR-42"


async def test_payment_webhook_rejects_bad_checksum(client, hold_factory, fetch_booking):
    result = await hold_factory()

    response = await client.post(
        "/v1/payments/webhook", data=notification(result.booking.id, api_key="forged")
    )

    assert response.status_code == 400
    assert (await fetch_booking(result.booking.id)).status == BookingStatus.HOLD


async def test_failed_payment_notification_keeps_hold(client, hold_factory, fetch_booking):
    result = await hold_factory()

    response = await client.post(
        "/v1/payments/webhook", data=notification(result.booking.id, status="FALSE")
    )

    assert response.status_code == 200
    stored = await fetch_booking(result.booking.id)
    assert stored.status == BookingStatus.HOLD
    assert stored.payment_attempts == 1


async def test_create_listing(client, caller, owner):
    caller.act_as(owner)
    response = await client.post(
        "/v1/listings",
        json={
            "title": "Tent",
            "price_per_day": "35.00",
            "available_days_of_week": ["Saturday", "Sunday"],
            "pickup_hours": "9:00 AM - 5:00 PM",
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["owner_id"] == str(owner.id)
    assert body["available_days_of_week"] == ["saturday", "sunday"]
    assert body["status"] == "published"


async def test_create_listing_rejects_unknown_weekday(client, caller, owner):
    caller.act_as(owner)
    response = await client.post(
        "/v1/listings",
        json={"title": "Tent", "price_per_day": "35.00", "available_days_of_week": ["Funday"]},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"


@pytest.mark.parametrize("tr_paid", ["1", "300.00"])
async def test_payment_webhook_accepts_tr_paid(client, hold_factory, fetch_booking, tr_paid):
    result = await hold_factory()

    response = await client.post("/v1/payments/webhook", data=notification(result.booking.id, paid=tr_paid))

    assert response.status_code == 200
    assert (await fetch_booking(result.booking.id)).status == BookingStatus.PENDING


async def test_unpaid_tr_paid_counts_as_failed_attempt(client, hold_factory, fetch_booking):
    result = await hold_factory()

    response = await client.post("/v1/payments/webhook", data=notification(result.booking.id, paid="0"))

    assert response.status_code == 200
    stored = await fetch_booking(result.booking.id)
    assert stored.status == BookingStatus.HOLD
    assert stored.payment_attempts == 1

