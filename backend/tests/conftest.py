"""Shared fixtures: a throwaway SQLite database per test, users, a listing and
a booking manager wired to a fake payment gateway and a controllable clock.
"""

import asyncio
import os
from datetime import datetime, timedelta
from decimal import Decimal

# Settings are read when marketplace.core.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./marketplace-test.db")
os.environ.setdefault("REAPER_ENABLED", "false")

import pytest
from sqlalchemy import select

from marketplace.core.database import Base, build_engine, build_session_factory
from marketplace.models import AuditLog, Booking, Listing, User
from marketplace.services.bookings import BookingLifecycleManager
from marketplace.services.listings import ListingService
from marketplace.services.payments import (
    CustomerContact,
    PaymentLinkError,
    PaymentLinkProvider,
)
from marketplace.services.reaper import HoldExpiryReaper
from marketplace.services.transactions import TransactionalCoordinator

START = datetime(2025, 5, 1, 12, 0)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakePaymentProvider(PaymentLinkProvider):
    """Returns predictable links; can be told to fail, crash or hang."""

    method = "fake"

    def __init__(self):
        self.fail = False
        self.error = None
        self.delay = 0.0
        self.calls = []

    async def create_payment_link(self, amount, currency, description, reference_id, customer_contact):
        self.calls.append(
            {
                "amount": amount,
                "currency": currency,
                "description": description,
                "reference_id": reference_id,
                "email": customer_contact.email,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.fail:
            raise PaymentLinkError("Gateway unavailable")
        return f"https://pay.example.test/{reference_id}"


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def coordinator(session_factory):
    return TransactionalCoordinator(session_factory, max_attempts=10, retry_backoff_seconds=0.02)


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def payment_provider():
    return FakePaymentProvider()


@pytest.fixture
def manager(coordinator, payment_provider, clock):
    return BookingLifecycleManager(
        coordinator,
        payment_provider,
        hold_window=timedelta(minutes=15),
        payment_link_ttl=timedelta(hours=24),
        payment_timeout=0.2,
        clock=clock,
    )


@pytest.fixture
def reaper(coordinator, clock):
    return HoldExpiryReaper(coordinator, batch_size=50, clock=clock)


@pytest.fixture
def listing_service(coordinator):
    return ListingService(coordinator)


async def _create_user(session_factory, name: str) -> User:
    async with session_factory() as session:
        async with session.begin():
            user = User(firebase_uid=f"uid-{name}", email=f"{name}@example.com", full_name=name.title())
            session.add(user)
        return user


@pytest.fixture
async def owner(session_factory):
    return await _create_user(session_factory, "owner")


@pytest.fixture
async def renter(session_factory):
    return await _create_user(session_factory, "renter")


@pytest.fixture
async def other_renter(session_factory):
    return await _create_user(session_factory, "other")


@pytest.fixture
async def listing(listing_service, owner):
    return await listing_service.create_listing(
        owner_id=owner.id,
        title="Cordless drill",
        price_per_day=Decimal("100.00"),
        deposit_amount=Decimal("50.00"),
    )


@pytest.fixture
def contact():
    return CustomerContact(email="renter@example.com", phone="+48 600 000 000")


@pytest.fixture
def hold_factory(manager, listing, renter, contact):
    """Create a hold; defaults to 2025-06-01..2025-06-03 for ``renter``."""

    async def create(start="2025-06-01", end="2025-06-03", renter_id=None, listing_id=None):
        return await manager.create_booking(
            listing_id=listing_id or listing.id,
            renter_id=renter_id or renter.id,
            start_date=start,
            end_date=end,
            contact=contact,
        )

    return create


@pytest.fixture
def paid_booking_factory(manager, hold_factory):
    async def create(**kwargs) -> Booking:
        result = await hold_factory(**kwargs)
        return await manager.record_payment(
            result.booking.id,
            transaction_id=f"TR-{result.booking.booking_code}",
            amount=result.booking.total_amount,
            paid=True,
        )

    return create


@pytest.fixture
def confirmed_booking_factory(manager, paid_booking_factory, owner):
    async def create(**kwargs) -> Booking:
        booking = await paid_booking_factory(**kwargs)
        return await manager.confirm_booking(booking.id, owner.id)

    return create


@pytest.fixture
def fetch_listing(session_factory):
    async def fetch(listing_id) -> Listing:
        async with session_factory() as session:
            return await session.get(Listing, listing_id)

    return fetch


@pytest.fixture
def fetch_booking(session_factory):
    async def fetch(booking_id):
        async with session_factory() as session:
            return await session.get(Booking, booking_id)

    return fetch


@pytest.fixture
def fetch_audit(session_factory):
    async def fetch(resource_id) -> list[AuditLog]:
        async with session_factory() as session:
            result = await session.execute(
                select(AuditLog)
                .where(AuditLog.resource_id == resource_id)
                .order_by(AuditLog.created_at)
            )
            return list(result.scalars().all())

    return fetch
