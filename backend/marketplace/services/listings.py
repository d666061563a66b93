"""Listing service.

Listings are only mutated through the explicit methods below, one per field
group. The calendar columns are never writable here; they belong to the
booking lifecycle.
"""

import logging
import uuid
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.errors import InvalidInput, NotFound, Unauthorized
from marketplace.models.enums import AuditAction, ListingStatus
from marketplace.models.listing import Listing
from marketplace.services.audit import AuditService
from marketplace.services.availability import MONTHS, WEEKDAYS, parse_operating_hours
from marketplace.services.calendar import load_listing_for_update
from marketplace.services.transactions import TransactionalCoordinator

logger = logging.getLogger(__name__)


def _clean_names(values: Optional[Iterable[str]], vocabulary: tuple[str, ...], label: str) -> list[str]:
    cleaned = []
    for value in values or []:
        name = value.strip().lower()
        if name not in vocabulary:
            raise InvalidInput(f"Invalid {label}: {value}")
        if name not in cleaned:
            cleaned.append(name)
    return cleaned


def _validate_hours(hours: Optional[str], label: str) -> Optional[str]:
    if not hours:
        return None
    try:
        parse_operating_hours(hours)
    except ValueError:
        raise InvalidInput(f"Invalid {label}: {hours}")
    return hours.strip()


def _validate_amount(value: Decimal, label: str, allow_zero: bool) -> Decimal:
    if value is None or value < 0 or (value == 0 and not allow_zero):
        raise InvalidInput(f"Invalid {label}: {value}")
    return Decimal(value)


class ListingService:
    """Creates listings and applies allow-listed updates."""

    def __init__(self, coordinator: TransactionalCoordinator):
        self.coordinator = coordinator

    async def _get_owned(self, session: AsyncSession, listing_id: uuid.UUID, owner_id: uuid.UUID) -> Listing:
        listing = await load_listing_for_update(session, listing_id)
        if listing.owner_id != owner_id:
            raise Unauthorized("Only the owner can modify this listing")
        return listing

    async def create_listing(
        self,
        owner_id: uuid.UUID,
        title: str,
        price_per_day: Decimal,
        deposit_amount: Decimal = Decimal("0"),
        currency: str = "PLN",
        description: Optional[str] = None,
        status: ListingStatus = ListingStatus.PUBLISHED,
        available_months: Optional[Iterable[str]] = None,
        available_days_of_week: Optional[Iterable[str]] = None,
        pickup_hours: Optional[str] = None,
        return_hours: Optional[str] = None,
    ) -> Listing:
        if not title or not title.strip():
            raise InvalidInput("Title is required")
        listing = Listing(
            owner_id=owner_id,
            title=title.strip(),
            description=description,
            price_per_day=_validate_amount(price_per_day, "price_per_day", allow_zero=False),
            deposit_amount=_validate_amount(deposit_amount, "deposit_amount", allow_zero=True),
            currency=currency.upper(),
            status=status,
            reserved_dates=[],
            confirmed_dates=[],
            available_months=_clean_names(available_months, MONTHS, "month"),
            available_days_of_week=_clean_names(available_days_of_week, WEEKDAYS, "day of week"),
            pickup_hours=_validate_hours(pickup_hours, "pickup_hours"),
            return_hours=_validate_hours(return_hours, "return_hours"),
        )

        async def work(session: AsyncSession) -> Listing:
            session.add(listing)
            await session.flush()
            await AuditService(session).log(
                action=AuditAction.LISTING_CREATED,
                resource_type="listing",
                resource_id=listing.id,
                user_id=owner_id,
                details={"title": listing.title, "status": listing.status.value},
            )
            return listing

        created = await self.coordinator.run(work, name="create_listing")
        logger.info(f"[LISTING] Created listing {created.id} for owner {owner_id}")
        return created

    async def get_listing(self, listing_id: uuid.UUID) -> Listing:
        async def work(session: AsyncSession) -> Listing:
            listing = await session.get(Listing, listing_id)
            if listing is None:
                raise NotFound("Listing not found")
            return listing

        return await self.coordinator.run(work, name="get_listing")

    async def update_availability_settings(
        self,
        listing_id: uuid.UUID,
        owner_id: uuid.UUID,
        available_months: Optional[Iterable[str]] = None,
        available_days_of_week: Optional[Iterable[str]] = None,
        pickup_hours: Optional[str] = None,
        return_hours: Optional[str] = None,
    ) -> Listing:
        """Replace the fields that were passed; None leaves a field unchanged."""
        months = _clean_names(available_months, MONTHS, "month") if available_months is not None else None
        days = (
            _clean_names(available_days_of_week, WEEKDAYS, "day of week")
            if available_days_of_week is not None
            else None
        )
        pickup = _validate_hours(pickup_hours, "pickup_hours") if pickup_hours is not None else None
        ret = _validate_hours(return_hours, "return_hours") if return_hours is not None else None

        async def work(session: AsyncSession) -> Listing:
            listing = await self._get_owned(session, listing_id, owner_id)
            changes = {}
            if months is not None:
                listing.available_months = months
                changes["available_months"] = months
            if days is not None:
                listing.available_days_of_week = days
                changes["available_days_of_week"] = days
            if pickup_hours is not None:
                listing.pickup_hours = pickup
                changes["pickup_hours"] = pickup
            if return_hours is not None:
                listing.return_hours = ret
                changes["return_hours"] = ret
            await self._log_update(session, listing, owner_id, changes)
            return listing

        return await self.coordinator.run(work, name="update_availability_settings")

    async def update_pricing(
        self,
        listing_id: uuid.UUID,
        owner_id: uuid.UUID,
        price_per_day: Optional[Decimal] = None,
        deposit_amount: Optional[Decimal] = None,
    ) -> Listing:
        """Change prices. Existing bookings keep the amounts they were created with."""
        if price_per_day is None and deposit_amount is None:
            raise InvalidInput("Provide price_per_day or deposit_amount")
        price = _validate_amount(price_per_day, "price_per_day", allow_zero=False) if price_per_day is not None else None
        deposit = _validate_amount(deposit_amount, "deposit_amount", allow_zero=True) if deposit_amount is not None else None

        async def work(session: AsyncSession) -> Listing:
            listing = await self._get_owned(session, listing_id, owner_id)
            changes = {}
            if price is not None:
                listing.price_per_day = price
                changes["price_per_day"] = str(price)
            if deposit is not None:
                listing.deposit_amount = deposit
                changes["deposit_amount"] = str(deposit)
            await self._log_update(session, listing, owner_id, changes)
            return listing

        return await self.coordinator.run(work, name="update_pricing")

    async def update_status(
        self, listing_id: uuid.UUID, owner_id: uuid.UUID, status: ListingStatus
    ) -> Listing:
        async def work(session: AsyncSession) -> Listing:
            listing = await self._get_owned(session, listing_id, owner_id)
            listing.status = status
            await self._log_update(session, listing, owner_id, {"status": status.value})
            return listing

        return await self.coordinator.run(work, name="update_listing_status")

    async def _log_update(
        self, session: AsyncSession, listing: Listing, user_id: uuid.UUID, changes: dict
    ) -> None:
        if not changes:
            return
        await AuditService(session).log(
            action=AuditAction.LISTING_UPDATED,
            resource_type="listing",
            resource_id=listing.id,
            user_id=user_id,
            details=changes,
        )
