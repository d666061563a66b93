"""Listing model - the rentable item and its booking calendar."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.core.database import Base
from marketplace.models.enums import ListingStatus

if TYPE_CHECKING:
    from marketplace.models.booking import Booking
    from marketplace.models.user import User

# JSONB on PostgreSQL, plain JSON elsewhere
JSONList = JSON().with_variant(JSONB(), "postgresql")


class Listing(Base):
    """A rentable item owned by a user.

    reserved_dates and confirmed_dates hold sorted ISO calendar days. They are
    only written through services.calendar, always inside a transaction, and
    every write bumps ``version`` so concurrent writers cannot both commit.
    """

    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing
    price_per_day: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="PLN")

    status: Mapped[ListingStatus] = mapped_column(
        SQLEnum(ListingStatus),
        default=ListingStatus.PUBLISHED,
        nullable=False,
        index=True,
    )

    # Calendar
    reserved_dates: Mapped[list[str]] = mapped_column(JSONList, default=list, nullable=False)
    confirmed_dates: Mapped[list[str]] = mapped_column(JSONList, default=list, nullable=False)

    # Availability settings (empty list = no restriction)
    available_months: Mapped[list[str]] = mapped_column(JSONList, default=list, nullable=False)
    available_days_of_week: Mapped[list[str]] = mapped_column(
        JSONList, default=list, nullable=False
    )
    pickup_hours: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    return_hours: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="listings")
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking", back_populates="listing", passive_deletes=True
    )

    def is_bookable(self) -> bool:
        return self.status in (ListingStatus.PUBLISHED, ListingStatus.BOOSTED)
