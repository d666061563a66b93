"""Audit logging service."""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.audit import AuditLog
from marketplace.models.booking import Booking
from marketplace.models.enums import AuditAction


class AuditService:
    """Service for creating audit log entries.

    Entries are added to the caller's session so they commit or roll back
    together with the change they describe.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: AuditAction,
        resource_type: str,
        resource_id: UUID,
        user_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """Create an audit log entry."""
        entry = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def log_booking(
        self,
        action: AuditAction,
        booking: Booking,
        user_id: Optional[UUID] = None,
        **details: Any,
    ) -> AuditLog:
        """Log a booking transition with its code, listing and status."""
        return await self.log(
            action=action,
            resource_type="booking",
            resource_id=booking.id,
            user_id=user_id,
            details={
                "booking_code": booking.booking_code,
                "listing_id": str(booking.listing_id),
                "status": booking.status.value,
                **details,
            },
        )
