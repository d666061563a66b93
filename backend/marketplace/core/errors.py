"""Typed failures raised by the booking core.

Every error carries an HTTP status code and a stable machine-readable code so
routers can render them without knowing storage details.
"""

from datetime import date
from typing import Any, Iterable, Optional


class BookingError(Exception):
    """Base class for all booking core failures."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, data: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "error": self.code,
            "message": self.message,
        }
        if self.data:
            body["data"] = self.data
        return body


class InvalidInput(BookingError):
    """Missing or malformed input, rejected before any write."""

    status_code = 400
    code = "invalid_input"


class NotFound(BookingError):
    status_code = 404
    code = "not_found"


class Unauthorized(BookingError):
    """Caller is not a participant allowed to perform the action."""

    status_code = 403
    code = "unauthorized"


class InvalidStateTransition(BookingError):
    status_code = 409
    code = "invalid_state_transition"

    def __init__(self, message: str, current_state: str):
        super().__init__(message, data={"current_state": current_state})
        self.current_state = current_state


class DatesUnavailable(BookingError):
    """Requested dates collide with the calendar or availability settings."""

    status_code = 409
    code = "dates_unavailable"

    def __init__(self, conflicting_dates: Iterable[date], message: Optional[str] = None):
        self.conflicting_dates = sorted(set(conflicting_dates))
        super().__init__(
            message or "Selected dates are not available",
            data={"conflicting_dates": [d.isoformat() for d in self.conflicting_dates]},
        )


class ExternalServiceFailure(BookingError):
    status_code = 502
    code = "external_service_failure"


class TransactionAbort(BookingError):
    """The atomic unit failed and was rolled back. Safe to retry."""

    status_code = 503
    code = "transaction_aborted"
