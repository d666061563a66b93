"""Date availability checks.

Pure functions only: no I/O and no session access, so the booking manager can
run them against a calendar snapshot inside its transaction.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Union

DateLike = Union[date, datetime, str]

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)
MONTHS = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)


def normalize_date(value: DateLike) -> date:
    """Reduce a date, datetime or ISO string to its calendar day.

    Aware datetimes are converted to UTC first, so two instants on the same
    UTC day always produce the same key regardless of time of day.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Invalid date: {value!r}") from e
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Unsupported date value: {value!r}")


def normalize_dates(values: Iterable[DateLike]) -> set[date]:
    return {normalize_date(v) for v in values}


def to_iso_list(values: Iterable[DateLike]) -> list[str]:
    """Sorted, de-duplicated ISO strings, the storage form of a date set."""
    return [d.isoformat() for d in sorted(normalize_dates(values))]


def expand_date_range(start: DateLike, end: DateLike) -> list[date]:
    """Every calendar day from start to end, both inclusive."""
    current = normalize_date(start)
    last = normalize_date(end)
    days = []
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def check_conflicts(
    existing_reserved: Iterable[DateLike],
    existing_confirmed: Iterable[DateLike],
    candidate_dates: Iterable[DateLike],
) -> list[date]:
    """Return the candidate days already present in either existing set."""
    taken = normalize_dates(existing_reserved) | normalize_dates(existing_confirmed)
    return sorted(normalize_dates(candidate_dates) & taken)


def _allowed(values: Optional[Iterable[str]], vocabulary: tuple[str, ...]) -> set[str]:
    # Unknown names are ignored; nothing valid left means no restriction
    allowed = {v.strip().lower() for v in (values or []) if v and v.strip().lower() in vocabulary}
    return allowed or set(vocabulary)


def dates_outside_constraints(
    candidate_dates: Iterable[DateLike],
    months: Optional[Iterable[str]] = None,
    days_of_week: Optional[Iterable[str]] = None,
) -> list[date]:
    """Return the candidate days whose month or weekday is not allowed."""
    allowed_months = _allowed(months, MONTHS)
    allowed_days = _allowed(days_of_week, WEEKDAYS)
    outside = []
    for day in sorted(normalize_dates(candidate_dates)):
        month_name = MONTHS[day.month - 1]
        weekday_name = WEEKDAYS[day.weekday()]
        if month_name not in allowed_months or weekday_name not in allowed_days:
            outside.append(day)
    return outside


def _parse_clock(text: str) -> int:
    parts = text.strip().split()
    if not parts:
        raise ValueError(f"Invalid time: {text!r}")
    hour_str, _, minute_str = parts[0].partition(":")
    hours = int(hour_str)
    minutes = int(minute_str or 0)
    period = parts[1].upper() if len(parts) > 1 else None
    if period == "PM" and hours != 12:
        hours += 12
    elif period == "AM" and hours == 12:
        hours = 0
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time: {text!r}")
    return hours * 60 + minutes


def parse_operating_hours(hours: str) -> tuple[int, int]:
    """Parse ``"9:00 AM - 5:00 PM"`` into minutes since midnight."""
    start, sep, end = hours.partition("-")
    if not sep:
        raise ValueError(f"Invalid operating hours: {hours!r}")
    return _parse_clock(start), _parse_clock(end)


def time_of_day(value: DateLike) -> Optional[time]:
    """Wall-clock time carried by ``value``, or None for a bare date.

    Midnight given explicitly (``datetime(..., 0, 0)`` or ``"...T00:00"``)
    is a time; ``date`` objects and ``"YYYY-MM-DD"`` strings are not.
    """
    if isinstance(value, str):
        text = value.strip()
        if len(text) <= 10:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Invalid date: {value!r}") from e
    if isinstance(value, datetime):
        return value.time()
    return None


def is_within_operating_hours(moment: Union[datetime, time], hours: Optional[str]) -> bool:
    """True when the time of day falls inside the window. No window means open."""
    if not hours:
        return True
    start, end = parse_operating_hours(hours)
    current = moment.hour * 60 + moment.minute
    return start <= current <= end


def find_unavailable_dates(
    candidate_dates: Iterable[DateLike],
    reserved_dates: Iterable[DateLike],
    confirmed_dates: Iterable[DateLike],
    months: Optional[Iterable[str]] = None,
    days_of_week: Optional[Iterable[str]] = None,
) -> list[date]:
    """Union of calendar conflicts and availability-setting violations."""
    candidates = normalize_dates(candidate_dates)
    conflicts = check_conflicts(reserved_dates, confirmed_dates, candidates)
    outside = dates_outside_constraints(candidates, months, days_of_week)
    return sorted(set(conflicts) | set(outside))
