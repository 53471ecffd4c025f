"""General utility functions."""
import re
from datetime import date, datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Union
from zoneinfo import ZoneInfo

from ballotguard.core.exceptions import InvalidInput

_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:$|[T ])")
_TIME_OF_DAY = re.compile(r"^(\d{1,2})(?::(\d{2}))?(?::(\d{2}))?$")


def normalize_date(value: Union[str, date, datetime], field: str = "date") -> str:
    """Normalize a calendar date to canonical ``YYYY-MM-DD``.

    Accepts ``MM/DD/YYYY``, ``YYYY-MM-DD`` and ISO date-times (the written
    calendar date is kept, no timezone conversion happens).

    Raises:
        InvalidInput: if the value is empty or not a real calendar date
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(field, f"{field} is required")

    text = value.strip()
    match = _US_DATE.match(text)
    if match:
        month, day, year = (int(part) for part in match.groups())
    else:
        match = _ISO_DATE.match(text)
        if not match:
            raise InvalidInput(field, f"{field} must be MM/DD/YYYY or YYYY-MM-DD, got {value!r}")
        year, month, day = (int(part) for part in match.groups())

    try:
        return date(year, month, day).isoformat()
    except ValueError:
        raise InvalidInput(field, f"{field} is not a valid calendar date: {value!r}")


def parse_time_of_day(value: Union[str, time], field: str = "time") -> time:
    """Parse ``H``, ``HH:MM`` or ``HH:MM:SS`` into a time."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(field, f"{field} is required")

    match = _TIME_OF_DAY.match(value.strip())
    if not match:
        raise InvalidInput(field, f"{field} must be HH:MM or HH:MM:SS, got {value!r}")
    hour, minute, second = (int(part) if part else 0 for part in match.groups())

    try:
        return time(hour, minute, second)
    except ValueError:
        raise InvalidInput(field, f"{field} is not a valid time of day: {value!r}")


def normalize_time(value: Union[str, time], field: str = "time") -> str:
    """Normalize a time of day to canonical ``HH:MM:SS``."""
    return parse_time_of_day(value, field).strftime("%H:%M:%S")


def combine_local(day: str, time_of_day: time, tz: ZoneInfo) -> datetime:
    """Build an aware datetime from a canonical date and a local time of day."""
    return datetime.combine(date.fromisoformat(day), time_of_day, tzinfo=tz)


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC timezone."""
    if dt.tzinfo is None:
        # Assume UTC if no timezone
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a calculator (0.5 goes up), not banker's rounding."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
