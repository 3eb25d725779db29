"""Time-of-day parsing, local clock and rounding helpers."""

import re
from datetime import datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .errors import ValidationError

TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def local_now() -> datetime:
    """Return the current time as a timezone-aware local datetime."""
    return datetime.now().astimezone()


def parse_time_of_day(value: Optional[str]) -> time:
    """Parse an HH:MM wall-clock string.

    Args:
        value: The time of day, e.g. "22:30".

    Returns:
        time: The parsed time of day.

    Raises:
        ValidationError: If the value is missing or not a valid HH:MM string.
    """
    if not isinstance(value, str) or not value:
        raise ValidationError("Time of day is required (expected HH:MM)")

    match = TIME_OF_DAY_PATTERN.match(value.strip())
    if match is None:
        raise ValidationError(f"Invalid time of day {value!r}, expected HH:MM")

    return time(hour=int(match.group(1)), minute=int(match.group(2)))


def format_time_of_day(value: time) -> str:
    """Format a time of day as HH:MM."""
    return f"{value.hour:02d}:{value.minute:02d}"


def shift_time_of_day(value: str, minutes: int) -> str:
    """Shift an HH:MM string by a number of minutes, wrapping around midnight."""
    parsed = parse_time_of_day(value)
    total = (parsed.hour * 60 + parsed.minute + minutes) % (24 * 60)
    return format_time_of_day(time(hour=total // 60, minute=total % 60))


def next_occurrence(time_of_day: str, now: datetime) -> datetime:
    """Return the next timestamp with the given wall-clock time strictly after now.

    If the time of day has already passed today (or is exactly now),
    tomorrow's occurrence is used. When ``now`` carries the system local
    offset (as from ``local_now``), the offset of the result is resolved for
    the target date, so a daylight saving change in between is honoured.
    Any other timezone is kept as is.
    """
    parsed = parse_time_of_day(time_of_day)
    resolve_local = _is_system_local(now)
    for days in (0, 1):
        day = now.date() + timedelta(days=days)
        if resolve_local:
            candidate = datetime.combine(day, parsed).astimezone()
        else:
            candidate = datetime.combine(day, parsed, tzinfo=now.tzinfo)
        if candidate > now:
            break
    return candidate


def _is_system_local(value: datetime) -> bool:
    # astimezone() yields a fixed offset that is only valid for that instant
    return isinstance(value.tzinfo, timezone) and value.utcoffset() == value.astimezone().utcoffset()


def seconds_between(start: datetime, end: datetime) -> float:
    """Elapsed seconds between two aware datetimes, independent of their tzinfo."""
    return end.timestamp() - start.timestamp()


def round_half_away(value: float, places: int) -> float:
    """Round half away from zero to the given number of decimal places."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
