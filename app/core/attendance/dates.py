"""
Calendar-day helpers for attendance.

Dates are always built from calendar components (year, month, day) and never
by parsing instants in UTC, so a day key can not drift across a timezone
boundary.
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, Optional, Union

DATE_KEY_FORMAT = "%Y-%m-%d"
ONE_DAY = timedelta(days=1)


def make_local_date(year: int, month: int, day: int) -> date:
    """
    Build a calendar date, normalizing out-of-range components.

    month is 1-based and may overflow in either direction (0 is December of the
    previous year, 13 is January of the next). day may also overflow: day 0 is
    the last day of the previous month.
    """
    years, month_index = divmod(month - 1, 12)
    first = date(year + years, month_index + 1, 1)
    return first + timedelta(days=day - 1)


def to_local_date_key(year: int, month: int, day: int) -> str:
    return format_date_key(make_local_date(year, month, day))


def format_date_key(d: date) -> str:
    return d.strftime(DATE_KEY_FORMAT)


def parse_date_key(value: Union[str, date, None]) -> Optional[date]:
    """Parse ``YYYY-MM-DD``. Returns None for missing or malformed input."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        y, m, d = (int(part) for part in str(value).strip().split("-"))
        return date(y, m, d)
    except ValueError:
        return None


def local_date_of(value: Union[str, datetime, date], tz: Optional[tzinfo] = None) -> date:
    """
    Calendar day of a value received from the server.

    Plain ``YYYY-MM-DD`` strings are taken as-is. ISO instants are converted to
    ``tz`` (system local zone when omitted) before the date is taken.
    """
    if isinstance(value, datetime):
        instant = value
    elif isinstance(value, date):
        return value
    else:
        text = str(value).strip()
        if len(text) == 10:
            parsed = parse_date_key(text)
            if parsed is None:
                raise ValueError(f"Invalid date: {value!r}")
            return parsed
        instant = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if instant.tzinfo is None:
        # naive instants are already local wall-clock
        return instant.date()
    return instant.astimezone(tz).date()


def first_of_month(d: date) -> date:
    return d.replace(day=1)


def last_day_of_previous_month(d: date) -> date:
    return make_local_date(d.year, d.month, 0)


def days_between(start: date, end: date) -> int:
    """Inclusive day count of [start, end], floored at 1."""
    return max(1, (end - start).days + 1)


def is_sunday(d: date) -> bool:
    return d.weekday() == 6


def is_off_day(d: date, holidays: Iterable[date] = ()) -> bool:
    """Sundays and configured holidays take no attendance."""
    return is_sunday(d) or d in holidays
