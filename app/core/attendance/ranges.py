"""Turn a named range option (or custom bounds) into a concrete DateWindow."""

import calendar
import logging
from datetime import date, timedelta
from typing import Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from app.core.enums import RangeOption

from .dates import (
    days_between,
    first_of_month,
    format_date_key,
    last_day_of_previous_month,
    make_local_date,
    parse_date_key,
)

logger = logging.getLogger(__name__)

LABEL_SEPARATOR = " — "


class DateWindow(BaseModel):
    """Inclusive calendar window; derived, never persisted."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date
    day_count: int
    label: str

    @property
    def start_key(self) -> str:
        return format_date_key(self.start)

    @property
    def end_key(self) -> str:
        return format_date_key(self.end)

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end


def _trailing_days(today: date, days: int):
    return today - timedelta(days=days - 1), today


def _bounds(option: str, custom: Optional[Mapping], today: date):
    if option == RangeOption.LAST_7.value:
        return _trailing_days(today, 7)
    if option == RangeOption.LAST_15.value:
        return _trailing_days(today, 15)
    if option == RangeOption.LAST_MONTH.value:
        end = last_day_of_previous_month(today)
        return first_of_month(end), end
    if option == RangeOption.CURRENT_MONTH.value:
        return first_of_month(today), today
    if option == RangeOption.LAST_3_MONTHS.value:
        return make_local_date(today.year, today.month - 3, 1), last_day_of_previous_month(today)
    if option == RangeOption.LAST_6_MONTHS.value:
        return make_local_date(today.year, today.month - 6, 1), last_day_of_previous_month(today)
    if option == RangeOption.LAST_YEAR.value:
        end = last_day_of_previous_month(today)
        return make_local_date(end.year, end.month - 11, 1), end
    if option == RangeOption.CUSTOM.value:
        custom = custom or {}
        start = parse_date_key(custom.get("start"))
        end = parse_date_key(custom.get("end"))
        if start is None or end is None or start > end:
            logger.debug("Custom range %r incomplete or inverted; using last7", dict(custom))
            return None
        return start, end
    return None


def _label(option: str, start: date, end: date) -> str:
    if option == RangeOption.LAST_MONTH.value:
        return f"{calendar.month_name[start.month]} {start.year}"
    if option in (RangeOption.LAST_3_MONTHS.value, RangeOption.LAST_6_MONTHS.value):
        return (
            f"{calendar.month_abbr[start.month]} {start.year}"
            f"{LABEL_SEPARATOR}"
            f"{calendar.month_abbr[end.month]} {end.year}"
        )
    return f"{format_date_key(start)}{LABEL_SEPARATOR}{format_date_key(end)}"


def resolve_range(
    option: Union[RangeOption, str, None],
    custom: Optional[Mapping] = None,
    today: Optional[date] = None,
) -> DateWindow:
    """
    Resolve a range option against ``today`` (local calendar day).

    Never raises: unknown options and incomplete custom bounds fall back to the
    last7 window.
    """
    if today is None:
        today = date.today()
    key = option.value if isinstance(option, RangeOption) else (option or "")

    bounds = _bounds(key, custom, today)
    if bounds is None:
        key = RangeOption.LAST_7.value
        bounds = _trailing_days(today, 7)
    start, end = bounds

    return DateWindow(
        start=start,
        end=end,
        day_count=days_between(start, end),
        label=_label(key, start, end),
    )
