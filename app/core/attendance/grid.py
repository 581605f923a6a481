"""
Sliding window of attendance days.

A GridWindow shows ``day_count`` consecutive days starting at ``visible_start``
over the records it was last given. It pages by whole windows, clamps silently
to optional bounds and, once started, advances by one day at each local
midnight.
"""

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel

from .dates import ONE_DAY, is_off_day, local_date_of
from .status_cycle import is_decided, needs_reason

logger = logging.getLogger(__name__)

NavigateCallback = Callable[[date, date], None]
Clock = Callable[[], datetime]

# Fire just after midnight so "now" is unambiguously on the new day.
ROLLOVER_OFFSET = time(0, 0, 1)


def _system_now() -> datetime:
    # fixed UTC offset, no zone rules
    return datetime.now().astimezone()


def record_field(record: Any, name: str, default: Any = None) -> Any:
    """Read a field from a dict (JSON) or an object (ORM row / schema)."""
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


class GridCell(BaseModel):
    date: date
    record: Optional[Any] = None
    status: Optional[str] = None
    is_today: bool = False
    is_off_day: bool = False
    is_future: bool = False
    editable: bool = False
    # decided leave: non-admins can not cycle it
    locked: bool = False
    needs_reason: bool = False


class GridWindow:
    def __init__(
        self,
        day_count: int = 7,
        *,
        clock: Optional[Clock] = None,
        start: Optional[date] = None,
        min_date: Optional[date] = None,
        max_date: Optional[date] = None,
        cap_at_today: bool = False,
        holidays: Iterable[date] = (),
        on_navigate: Optional[NavigateCallback] = None,
        on_rollover: Optional[NavigateCallback] = None,
    ) -> None:
        if day_count < 1:
            raise ValueError("day_count must be at least 1")
        self.day_count = day_count
        self._clock = clock or _system_now
        self._now = self._clock()
        self.min_date = min_date
        self.max_date = max_date
        self.cap_at_today = cap_at_today
        self.holidays = set(holidays)
        self.on_navigate = on_navigate
        self.on_rollover = on_rollover
        self._records: Dict[date, Any] = {}
        self._timer: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.visible_start = start if start is not None else self.today - timedelta(days=day_count - 1)

    # ----- state -----
    @property
    def now(self) -> datetime:
        return self._now

    @property
    def today(self) -> date:
        return self._now.date()

    @property
    def visible_end(self) -> date:
        return self.visible_start + timedelta(days=self.day_count - 1)

    def dates(self) -> List[date]:
        return [self.visible_start + timedelta(days=i) for i in range(self.day_count)]

    def set_records(self, records: Iterable[Any]) -> None:
        """Replace the record set. Later records for the same day win."""
        indexed: Dict[date, Any] = {}
        for rec in records:
            raw = record_field(rec, "date")
            if raw is None:
                continue
            indexed[local_date_of(raw, self._now.tzinfo)] = rec
        self._records = indexed

    def upsert_record(self, record: Any) -> None:
        self._records[local_date_of(record_field(record, "date"), self._now.tzinfo)] = record

    def remove_record(self, day: date) -> None:
        self._records.pop(day, None)

    def record_for(self, day: date) -> Optional[Any]:
        return self._records.get(day)

    @property
    def records(self) -> List[Any]:
        return [self._records[d] for d in sorted(self._records)]

    # ----- day rules -----
    def is_off_day(self, day: date) -> bool:
        return is_off_day(day, self.holidays)

    def is_editable(self, day: date, is_admin: bool = False) -> bool:
        """Future and off days never; admins any other day; everyone else today only."""
        if day > self.today or self.is_off_day(day):
            return False
        return is_admin or day == self.today

    def is_locked(self, day: date, is_admin: bool = False) -> bool:
        record = self.record_for(day)
        if record is None or is_admin:
            return False
        return is_decided(record_field(record, "approval_status"))

    def can_cycle(self, day: date, is_admin: bool = False) -> bool:
        return self.is_editable(day, is_admin) and not self.is_locked(day, is_admin)

    def cells_for_window(self, is_admin: bool = False) -> List[GridCell]:
        cells = []
        for day in self.dates():
            record = self.record_for(day)
            status = record_field(record, "status") if record is not None else None
            off = self.is_off_day(day)
            cells.append(
                GridCell(
                    date=day,
                    record=record,
                    status=None if off else status,
                    is_today=day == self.today,
                    is_off_day=off,
                    is_future=day > self.today,
                    editable=self.is_editable(day, is_admin),
                    locked=self.is_locked(day, is_admin),
                    needs_reason=(
                        record is not None
                        and needs_reason(status, record_field(record, "approval_status"))
                    ),
                )
            )
        return cells

    # ----- navigation -----
    def _upper_bound(self) -> Optional[date]:
        bounds = [b for b in (self.max_date, self.today if self.cap_at_today else None) if b is not None]
        return min(bounds) if bounds else None

    def _move_to(self, new_start: date) -> None:
        self.visible_start = new_start
        if self.on_navigate is not None:
            self.on_navigate(self.visible_start, self.visible_end)

    def page_backward(self) -> date:
        new_start = self.visible_start - timedelta(days=self.day_count)
        if self.min_date is not None and new_start < self.min_date:
            new_start = self.min_date
        self._move_to(new_start)
        return new_start

    def page_forward(self) -> date:
        new_start = self.visible_start + timedelta(days=self.day_count)
        upper = self._upper_bound()
        if upper is not None:
            latest_start = upper - timedelta(days=self.day_count - 1)
            if new_start > latest_start:
                new_start = max(latest_start, self.min_date) if self.min_date else latest_start
        self._move_to(new_start)
        return new_start

    # ----- midnight rollover -----
    @property
    def timer_pending(self) -> bool:
        return self._timer is not None and not self._timer.cancelled()

    def seconds_until_rollover(self) -> float:
        now = self._clock()
        next_day = now.date() + ONE_DAY
        target = datetime.combine(next_day, ROLLOVER_OFFSET, tzinfo=now.tzinfo)
        # compared as UTC instants; a DST change before midnight is only seen with a ZoneInfo clock
        delta = target.astimezone(timezone.utc) - now.astimezone(timezone.utc)
        return max(0.0, delta.total_seconds())

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Begin midnight tracking. Safe to call repeatedly."""
        self._loop = loop or asyncio.get_running_loop()
        self._schedule_rollover()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_rollover(self) -> None:
        self.stop()
        delay = self.seconds_until_rollover()
        self._timer = self._loop.call_later(delay, self._on_midnight)
        logger.debug("Next attendance rollover in %.0fs", delay)

    def _on_midnight(self) -> None:
        self._timer = None
        self.advance_day()
        self._schedule_rollover()

    def advance_day(self) -> None:
        """Refresh "now" and slide the window forward by exactly one day."""
        self._now = self._clock()
        self.visible_start = self.visible_start + ONE_DAY
        if self.on_rollover is not None:
            self.on_rollover(self.visible_start, self.visible_end)
