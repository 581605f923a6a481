from app.core.attendance.dates import local_date_of, parse_date_key, to_local_date_key
from app.core.attendance.grid import GridCell, GridWindow
from app.core.attendance.ranges import DateWindow, resolve_range
from app.core.attendance.status_cycle import (
    LATE_GRACE_MINUTES,
    is_late,
    next_status,
    requires_leave_reason,
)

__all__ = [
    "DateWindow",
    "GridCell",
    "GridWindow",
    "LATE_GRACE_MINUTES",
    "is_late",
    "local_date_of",
    "next_status",
    "parse_date_key",
    "requires_leave_reason",
    "resolve_range",
    "to_local_date_key",
]
