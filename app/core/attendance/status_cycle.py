"""Click-to-cycle ordering for a day's attendance status, and late detection."""

from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from app.core.enums import ApprovalStatus, AttendanceStatus

# Fixed policy; callers may pass a configured value instead.
LATE_GRACE_MINUTES = 15

_CYCLE = {
    None: AttendanceStatus.PRESENT,
    AttendanceStatus.PRESENT: AttendanceStatus.ABSENT,
    # late is a variant of present and is never produced here
    AttendanceStatus.LATE: AttendanceStatus.ABSENT,
    AttendanceStatus.ABSENT: AttendanceStatus.LEAVE,
    AttendanceStatus.LEAVE: AttendanceStatus.PRESENT,
}

LOCKING_APPROVALS = (ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value)


def _coerce(status: Union[AttendanceStatus, str, None]) -> Optional[AttendanceStatus]:
    if status is None or status == "":
        return None
    return AttendanceStatus(status)


def next_status(current: Union[AttendanceStatus, str, None]) -> AttendanceStatus:
    """none -> present -> absent -> leave -> present -> ..."""
    return _CYCLE[_coerce(current)]


def requires_leave_reason(status: Union[AttendanceStatus, str, None]) -> bool:
    return _coerce(status) is AttendanceStatus.LEAVE


def is_decided(approval_status: Optional[str]) -> bool:
    """An approved or rejected leave; auto-marked rows stay open."""
    return approval_status in LOCKING_APPROVALS


def needs_reason(status: Optional[str], approval_status: Optional[str]) -> bool:
    return requires_leave_reason(status) and not approval_status


def parse_expected_time(value: Optional[str]) -> Optional[time]:
    """``HH:MM`` (seconds tolerated) -> time; None if missing or malformed."""
    if not value:
        return None
    parts = str(value).strip().split(":")
    try:
        hour, minute = int(parts[0]), int(parts[1])
        return time(hour, minute)
    except (IndexError, ValueError):
        return None


def is_late(
    now: datetime,
    expected_time: Optional[str],
    target_date: date,
    grace_minutes: int = LATE_GRACE_MINUTES,
) -> bool:
    """
    True iff ``target_date`` is today and ``now`` is more than ``grace_minutes``
    past ``expected_time`` on that date. ``now`` carries the school-local wall
    clock; no expected time means never late.
    """
    expected = parse_expected_time(expected_time)
    if expected is None or target_date != now.date():
        return False
    deadline = datetime.combine(target_date, expected) + timedelta(minutes=grace_minutes)
    return now.replace(tzinfo=None) > deadline
