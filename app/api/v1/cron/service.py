"""Daily teacher attendance jobs, triggered by the hosting platform's scheduler."""

import logging
from datetime import date, datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Profile
from app.core.attendance.dates import is_off_day
from app.core.attendance.status_cycle import parse_expected_time
from app.core.enums import ApprovalStatus, AttendanceStatus, UserRole
from app.core.exceptions import ServiceError
from app.core.models import TeacherAttendance

from .schemas import AutoAbsentResult, AutoOutResult, MarkedTeacher

logger = logging.getLogger(__name__)


async def auto_teacher_absent(db: AsyncSession, now: datetime, holidays: Iterable[date]) -> AutoAbsentResult:
    """Mark every active teacher without a record today as absent (auto_marked)."""
    today = now.date()
    if is_off_day(today, set(holidays)):
        logger.info("Skipping auto-absent on off day %s", today)
        return AutoAbsentResult(date=today, marked=0, skipped_off_day=True)

    teachers = (
        await db.execute(
            select(Profile).where(Profile.role == UserRole.TEACHER.value, Profile.is_active.is_(True))
        )
    ).scalars().all()
    marked_ids = set(
        (
            await db.execute(select(TeacherAttendance.teacher_id).where(TeacherAttendance.date == today))
        ).scalars().all()
    )

    missing = [t for t in teachers if t.id not in marked_ids]
    for teacher in missing:
        db.add(
            TeacherAttendance(
                teacher_id=teacher.id,
                date=today,
                status=AttendanceStatus.ABSENT.value,
                approval_status=ApprovalStatus.AUTO_MARKED.value,
            )
        )
    await db.commit()
    logger.info("Auto-marked %d of %d teacher(s) absent for %s", len(missing), len(teachers), today)
    return AutoAbsentResult(
        date=today,
        marked=len(missing),
        teachers=[MarkedTeacher(id=t.id, name=t.name) for t in missing],
    )


async def auto_teacher_out(
    db: AsyncSession, now: datetime, holidays: Iterable[date], auto_out_time: str
) -> AutoOutResult:
    """Close today's open check-ins at the configured out time, then run the absent pass."""
    today = now.date()
    out_clock = parse_expected_time(auto_out_time)
    if out_clock is None:
        raise ServiceError(f"Invalid AUTO_OUT_TIME {auto_out_time!r}")
    out_time = datetime.combine(today, out_clock, tzinfo=now.tzinfo)

    open_rows = (
        await db.execute(
            select(TeacherAttendance).where(
                TeacherAttendance.date == today,
                TeacherAttendance.status.in_([AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value]),
                TeacherAttendance.out_time.is_(None),
            )
        )
    ).scalars().all()
    for row in open_rows:
        row.out_time = out_time
    await db.commit()
    logger.info("Auto checked out %d teacher(s) at %s", len(open_rows), out_time.isoformat())

    absent = await auto_teacher_absent(db, now, holidays)
    return AutoOutResult(date=today, checked_out=len(open_rows), absent=absent)
