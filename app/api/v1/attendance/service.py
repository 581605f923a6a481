"""Attendance reads and writes for students and teachers, with role-based write rules."""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Profile
from app.auth.schemas import CurrentUser
from app.core.attendance.dates import is_off_day, make_local_date
from app.core.attendance.grid import GridWindow
from app.core.attendance.ranges import DateWindow, resolve_range
from app.core.attendance.status_cycle import (
    is_decided,
    is_late,
    next_status,
    requires_leave_reason,
)
from app.core.enums import ApprovalStatus, AttendanceStatus, SubjectType, UserRole
from app.core.exceptions import ForbiddenError, NotFoundError, ServiceError
from app.core.models import Student, StudentAttendance, TeacherAttendance

from .schemas import (
    AttendanceRecordResponse,
    AttendanceUpdate,
    GridCellResponse,
    GridResponse,
    MarkRequest,
)

logger = logging.getLogger(__name__)

_SUBJECTS = {
    SubjectType.STUDENT: (StudentAttendance, "student_id"),
    SubjectType.TEACHER: (TeacherAttendance, "teacher_id"),
}


def _model_for(subject_type: SubjectType):
    return _SUBJECTS[SubjectType(subject_type)]


def _subject_column(subject_type: SubjectType):
    model, column = _model_for(subject_type)
    return getattr(model, column)


# ----- Permission helpers -----
def _check_write_allowed(current_user: CurrentUser, att_date: date, today: date) -> None:
    """Future dates never; students never; non-admins only today."""
    if att_date > today:
        raise ServiceError("Cannot mark attendance for future dates", status.HTTP_400_BAD_REQUEST)
    if current_user.is_student:
        raise ForbiddenError("Students cannot mark attendance")
    if not current_user.is_admin and att_date != today:
        raise ForbiddenError("Only today's attendance can be changed")


def _check_subject_access(current_user: CurrentUser, subject_type: SubjectType, subject_id: UUID) -> None:
    """Admins: anyone. Teachers: any student, themselves. Students: themselves."""
    if current_user.is_admin:
        return
    if subject_type == SubjectType.TEACHER and subject_id != current_user.id:
        raise ForbiddenError("You can only access your own attendance")
    if current_user.is_student and subject_id != current_user.id:
        raise ForbiddenError("You can only access your own attendance")


def _check_unlocked(current_user: CurrentUser, record) -> None:
    if not current_user.is_admin and is_decided(record.approval_status):
        raise ForbiddenError("This leave has already been reviewed and is locked")


def _check_not_off_day(att_date: date, holidays: Iterable[date]) -> None:
    if is_off_day(att_date, set(holidays)):
        raise ServiceError("Attendance cannot be marked on an off day", status.HTTP_400_BAD_REQUEST)


def _apply_status(record, new_status: AttendanceStatus, remarks: Optional[str] = None) -> None:
    record.status = new_status.value
    # remarks only ever describe a leave
    if new_status == AttendanceStatus.LEAVE:
        if remarks is not None:
            record.remarks = remarks
    else:
        record.remarks = None
        # a review only ever applies to a leave
        record.approval_status = None
        record.approved_by = record.approved_at = None
        record.rejected_by = record.rejected_at = None


async def _get_subject(db: AsyncSession, subject_type: SubjectType, subject_id: UUID):
    if subject_type == SubjectType.STUDENT:
        student = await db.get(Student, subject_id)
        if not student:
            raise NotFoundError(f"Student {subject_id} not found")
        return student
    teacher = await db.get(Profile, subject_id)
    if not teacher or teacher.role != UserRole.TEACHER.value:
        raise NotFoundError(f"Teacher {subject_id} not found")
    return teacher


async def _get_record(db: AsyncSession, subject_type: SubjectType, record_id: UUID):
    model, _ = _model_for(subject_type)
    record = await db.get(model, record_id)
    if not record:
        raise NotFoundError("Attendance record not found")
    return record


async def _find_record(db: AsyncSession, subject_type: SubjectType, subject_id: UUID, att_date: date):
    model, _ = _model_for(subject_type)
    result = await db.execute(
        select(model).where(_subject_column(subject_type) == subject_id, model.date == att_date)
    )
    return result.scalar_one_or_none()


async def _commit(db: AsyncSession, records: Sequence) -> None:
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Duplicate attendance or invalid subject", status.HTTP_409_CONFLICT)
    for rec in records:
        await db.refresh(rec)


def to_response(record) -> AttendanceRecordResponse:
    return AttendanceRecordResponse.model_validate(record)


# ----- Reads -----
def resolve_bounds(
    now: datetime,
    range_option: Optional[str],
    custom_start: Optional[str],
    custom_end: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date],
) -> Tuple[Optional[DateWindow], Optional[date], Optional[date]]:
    """A named range wins over explicit bounds."""
    if range_option:
        window = resolve_range(range_option, {"start": custom_start, "end": custom_end}, today=now.date())
        return window, window.start, window.end
    return None, start_date, end_date


async def list_records(
    db: AsyncSession,
    subject_type: SubjectType,
    subject_ids: Optional[Iterable[UUID]] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    newest_first: bool = False,
) -> List:
    model, _ = _model_for(subject_type)
    stmt = select(model)
    if subject_ids is not None:
        stmt = stmt.where(_subject_column(subject_type).in_(list(subject_ids)))
    if start_date and end_date:
        stmt = stmt.where(model.date >= start_date, model.date <= end_date)
    stmt = stmt.order_by(model.date.desc() if newest_first else model.date.asc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_student_attendance(
    db: AsyncSession,
    current_user: CurrentUser,
    class_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[StudentAttendance]:
    """Admin/teacher: any class or student. Student: own rows only."""
    if current_user.is_student:
        student_id = current_user.id
    subject_ids: Optional[List[UUID]] = None
    if class_id:
        result = await db.execute(select(Student.id).where(Student.class_id == class_id))
        subject_ids = list(result.scalars().all())
    if student_id:
        subject_ids = [sid for sid in subject_ids if sid == student_id] if subject_ids is not None else [student_id]
    return await list_records(db, SubjectType.STUDENT, subject_ids, start_date, end_date)


def month_bounds(month: str) -> Tuple[date, date]:
    """``YYYY-MM`` -> first and last day of that month."""
    try:
        year, month_num = (int(part) for part in month.split("-"))
        start = date(year, month_num, 1)
    except ValueError:
        raise ServiceError("month must be formatted YYYY-MM", status.HTTP_400_BAD_REQUEST)
    return start, make_local_date(year, month_num + 1, 0)


async def list_teacher_attendance(
    db: AsyncSession,
    current_user: CurrentUser,
    teacher_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    month: Optional[str] = None,
) -> List[TeacherAttendance]:
    """Admin: all teachers. Teacher: own rows only. Newest first."""
    if current_user.is_student:
        raise ForbiddenError("Students cannot view teacher attendance")
    if not current_user.is_admin:
        teacher_id = current_user.id
    if month and not (start_date and end_date):
        start_date, end_date = month_bounds(month)
    subject_ids = [teacher_id] if teacher_id else None
    return await list_records(db, SubjectType.TEACHER, subject_ids, start_date, end_date, newest_first=True)


# ----- Writes -----
async def _upsert(
    db: AsyncSession,
    current_user: CurrentUser,
    subject_type: SubjectType,
    subject_id: UUID,
    att_date: date,
    new_status: AttendanceStatus,
    today: date,
    holidays: Iterable[date],
    remarks: Optional[str] = None,
    late_reason: Optional[str] = None,
    class_id: Optional[UUID] = None,
    out_time: Optional[datetime] = None,
):
    """Stage an insert or in-place update for (subject, date). Caller commits."""
    _check_write_allowed(current_user, att_date, today)
    _check_not_off_day(att_date, holidays)
    _check_subject_access(current_user, subject_type, subject_id)
    subject = await _get_subject(db, subject_type, subject_id)
    model, column = _model_for(subject_type)

    record = await _find_record(db, subject_type, subject_id, att_date)
    if record is None:
        record = model(**{column: subject_id}, date=att_date)
        if subject_type == SubjectType.STUDENT:
            record.class_id = class_id or subject.class_id
        db.add(record)
    else:
        _check_unlocked(current_user, record)
        if record.approval_status == ApprovalStatus.AUTO_MARKED.value:
            record.approval_status = None
    _apply_status(record, new_status, remarks)
    if late_reason is not None:
        record.late_reason = late_reason
    if out_time is not None:
        record.out_time = out_time
    return record


async def upsert_attendance(
    db: AsyncSession,
    current_user: CurrentUser,
    subject_type: SubjectType,
    items: Sequence,
    today: date,
    holidays: Iterable[date],
) -> List:
    """Upsert student/teacher days in one transaction; replaces, never duplicates."""
    _, column = _model_for(subject_type)
    records = []
    seen = set()
    for item in items:
        subject_id = getattr(item, column)
        if (subject_id, item.date) in seen:
            raise ServiceError(
                f"Duplicate entry for {subject_id} on {item.date} in request",
                status.HTTP_400_BAD_REQUEST,
            )
        seen.add((subject_id, item.date))
        record = await _upsert(
            db,
            current_user,
            subject_type,
            subject_id,
            item.date,
            item.status,
            today,
            holidays,
            remarks=item.remarks,
            late_reason=item.late_reason,
            class_id=getattr(item, "class_id", None),
            out_time=getattr(item, "out_time", None),
        )
        records.append(record)
    await _commit(db, records)
    logger.info("%s marked %d %s attendance row(s)", current_user.id, len(records), subject_type.value)
    return records


async def update_attendance(
    db: AsyncSession,
    current_user: CurrentUser,
    subject_type: SubjectType,
    payload: AttendanceUpdate,
    today: date,
    holidays: Iterable[date],
):
    record = await _get_record(db, subject_type, payload.id)
    _check_write_allowed(current_user, record.date, today)
    _check_not_off_day(record.date, holidays)
    _check_subject_access(current_user, subject_type, getattr(record, _model_for(subject_type)[1]))
    _check_unlocked(current_user, record)
    changes = payload.model_dump(exclude_unset=True, exclude={"id"})
    if changes.get("status") is not None:
        _apply_status(record, AttendanceStatus(changes["status"]), changes.get("remarks"))
    elif "remarks" in changes:
        record.remarks = changes["remarks"]
    if "late_reason" in changes:
        record.late_reason = changes["late_reason"]
    if "out_time" in changes:
        record.out_time = changes["out_time"]
    await _commit(db, [record])
    return record


async def delete_attendance(
    db: AsyncSession,
    current_user: CurrentUser,
    subject_type: SubjectType,
    record_id: UUID,
    today: date,
    holidays: Iterable[date],
) -> None:
    """Clearing a status removes the row."""
    record = await _get_record(db, subject_type, record_id)
    _check_write_allowed(current_user, record.date, today)
    _check_not_off_day(record.date, holidays)
    _check_subject_access(current_user, subject_type, getattr(record, _model_for(subject_type)[1]))
    _check_unlocked(current_user, record)
    await db.delete(record)
    await db.commit()


# ----- Grid / cycle -----
def _window_for(now: datetime, start: date, day_count: int, holidays: Iterable[date]) -> GridWindow:
    return GridWindow(day_count, clock=lambda: now, start=start, holidays=holidays)


async def build_grid(
    db: AsyncSession,
    current_user: CurrentUser,
    subject_type: SubjectType,
    subject_id: UUID,
    now: datetime,
    holidays: Iterable[date],
    start: Optional[date] = None,
    day_count: int = 7,
) -> GridResponse:
    """Cells for one subject's window, with editability for the caller."""
    _check_subject_access(current_user, subject_type, subject_id)
    await _get_subject(db, subject_type, subject_id)
    if start is None:
        start = now.date() - timedelta(days=day_count - 1)
    window = _window_for(now, start, day_count, holidays)
    window.set_records(
        await list_records(db, subject_type, [subject_id], window.visible_start, window.visible_end)
    )
    is_admin = current_user.is_admin
    cells = [
        GridCellResponse(
            date=cell.date,
            status=cell.status,
            record=to_response(cell.record) if cell.record is not None else None,
            is_today=cell.is_today,
            is_off_day=cell.is_off_day,
            is_future=cell.is_future,
            editable=cell.editable and not current_user.is_student,
            locked=cell.locked,
            needs_reason=cell.needs_reason,
        )
        for cell in window.cells_for_window(is_admin=is_admin)
    ]
    return GridResponse(
        start=window.visible_start,
        end=window.visible_end,
        day_count=window.day_count,
        today=window.today,
        cells=cells,
    )


async def cycle_status(
    db: AsyncSession,
    current_user: CurrentUser,
    subject_type: SubjectType,
    subject_id: UUID,
    att_date: date,
    now: datetime,
    holidays: Iterable[date],
) -> Tuple[object, bool]:
    """Advance a day's status one step; returns (record, requires_leave_reason)."""
    window = _window_for(now, att_date, 1, holidays)
    existing = await _find_record(db, subject_type, subject_id, att_date)
    if existing is not None:
        window.set_records([existing])
    if window.is_off_day(att_date):
        raise ServiceError("Attendance cannot be marked on an off day", status.HTTP_400_BAD_REQUEST)
    if not window.is_editable(att_date, is_admin=current_user.is_admin):
        _check_write_allowed(current_user, att_date, window.today)
    if window.is_locked(att_date, is_admin=current_user.is_admin):
        raise ForbiddenError("This leave has already been reviewed and is locked")

    new_status = next_status(existing.status if existing is not None else None)
    record = await _upsert(
        db, current_user, subject_type, subject_id, att_date, new_status, window.today, holidays
    )
    await _commit(db, [record])
    return record, requires_leave_reason(new_status)


# ----- Reasons / approval -----
async def set_leave_reason(
    db: AsyncSession,
    current_user: CurrentUser,
    subject_type: SubjectType,
    record_id: UUID,
    reason: str,
):
    record = await _get_record(db, subject_type, record_id)
    if current_user.is_student:
        raise ForbiddenError("Students cannot edit leave reasons")
    _check_subject_access(current_user, subject_type, getattr(record, _model_for(subject_type)[1]))
    if record.status != AttendanceStatus.LEAVE.value:
        raise ServiceError("A reason can only be recorded for a leave", status.HTTP_400_BAD_REQUEST)
    _check_unlocked(current_user, record)
    record.remarks = reason.strip()
    await _commit(db, [record])
    return record


async def decide_leave(
    db: AsyncSession,
    current_user: CurrentUser,
    subject_type: SubjectType,
    record_id: UUID,
    decision: ApprovalStatus,
    now: datetime,
):
    """Admin approves or rejects a leave; the record is then locked for everyone else."""
    record = await _get_record(db, subject_type, record_id)
    if record.status != AttendanceStatus.LEAVE.value:
        raise ServiceError("Only a leave can be approved or rejected", status.HTTP_400_BAD_REQUEST)
    record.approval_status = decision.value
    if decision == ApprovalStatus.APPROVED:
        record.approved_by, record.approved_at = current_user.id, now
    else:
        record.rejected_by, record.rejected_at = current_user.id, now
    await _commit(db, [record])
    logger.info("Leave %s %s by %s", record_id, decision.value, current_user.id)
    return record


async def save_late_reason(
    db: AsyncSession,
    current_user: CurrentUser,
    subject_type: SubjectType,
    record_id: UUID,
    reason: str,
):
    record = await _get_record(db, subject_type, record_id)
    if current_user.is_student:
        raise ForbiddenError("Students cannot edit late reasons")
    _check_subject_access(current_user, subject_type, getattr(record, _model_for(subject_type)[1]))
    if record.status != AttendanceStatus.LATE.value:
        raise ServiceError("A late reason can only be recorded for a late mark", status.HTTP_400_BAD_REQUEST)
    record.late_reason = reason.strip()
    await _commit(db, [record])
    return record


# ----- Admin marking / teacher check-in -----
async def mark_any_date(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: MarkRequest,
    now: datetime,
    grace_minutes: int,
    holidays: Iterable[date],
) -> Tuple[object, bool]:
    """Admin marks any past or current day. A teacher marked present today past their expected time becomes late."""
    new_status = payload.status
    if payload.subject_type == SubjectType.TEACHER and new_status == AttendanceStatus.PRESENT:
        teacher = await _get_subject(db, SubjectType.TEACHER, payload.subject_id)
        if is_late(now, teacher.expected_time, payload.date, grace_minutes):
            new_status = AttendanceStatus.LATE
    record = await _upsert(
        db,
        current_user,
        payload.subject_type,
        payload.subject_id,
        payload.date,
        new_status,
        now.date(),
        holidays,
        remarks=payload.remarks,
        late_reason=payload.late_reason,
    )
    await _commit(db, [record])
    return record, requires_leave_reason(new_status)


async def check_in(
    db: AsyncSession,
    current_user: CurrentUser,
    now: datetime,
    holidays: Iterable[date],
    grace_minutes: int,
) -> TeacherAttendance:
    """Teacher marks their own arrival for today: present, or late past expected time."""
    if not current_user.is_teacher:
        raise ForbiddenError("Only teachers can check in")
    today = now.date()
    if _window_for(now, today, 1, holidays).is_off_day(today):
        raise ServiceError("Today is an off day", status.HTTP_400_BAD_REQUEST)

    existing = await _find_record(db, SubjectType.TEACHER, current_user.id, today)
    if existing is not None:
        if existing.status in (AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value):
            return existing
        if existing.approval_status != ApprovalStatus.AUTO_MARKED.value:
            raise ServiceError("Attendance for today has already been recorded", status.HTTP_409_CONFLICT)

    new_status = AttendanceStatus.PRESENT
    if is_late(now, current_user.expected_time, today, grace_minutes):
        new_status = AttendanceStatus.LATE
    record = await _upsert(
        db, current_user, SubjectType.TEACHER, current_user.id, today, new_status, today, holidays
    )
    record.created_at = now
    await _commit(db, [record])
    logger.info("Teacher %s checked in as %s", current_user.id, new_status.value)
    return record


async def check_out(db: AsyncSession, current_user: CurrentUser, now: datetime) -> TeacherAttendance:
    if not current_user.is_teacher:
        raise ForbiddenError("Only teachers can check out")
    record = await _find_record(db, SubjectType.TEACHER, current_user.id, now.date())
    if record is None or record.status not in (AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value):
        raise ServiceError("Check in before checking out", status.HTTP_400_BAD_REQUEST)
    record.out_time = now
    await _commit(db, [record])
    return record
