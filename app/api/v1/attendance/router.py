"""Attendance API router: student days, the shared grid/cycle endpoints and leave handling."""

from datetime import date, datetime
from typing import Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser
from app.core.attendance.ranges import DateWindow, resolve_range
from app.core.clock import get_now
from app.core.config import settings
from app.core.enums import RangeOption, SubjectType
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import (
    AttendanceListResponse,
    AttendanceRecordResponse,
    AttendanceUpdate,
    AttendanceWriteResponse,
    CycleRequest,
    GridResponse,
    LeaveApprovalRequest,
    LeaveReasonRequest,
    MarkRequest,
    StatusChangeResponse,
    StudentAttendanceBatch,
    StudentAttendanceWrite,
)

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


# ----- Range / grid -----
@router.get("/range", response_model=DateWindow)
async def get_range(
    option: str = Query(RangeOption.LAST_7.value, description="last7, last15, lastMonth, currentMonth, last3Months, last6Months, lastYear, custom"),
    start: Optional[str] = Query(None, description="Custom start, YYYY-MM-DD"),
    end: Optional[str] = Query(None, description="Custom end, YYYY-MM-DD"),
    now: datetime = Depends(get_now),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Resolve a range option to concrete bounds. Invalid input yields the last 7 days."""
    return resolve_range(option, {"start": start, "end": end}, today=now.date())


@router.get("/grid", response_model=GridResponse)
async def get_grid(
    subject_type: SubjectType,
    subject_id: UUID,
    start: Optional[date] = Query(None, description="First visible day; defaults to today - (day_count - 1)"),
    day_count: int = Query(7, ge=1, le=62),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Visible attendance cells for one student or teacher, with editability for the caller."""
    try:
        return await service.build_grid(
            db,
            current_user,
            subject_type,
            subject_id,
            now,
            settings.holidays,
            start=start,
            day_count=day_count,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/cycle", response_model=StatusChangeResponse)
async def cycle_status(
    payload: CycleRequest,
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Advance the day's status one step (none -> present -> absent -> leave -> present)."""
    try:
        record, needs_reason = await service.cycle_status(
            db,
            current_user,
            payload.subject_type,
            payload.subject_id,
            payload.date,
            now,
            settings.holidays,
        )
        return StatusChangeResponse(record=service.to_response(record), requires_leave_reason=needs_reason)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Leave handling / admin marking -----
@router.post("/leave-reason", response_model=AttendanceRecordResponse)
async def set_leave_reason(
    payload: LeaveReasonRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Record the reason for a leave. Locked for non-admins once the leave is reviewed."""
    try:
        record = await service.set_leave_reason(
            db, current_user, payload.subject_type, payload.record_id, payload.reason
        )
        return service.to_response(record)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/leave-approval", response_model=AttendanceRecordResponse)
async def decide_leave(
    payload: LeaveApprovalRequest,
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
):
    """Approve or reject a leave (admin)."""
    try:
        record = await service.decide_leave(
            db, current_user, payload.subject_type, payload.record_id, payload.decision, now
        )
        return service.to_response(record)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/mark", response_model=StatusChangeResponse, status_code=status.HTTP_201_CREATED)
async def mark_any_date(
    payload: MarkRequest,
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
):
    """Mark a student or teacher on any past or current day (admin)."""
    try:
        record, needs_reason = await service.mark_any_date(
            db, current_user, payload, now, settings.late_grace_minutes, settings.holidays
        )
        return StatusChangeResponse(record=service.to_response(record), requires_leave_reason=needs_reason)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Student Attendance -----
@router.get("", response_model=AttendanceListResponse)
async def list_student_attendance(
    class_id: Optional[UUID] = Query(None, alias="classId"),
    student_id: Optional[UUID] = Query(None, alias="studentId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    range_option: Optional[str] = Query(None, alias="range"),
    custom_start: Optional[str] = Query(None, alias="customStart"),
    custom_end: Optional[str] = Query(None, alias="customEnd"),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Student attendance for a class or student, by explicit bounds or a named range."""
    window, start, end = service.resolve_bounds(now, range_option, custom_start, custom_end, start_date, end_date)
    try:
        records = await service.list_student_attendance(db, current_user, class_id, student_id, start, end)
        return AttendanceListResponse(attendance=[service.to_response(r) for r in records], window=window)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", response_model=AttendanceWriteResponse, status_code=status.HTTP_201_CREATED)
async def upsert_student_attendance(
    payload: Union[StudentAttendanceBatch, StudentAttendanceWrite],
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Upsert one record or ``{records: [...]}`` keyed by (student_id, date)."""
    items = payload.records if isinstance(payload, StudentAttendanceBatch) else [payload]
    try:
        records = await service.upsert_attendance(
            db, current_user, SubjectType.STUDENT, items, now.date(), settings.holidays
        )
        return AttendanceWriteResponse(attendance=[service.to_response(r) for r in records], marked=len(records))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("", response_model=AttendanceRecordResponse)
async def update_student_attendance(
    payload: AttendanceUpdate,
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        record = await service.update_attendance(
            db, current_user, SubjectType.STUDENT, payload, now.date(), settings.holidays
        )
        return service.to_response(record)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_student_attendance(
    record_id: UUID,
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Clear a student's status for the day."""
    try:
        await service.delete_attendance(
            db, current_user, SubjectType.STUDENT, record_id, now.date(), settings.holidays
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
