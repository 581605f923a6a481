"""Teacher attendance API router. Shares the attendance service with student attendance."""

from datetime import date, datetime
from typing import List, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.attendance import service
from app.api.v1.attendance.schemas import (
    AttendanceListResponse,
    AttendanceRecordResponse,
    AttendanceUpdate,
    AttendanceWriteResponse,
    TeacherAttendanceWrite,
)
from app.auth.dependencies import get_current_user
from app.auth.rbac import require_roles
from app.auth.schemas import CurrentUser
from app.core.clock import get_now
from app.core.config import settings
from app.core.enums import SubjectType, UserRole
from app.core.exceptions import ServiceError
from app.db.session import get_db

router = APIRouter(prefix="/api/v1/teacher-attendance", tags=["teacher-attendance"])


@router.get("", response_model=AttendanceListResponse)
async def list_teacher_attendance(
    teacher_id: Optional[UUID] = Query(None, alias="teacherId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    month: Optional[str] = Query(None, description="YYYY-MM; used when no explicit bounds are given"),
    range_option: Optional[str] = Query(None, alias="range"),
    custom_start: Optional[str] = Query(None, alias="customStart"),
    custom_end: Optional[str] = Query(None, alias="customEnd"),
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Teacher attendance, newest first. Teachers only see their own rows."""
    window, start, end = service.resolve_bounds(now, range_option, custom_start, custom_end, start_date, end_date)
    try:
        records = await service.list_teacher_attendance(db, current_user, teacher_id, start, end, month)
        return AttendanceListResponse(attendance=[service.to_response(r) for r in records], window=window)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", response_model=AttendanceWriteResponse, status_code=status.HTTP_201_CREATED)
async def upsert_teacher_attendance(
    payload: Union[List[TeacherAttendanceWrite], TeacherAttendanceWrite],
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Upsert one record or a list, keyed by (teacher_id, date)."""
    items = payload if isinstance(payload, list) else [payload]
    if not items:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No records supplied")
    try:
        records = await service.upsert_attendance(
            db, current_user, SubjectType.TEACHER, items, now.date(), settings.holidays
        )
        return AttendanceWriteResponse(attendance=[service.to_response(r) for r in records], marked=len(records))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("", response_model=AttendanceRecordResponse)
async def update_teacher_attendance(
    payload: AttendanceUpdate,
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        record = await service.update_attendance(
            db, current_user, SubjectType.TEACHER, payload, now.date(), settings.holidays
        )
        return service.to_response(record)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_teacher_attendance(
    record_id: UUID,
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_attendance(
            db, current_user, SubjectType.TEACHER, record_id, now.date(), settings.holidays
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/check-in", response_model=AttendanceRecordResponse)
async def check_in(
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(UserRole.TEACHER.value)),
):
    """Mark today's arrival: present, or late when past expected time plus the grace period."""
    try:
        record = await service.check_in(db, current_user, now, settings.holidays, settings.late_grace_minutes)
        return service.to_response(record)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/check-out", response_model=AttendanceRecordResponse)
async def check_out(
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(UserRole.TEACHER.value)),
):
    try:
        record = await service.check_out(db, current_user, now)
        return service.to_response(record)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
