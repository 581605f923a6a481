from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.attendance.dates import local_date_of
from app.core.attendance.ranges import DateWindow
from app.core.clock import school_tz
from app.core.enums import ApprovalStatus, AttendanceStatus, SubjectType


# ----- Records -----
class AttendanceRecordResponse(BaseModel):
    """One student-day or teacher-day. Exactly one of student_id / teacher_id is set."""

    id: UUID
    student_id: Optional[UUID] = None
    teacher_id: Optional[UUID] = None
    class_id: Optional[UUID] = None
    date: date
    status: AttendanceStatus
    remarks: Optional[str] = None
    late_reason: Optional[str] = None
    approval_status: Optional[str] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[UUID] = None
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    out_time: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("date", mode="before")
    @classmethod
    def _local_calendar_day(cls, v):
        # Instants are pinned to the school's calendar day, never the UTC one.
        if isinstance(v, (str, datetime)):
            return local_date_of(v, school_tz())
        return v

    class Config:
        from_attributes = True


class AttendanceListResponse(BaseModel):
    attendance: List[AttendanceRecordResponse]
    window: Optional[DateWindow] = None


# ----- Writes -----
class StudentAttendanceWrite(BaseModel):
    """Upsert one student-day; (student_id, date) identifies the row."""

    student_id: UUID
    class_id: Optional[UUID] = None
    date: date
    status: AttendanceStatus
    remarks: Optional[str] = Field(None, description="Leave reason; kept only for status=leave")
    late_reason: Optional[str] = None


class StudentAttendanceBatch(BaseModel):
    records: List[StudentAttendanceWrite] = Field(..., min_length=1)


class TeacherAttendanceWrite(BaseModel):
    """Upsert one teacher-day; (teacher_id, date) identifies the row."""

    teacher_id: UUID
    date: date
    status: AttendanceStatus
    remarks: Optional[str] = None
    late_reason: Optional[str] = None
    out_time: Optional[datetime] = None


class AttendanceUpdate(BaseModel):
    """Partial update by id; omitted fields are left unchanged."""

    id: UUID
    status: Optional[AttendanceStatus] = None
    remarks: Optional[str] = None
    late_reason: Optional[str] = None
    out_time: Optional[datetime] = None


class AttendanceWriteResponse(BaseModel):
    attendance: List[AttendanceRecordResponse]
    marked: int


# ----- Grid / cycle -----
class CycleRequest(BaseModel):
    subject_type: SubjectType
    subject_id: UUID
    date: date


class StatusChangeResponse(BaseModel):
    """Result of a status write. The caller opens the leave-reason flow when asked."""

    record: AttendanceRecordResponse
    requires_leave_reason: bool = False


class GridCellResponse(BaseModel):
    date: date
    status: Optional[AttendanceStatus] = None
    record: Optional[AttendanceRecordResponse] = None
    is_today: bool
    is_off_day: bool
    is_future: bool
    editable: bool
    locked: bool
    needs_reason: bool


class GridResponse(BaseModel):
    start: date
    end: date
    day_count: int
    today: date
    cells: List[GridCellResponse]


# ----- Reasons / approval / admin marking -----
class LeaveReasonRequest(BaseModel):
    subject_type: SubjectType
    record_id: UUID
    reason: str = Field(..., min_length=1)


class LeaveApprovalRequest(BaseModel):
    subject_type: SubjectType
    record_id: UUID
    approval_status: Literal["approved", "rejected"]

    @property
    def decision(self) -> ApprovalStatus:
        return ApprovalStatus(self.approval_status)


class MarkRequest(BaseModel):
    """Admin "mark any date" for a student or teacher."""

    subject_type: SubjectType
    subject_id: UUID
    date: date
    status: AttendanceStatus
    remarks: Optional[str] = None
    late_reason: Optional[str] = None


class LateReasonRequest(BaseModel):
    record_id: UUID
    table: Literal["student_attendance", "teacher_attendance"]
    reason: str = Field(..., min_length=1)

    @property
    def subject_type(self) -> SubjectType:
        return SubjectType.STUDENT if self.table == "student_attendance" else SubjectType.TEACHER
