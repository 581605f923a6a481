from enum import Enum


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LEAVE = "leave"
    LATE = "late"


class ApprovalStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    # Written by the scheduled jobs; does not lock the record.
    AUTO_MARKED = "auto_marked"


class RangeOption(str, Enum):
    LAST_7 = "last7"
    LAST_15 = "last15"
    LAST_MONTH = "lastMonth"
    CURRENT_MONTH = "currentMonth"
    LAST_3_MONTHS = "last3Months"
    LAST_6_MONTHS = "last6Months"
    LAST_YEAR = "lastYear"
    CUSTOM = "custom"


class SubjectType(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
