from app.core.models.class_model import SchoolClass
from app.core.models.student import Student
from app.core.models.student_attendance import StudentAttendance
from app.core.models.teacher_attendance import TeacherAttendance

__all__ = [
    "SchoolClass",
    "Student",
    "StudentAttendance",
    "TeacherAttendance",
]
