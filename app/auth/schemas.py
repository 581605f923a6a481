from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from app.core.enums import UserRole


class CurrentUser(BaseModel):
    """The authenticated session, passed explicitly into every service call."""

    id: UUID
    role: str
    name: Optional[str] = None
    expected_time: Optional[str] = None  # teachers only

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_teacher(self) -> bool:
        return self.role == UserRole.TEACHER.value

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT.value
