import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class Profile(Base):
    """Signed-in user (admin, teacher or student). Credentials live with the external auth provider."""

    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    # admin | teacher | student
    role = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # Teachers only: expected arrival, "HH:MM" school-local time.
    expected_time = Column(String(5), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
