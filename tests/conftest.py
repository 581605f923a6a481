import os

# Settings are read at import time.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["SCHOOL_TIMEZONE"] = "Asia/Karachi"
os.environ["HOLIDAYS"] = "2024-06-10"
os.environ["CRON_SECRET"] = "cron-secret"
os.environ["AUTO_OUT_TIME"] = "19:00"

import uuid
from datetime import datetime
from typing import AsyncGenerator, Callable, Dict
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.models import Profile
from app.auth.security import create_access_token
from app.core.clock import get_now
from app.core.models import SchoolClass, Student
from app.db.session import Base, get_db
from app.main import app

TEST_DATABASE_URL = "sqlite+aiosqlite://"

# A Wednesday; the day before is a normal school day, 2024-06-09 is a Sunday
# and 2024-06-10 is a configured holiday.
FIXED_NOW = datetime(2024, 6, 12, 10, 0, tzinfo=ZoneInfo("Asia/Karachi"))


@pytest.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """In-memory SQLite shared by every session in one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session used by tests to seed data."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, one DB session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: FIXED_NOW
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def make_profile(db_session: AsyncSession) -> Callable:
    async def _make(role: str, name: str = None, expected_time: str = None, is_active: bool = True, id=None):
        profile = Profile(
            id=id or uuid.uuid4(),
            name=name or f"Test {role}",
            role=role,
            expected_time=expected_time,
            is_active=is_active,
        )
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _make


@pytest.fixture()
async def admin(make_profile) -> Profile:
    return await make_profile("admin", name="Admin")


@pytest.fixture()
async def teacher(make_profile) -> Profile:
    return await make_profile("teacher", name="Ayesha Khan", expected_time="08:00")


@pytest.fixture()
async def school_class(db_session: AsyncSession, teacher: Profile) -> SchoolClass:
    school_class = SchoolClass(name="Grade 5", teacher_id=teacher.id)
    db_session.add(school_class)
    await db_session.commit()
    return school_class


@pytest.fixture()
def make_student(db_session: AsyncSession, make_profile, school_class: SchoolClass) -> Callable:
    async def _make(name: str = "Ali Raza", with_profile: bool = False):
        student = Student(id=uuid.uuid4(), name=name, class_id=school_class.id)
        db_session.add(student)
        await db_session.commit()
        if with_profile:
            # a student signs in with a profile sharing the student's id
            await make_profile("student", name=name, id=student.id)
        return student

    return _make


@pytest.fixture()
async def student(make_student) -> Student:
    return await make_student()


@pytest.fixture()
def auth_headers() -> Callable[..., Dict[str, str]]:
    def _headers(profile) -> Dict[str, str]:
        # roles come from the profile row, not the token
        token = create_access_token(subject={"user_id": str(profile.id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers
