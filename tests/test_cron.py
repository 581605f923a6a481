import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import TeacherAttendance


@pytest.mark.asyncio
async def test_wrong_secret_is_rejected(client: AsyncClient) -> None:
    response = await client.get("/api/v1/cron/auto-teacher-absent", params={"secret": "nope"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_auto_absent_marks_only_missing_active_teachers(
    client: AsyncClient, db_session: AsyncSession, teacher, make_profile, auth_headers
) -> None:
    missing = await make_profile("teacher", name="Bilal Ahmed")
    await make_profile("teacher", name="Retired", is_active=False)
    await client.post("/api/v1/teacher-attendance/check-in", headers=auth_headers(teacher))

    response = await client.get("/api/v1/cron/auto-teacher-absent", params={"secret": "cron-secret"})
    assert response.status_code == 200
    data = response.json()
    assert data["date"] == "2024-06-12"
    assert data["marked"] == 1
    assert data["teachers"] == [{"id": str(missing.id), "name": "Bilal Ahmed"}]

    row = (
        await db_session.execute(select(TeacherAttendance).where(TeacherAttendance.teacher_id == missing.id))
    ).scalar_one()
    assert row.status == "absent"
    assert row.approval_status == "auto_marked"

    # running again changes nothing
    response = await client.post("/api/v1/cron/auto-teacher-absent")
    assert response.json()["marked"] == 0


@pytest.mark.asyncio
async def test_auto_out_closes_open_check_ins(
    client: AsyncClient, admin, teacher, make_profile, auth_headers
) -> None:
    missing = await make_profile("teacher")
    await client.post("/api/v1/teacher-attendance/check-in", headers=auth_headers(teacher))

    response = await client.post("/api/v1/cron/auto-teacher-out", params={"secret": "cron-secret"})
    assert response.status_code == 200
    data = response.json()
    assert data["checked_out"] == 1
    assert data["absent"]["marked"] == 1
    assert data["absent"]["teachers"][0]["id"] == str(missing.id)

    response = await client.get("/api/v1/teacher-attendance", params={"teacherId": str(teacher.id)}, headers=auth_headers(admin))
    record = response.json()["attendance"][0]
    assert record["out_time"].startswith("2024-06-12T19:00")

    response = await client.post("/api/v1/cron/auto-teacher-out")
    assert response.json()["checked_out"] == 0
