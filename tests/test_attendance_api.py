from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import StudentAttendance

TODAY = "2024-06-12"
YESTERDAY = "2024-06-11"


@pytest.mark.asyncio
async def test_requires_token(client: AsyncClient) -> None:
    response = await client.get("/api/v1/attendance")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_range_endpoint(client: AsyncClient, admin, auth_headers) -> None:
    response = await client.get(
        "/api/v1/attendance/range", params={"option": "last3Months"}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    data = response.json()
    assert data["start"] == "2024-03-01"
    assert data["end"] == "2024-05-31"
    assert data["label"] == "Mar 2024 — May 2024"

    response = await client.get(
        "/api/v1/attendance/range", params={"option": "custom", "start": "2024-06-01"}, headers=auth_headers(admin)
    )
    assert response.json()["start"] == "2024-06-06"
    assert response.json()["day_count"] == 7


@pytest.mark.asyncio
async def test_teacher_marks_student_today(
    client: AsyncClient, db_session: AsyncSession, teacher, student, auth_headers
) -> None:
    payload = {"student_id": str(student.id), "date": TODAY, "status": "present"}
    response = await client.post("/api/v1/attendance", json=payload, headers=auth_headers(teacher))
    assert response.status_code == 201
    data = response.json()
    assert data["marked"] == 1
    record = data["attendance"][0]
    assert record["class_id"] == str(student.class_id)

    # Same (student, date) replaces the status instead of adding a row
    payload["status"] = "absent"
    response = await client.post("/api/v1/attendance", json=payload, headers=auth_headers(teacher))
    assert response.status_code == 201
    assert response.json()["attendance"][0]["id"] == record["id"]

    rows = (await db_session.execute(select(StudentAttendance))).scalars().all()
    assert len(rows) == 1
    assert rows[0].status == "absent"


@pytest.mark.asyncio
async def test_batch_upsert_rejects_duplicates(client: AsyncClient, teacher, make_student, auth_headers) -> None:
    first = await make_student("Ali")
    second = await make_student("Sara")
    batch = {
        "records": [
            {"student_id": str(first.id), "date": TODAY, "status": "present"},
            {"student_id": str(second.id), "date": TODAY, "status": "leave", "remarks": "Fever"},
        ]
    }
    response = await client.post("/api/v1/attendance", json=batch, headers=auth_headers(teacher))
    assert response.status_code == 201
    assert response.json()["marked"] == 2

    batch["records"].append(batch["records"][0])
    response = await client.post("/api/v1/attendance", json=batch, headers=auth_headers(teacher))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_write_date_rules(client: AsyncClient, admin, teacher, student, auth_headers) -> None:
    past = {"student_id": str(student.id), "date": YESTERDAY, "status": "present"}
    response = await client.post("/api/v1/attendance", json=past, headers=auth_headers(teacher))
    assert response.status_code == 403

    response = await client.post("/api/v1/attendance", json=past, headers=auth_headers(admin))
    assert response.status_code == 201

    future = {"student_id": str(student.id), "date": "2024-06-13", "status": "present"}
    response = await client.post("/api/v1/attendance", json=future, headers=auth_headers(admin))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_students_cannot_write(client: AsyncClient, make_student, auth_headers) -> None:
    student = await make_student(with_profile=True)
    payload = {"student_id": str(student.id), "date": TODAY, "status": "present"}
    response = await client.post("/api/v1/attendance", json=payload, headers=auth_headers(student))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_student_is_404(client: AsyncClient, admin, auth_headers) -> None:
    payload = {"student_id": "00000000-0000-0000-0000-000000000001", "date": TODAY, "status": "present"}
    response = await client.post("/api/v1/attendance", json=payload, headers=auth_headers(admin))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_student_sees_only_own_rows(
    client: AsyncClient, admin, school_class, make_student, auth_headers
) -> None:
    me = await make_student("Me", with_profile=True)
    other = await make_student("Other")
    for sid in (me.id, other.id):
        await client.post(
            "/api/v1/attendance",
            json={"student_id": str(sid), "date": TODAY, "status": "present"},
            headers=auth_headers(admin),
        )

    response = await client.get(
        "/api/v1/attendance", params={"classId": str(school_class.id)}, headers=auth_headers(me)
    )
    assert response.status_code == 200
    rows = response.json()["attendance"]
    assert [r["student_id"] for r in rows] == [str(me.id)]

    response = await client.get(
        "/api/v1/attendance", params={"classId": str(school_class.id), "range": "last7"}, headers=auth_headers(admin)
    )
    data = response.json()
    assert len(data["attendance"]) == 2
    assert data["window"]["start"] == "2024-06-06"


@pytest.mark.asyncio
async def test_update_and_delete(client: AsyncClient, teacher, student, auth_headers) -> None:
    response = await client.post(
        "/api/v1/attendance",
        json={"student_id": str(student.id), "date": TODAY, "status": "leave", "remarks": "Wedding"},
        headers=auth_headers(teacher),
    )
    record = response.json()["attendance"][0]
    assert record["remarks"] == "Wedding"

    response = await client.put(
        "/api/v1/attendance", json={"id": record["id"], "status": "present"}, headers=auth_headers(teacher)
    )
    assert response.status_code == 200
    assert response.json()["status"] == "present"
    assert response.json()["remarks"] is None

    response = await client.delete(f"/api/v1/attendance/{record['id']}", headers=auth_headers(teacher))
    assert response.status_code == 204
    response = await client.delete(f"/api/v1/attendance/{record['id']}", headers=auth_headers(teacher))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cycle_walks_statuses(client: AsyncClient, teacher, student, auth_headers) -> None:
    body = {"subject_type": "student", "subject_id": str(student.id), "date": TODAY}
    seen = []
    for _ in range(4):
        response = await client.post("/api/v1/attendance/cycle", json=body, headers=auth_headers(teacher))
        assert response.status_code == 200
        data = response.json()
        seen.append((data["record"]["status"], data["requires_leave_reason"]))
    assert seen == [("present", False), ("absent", False), ("leave", True), ("present", False)]


@pytest.mark.asyncio
async def test_cycle_rejects_off_days_and_past_for_teachers(
    client: AsyncClient, admin, teacher, student, auth_headers
) -> None:
    sunday = {"subject_type": "student", "subject_id": str(student.id), "date": "2024-06-09"}
    response = await client.post("/api/v1/attendance/cycle", json=sunday, headers=auth_headers(admin))
    assert response.status_code == 400

    holiday = dict(sunday, date="2024-06-10")
    response = await client.post("/api/v1/attendance/cycle", json=holiday, headers=auth_headers(admin))
    assert response.status_code == 400

    yesterday = dict(sunday, date=YESTERDAY)
    response = await client.post("/api/v1/attendance/cycle", json=yesterday, headers=auth_headers(teacher))
    assert response.status_code == 403
    response = await client.post("/api/v1/attendance/cycle", json=yesterday, headers=auth_headers(admin))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_decided_leave_is_locked(client: AsyncClient, admin, teacher, student, auth_headers) -> None:
    body = {"subject_type": "student", "subject_id": str(student.id), "date": TODAY}
    for _ in range(3):
        response = await client.post("/api/v1/attendance/cycle", json=body, headers=auth_headers(teacher))
    record = response.json()["record"]
    assert record["status"] == "leave"

    reason = {"subject_type": "student", "record_id": record["id"], "reason": "  Family event "}
    response = await client.post("/api/v1/attendance/leave-reason", json=reason, headers=auth_headers(teacher))
    assert response.status_code == 200
    assert response.json()["remarks"] == "Family event"

    approval = {"subject_type": "student", "record_id": record["id"], "approval_status": "approved"}
    response = await client.post("/api/v1/attendance/leave-approval", json=approval, headers=auth_headers(teacher))
    assert response.status_code == 403
    response = await client.post("/api/v1/attendance/leave-approval", json=approval, headers=auth_headers(admin))
    assert response.status_code == 200
    decided = response.json()
    assert decided["approval_status"] == "approved"
    assert decided["approved_by"] == str(admin.id)

    response = await client.post("/api/v1/attendance/cycle", json=body, headers=auth_headers(teacher))
    assert response.status_code == 403
    response = await client.post("/api/v1/attendance/leave-reason", json=reason, headers=auth_headers(teacher))
    assert response.status_code == 403

    response = await client.post("/api/v1/attendance/cycle", json=body, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["record"]["status"] == "present"


@pytest.mark.asyncio
async def test_grid_reports_editability(client: AsyncClient, admin, teacher, student, auth_headers) -> None:
    await client.post(
        "/api/v1/attendance",
        json={"student_id": str(student.id), "date": TODAY, "status": "present"},
        headers=auth_headers(teacher),
    )
    params = {"subject_type": "student", "subject_id": str(student.id)}
    response = await client.get("/api/v1/attendance/grid", params=params, headers=auth_headers(teacher))
    assert response.status_code == 200
    data = response.json()
    assert (data["start"], data["end"], data["today"]) == ("2024-06-06", TODAY, TODAY)
    cells = {c["date"]: c for c in data["cells"]}
    assert len(cells) == 7
    assert cells[TODAY]["editable"] and cells[TODAY]["status"] == "present"
    assert not cells[YESTERDAY]["editable"]
    assert cells["2024-06-09"]["is_off_day"]
    assert cells["2024-06-10"]["is_off_day"]

    response = await client.get("/api/v1/attendance/grid", params=params, headers=auth_headers(admin))
    cells = {c["date"]: c for c in response.json()["cells"]}
    assert cells[YESTERDAY]["editable"]
    assert not cells["2024-06-09"]["editable"]


@pytest.mark.asyncio
async def test_mark_any_date_converts_late_teacher(client: AsyncClient, admin, teacher, auth_headers) -> None:
    body = {"subject_type": "teacher", "subject_id": str(teacher.id), "date": TODAY, "status": "present"}
    response = await client.post("/api/v1/attendance/mark", json=body, headers=auth_headers(teacher))
    assert response.status_code == 403

    response = await client.post("/api/v1/attendance/mark", json=body, headers=auth_headers(admin))
    assert response.status_code == 201
    # expected 08:00, marked at 10:00
    assert response.json()["record"]["status"] == "late"

    past = dict(body, date=YESTERDAY)
    response = await client.post("/api/v1/attendance/mark", json=past, headers=auth_headers(admin))
    assert response.json()["record"]["status"] == "present"


@pytest.mark.asyncio
async def test_late_reason(client: AsyncClient, admin, teacher, auth_headers) -> None:
    body = {"subject_type": "teacher", "subject_id": str(teacher.id), "date": TODAY, "status": "present"}
    response = await client.post("/api/v1/attendance/mark", json=body, headers=auth_headers(admin))
    record = response.json()["record"]

    payload = {"record_id": record["id"], "table": "teacher_attendance", "reason": "Traffic"}
    response = await client.post("/api/v1/late-reason", json=payload, headers=auth_headers(teacher))
    assert response.status_code == 200
    assert response.json()["late_reason"] == "Traffic"

    payload["table"] = "student_attendance"
    response = await client.post("/api/v1/late-reason", json=payload, headers=auth_headers(teacher))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_off_days_reject_every_write(
    client: AsyncClient, db_session: AsyncSession, admin, teacher, student, auth_headers
) -> None:
    sunday = {"subject_type": "student", "subject_id": str(student.id), "date": "2024-06-09", "status": "present"}
    response = await client.post("/api/v1/attendance/mark", json=sunday, headers=auth_headers(admin))
    assert response.status_code == 400

    teacher_sunday = dict(sunday, subject_type="teacher", subject_id=str(teacher.id))
    response = await client.post("/api/v1/attendance/mark", json=teacher_sunday, headers=auth_headers(admin))
    assert response.status_code == 400

    holiday = {"student_id": str(student.id), "date": "2024-06-10", "status": "present"}
    response = await client.post("/api/v1/attendance", json=holiday, headers=auth_headers(admin))
    assert response.status_code == 400

    teacher_holiday = {"teacher_id": str(teacher.id), "date": "2024-06-10", "status": "absent"}
    response = await client.post("/api/v1/teacher-attendance", json=[teacher_holiday], headers=auth_headers(admin))
    assert response.status_code == 400

    # rows that predate the holiday list can not be edited or cleared either
    legacy = StudentAttendance(
        student_id=student.id, class_id=student.class_id, date=date(2024, 6, 10), status="absent"
    )
    db_session.add(legacy)
    await db_session.commit()
    response = await client.put(
        "/api/v1/attendance", json={"id": str(legacy.id), "status": "present"}, headers=auth_headers(admin)
    )
    assert response.status_code == 400
    response = await client.delete(f"/api/v1/attendance/{legacy.id}", headers=auth_headers(admin))
    assert response.status_code == 400

    rows = (await db_session.execute(select(StudentAttendance))).scalars().all()
    assert [(r.date, r.status) for r in rows] == [(date(2024, 6, 10), "absent")]


@pytest.mark.asyncio
async def test_admin_override_clears_leave_review(
    client: AsyncClient, admin, teacher, student, auth_headers
) -> None:
    body = {"subject_type": "student", "subject_id": str(student.id), "date": TODAY}
    for _ in range(3):
        response = await client.post("/api/v1/attendance/cycle", json=body, headers=auth_headers(teacher))
    record = response.json()["record"]
    approval = {"subject_type": "student", "record_id": record["id"], "approval_status": "rejected"}
    response = await client.post("/api/v1/attendance/leave-approval", json=approval, headers=auth_headers(admin))
    assert response.json()["rejected_by"] == str(admin.id)

    response = await client.post(
        "/api/v1/attendance/mark", json=dict(body, status="present"), headers=auth_headers(admin)
    )
    assert response.status_code == 201
    overridden = response.json()["record"]
    assert overridden["status"] == "present"
    assert overridden["approval_status"] is None
    assert overridden["rejected_by"] is None
    assert overridden["rejected_at"] is None

    # the day is an ordinary present mark again, so the teacher can cycle it
    response = await client.post("/api/v1/attendance/cycle", json=body, headers=auth_headers(teacher))
    assert response.status_code == 200
    assert response.json()["record"]["status"] == "absent"
