"""
Client-side attendance board.

``AttendanceApiClient`` talks to the attendance API over httpx. ``AttendanceBoard``
owns one GridWindow for a single student or teacher: it loads records for the
visible days, cycles a day's status on click and keeps the window on the
current day across midnight while mounted.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

import httpx

from app.core.attendance.dates import format_date_key
from app.core.attendance.grid import Clock, GridCell, GridWindow, record_field
from app.core.attendance.status_cycle import next_status, requires_leave_reason
from app.core.enums import SubjectType

logger = logging.getLogger(__name__)

Notify = Callable[[str], None]
LeaveReasonCallback = Callable[[Dict[str, Any]], None]

_LIST_PATHS = {
    SubjectType.STUDENT: ("/api/v1/attendance", "studentId", "student_id"),
    SubjectType.TEACHER: ("/api/v1/teacher-attendance", "teacherId", "teacher_id"),
}


class AttendanceApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AttendanceApiClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout, connect=5.0),
            transport=transport,
        )

    async def __aenter__(self) -> "AttendanceApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            r = await self._client.request(method, path, **kwargs)
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            try:
                detail = e.response.json().get("detail", e.response.text)
            except ValueError:
                detail = e.response.text
            raise AttendanceApiError(str(detail), e.response.status_code) from e
        except httpx.RequestError as e:
            raise AttendanceApiError(f"Request failed: {e}") from e
        if r.status_code == httpx.codes.NO_CONTENT or not r.content:
            return None
        return r.json()

    async def list_attendance(
        self, subject_type: SubjectType, subject_id: str, start: date, end: date
    ) -> List[Dict[str, Any]]:
        path, param, _ = _LIST_PATHS[SubjectType(subject_type)]
        params = {
            param: str(subject_id),
            "startDate": format_date_key(start),
            "endDate": format_date_key(end),
        }
        data = await self._request("GET", path, params=params)
        return data.get("attendance", [])

    async def write_status(
        self,
        subject_type: SubjectType,
        subject_id: str,
        day: date,
        status: str,
        remarks: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Upsert one day and return the stored record."""
        path, _, field = _LIST_PATHS[SubjectType(subject_type)]
        body = {field: str(subject_id), "date": format_date_key(day), "status": status}
        if remarks is not None:
            body["remarks"] = remarks
        data = await self._request("POST", path, json=body)
        return data["attendance"][0]

    async def set_leave_reason(self, subject_type: SubjectType, record_id: str, reason: str) -> Dict[str, Any]:
        body = {"subject_type": SubjectType(subject_type).value, "record_id": str(record_id), "reason": reason}
        return await self._request("POST", "/api/v1/attendance/leave-reason", json=body)

    async def get_range(self, option: str, start: Optional[str] = None, end: Optional[str] = None) -> Dict[str, Any]:
        params = {"option": option}
        if start:
            params["start"] = start
        if end:
            params["end"] = end
        return await self._request("GET", "/api/v1/attendance/range", params=params)


class AttendanceBoard:
    def __init__(
        self,
        api: AttendanceApiClient,
        subject_type: SubjectType,
        subject_id: str,
        *,
        is_admin: bool = False,
        day_count: int = 7,
        clock: Optional[Clock] = None,
        start: Optional[date] = None,
        min_date: Optional[date] = None,
        max_date: Optional[date] = None,
        cap_at_today: bool = False,
        holidays: Iterable[date] = (),
        notify: Optional[Notify] = None,
        on_leave_reason: Optional[LeaveReasonCallback] = None,
    ) -> None:
        self.api = api
        self.subject_type = SubjectType(subject_type)
        self.subject_id = subject_id
        self.is_admin = is_admin
        self.notify = notify
        self.on_leave_reason = on_leave_reason
        self.window = GridWindow(
            day_count,
            clock=clock,
            start=start,
            min_date=min_date,
            max_date=max_date,
            cap_at_today=cap_at_today,
            holidays=holidays,
            on_navigate=self._schedule_load,
            on_rollover=self._schedule_load,
        )
        self._pending: Set[asyncio.Task] = set()

    @property
    def records(self) -> List[Dict[str, Any]]:
        return self.window.records

    def cells(self) -> List[GridCell]:
        return self.window.cells_for_window(is_admin=self.is_admin)

    def _notify(self, message: str) -> None:
        logger.warning("Attendance board: %s", message)
        if self.notify is not None:
            self.notify(message)

    # ----- loading -----
    async def load(self, start: Optional[date] = None, end: Optional[date] = None) -> bool:
        """Fetch and replace the records. The last response to arrive wins."""
        start = start or self.window.visible_start
        end = end or self.window.visible_end
        try:
            records = await self.api.list_attendance(self.subject_type, self.subject_id, start, end)
        except AttendanceApiError as e:
            self._notify(f"Could not load attendance: {e.message}")
            return False
        self.window.set_records(records)
        return True

    def _schedule_load(self, start: date, end: date) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; skipping fetch for %s..%s", start, end)
            return
        task = loop.create_task(self.load(start, end))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_for_loads(self) -> None:
        """Await every fetch scheduled by navigation so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ----- navigation -----
    def page_backward(self) -> date:
        return self.window.page_backward()

    def page_forward(self) -> date:
        return self.window.page_forward()

    # ----- editing -----
    async def click(self, day: date) -> Optional[Dict[str, Any]]:
        """Cycle the day's status. Local records change only after the server accepts it."""
        if not self.window.can_cycle(day, is_admin=self.is_admin):
            return None
        current = self.window.record_for(day)
        new_status = next_status(record_field(current, "status") if current is not None else None)
        try:
            record = await self.api.write_status(self.subject_type, self.subject_id, day, new_status.value)
        except AttendanceApiError as e:
            self._notify(f"Could not save attendance for {format_date_key(day)}: {e.message}")
            return None
        self.window.upsert_record(record)
        if requires_leave_reason(new_status) and self.on_leave_reason is not None:
            self.on_leave_reason(record)
        return record

    # ----- lifecycle -----
    def mount(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.window.start(loop)

    def unmount(self) -> None:
        self.window.stop()

    @property
    def today(self) -> date:
        return self.window.today

    @property
    def now(self) -> datetime:
        return self.window.now
