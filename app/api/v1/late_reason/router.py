from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.attendance import service
from app.api.v1.attendance.schemas import AttendanceRecordResponse, LateReasonRequest
from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

router = APIRouter(prefix="/api/v1/late-reason", tags=["attendance"])


@router.post("", response_model=AttendanceRecordResponse)
async def save_late_reason(
    payload: LateReasonRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Attach the reason for a late mark on a student or teacher record."""
    try:
        record = await service.save_late_reason(
            db, current_user, payload.subject_type, payload.record_id, payload.reason
        )
        return service.to_response(record)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
