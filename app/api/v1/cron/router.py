import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import get_now
from app.core.config import settings
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import AutoAbsentResult, AutoOutResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/cron", tags=["cron"])


def verify_cron_secret(secret: Optional[str] = Query(None)) -> None:
    """A secret is optional, but one that is supplied must match CRON_SECRET."""
    if secret is not None and secret != settings.cron_secret:
        logger.warning("Cron call rejected: invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.api_route(
    "/auto-teacher-absent",
    methods=["GET", "POST"],
    response_model=AutoAbsentResult,
    dependencies=[Depends(verify_cron_secret)],
)
async def auto_teacher_absent(
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
):
    """Mark active teachers with no record today as absent."""
    try:
        return await service.auto_teacher_absent(db, now, settings.holidays)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.api_route(
    "/auto-teacher-out",
    methods=["GET", "POST"],
    response_model=AutoOutResult,
    dependencies=[Depends(verify_cron_secret)],
)
async def auto_teacher_out(
    now: datetime = Depends(get_now),
    db: AsyncSession = Depends(get_db),
):
    """Set the out time on today's open check-ins, then mark the rest absent."""
    try:
        return await service.auto_teacher_out(db, now, settings.holidays, settings.auto_out_time)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
