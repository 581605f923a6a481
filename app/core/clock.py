"""School-local wall clock. Every "today" on the server comes from here."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from app.core.config import settings


def school_tz() -> ZoneInfo:
    return ZoneInfo(settings.school_timezone)


def local_now() -> datetime:
    return datetime.now(school_tz())


def local_today() -> date:
    return local_now().date()


def get_now() -> datetime:
    """FastAPI dependency for the request's wall-clock instant."""
    return local_now()
