from datetime import date
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


def _split_csv(value: str) -> List[str]:
    # "2024-12-25, 2025-01-01" -> ["2024-12-25", "2025-01-01"]
    return [s.strip() for s in (value or "").split(",") if s.strip()]


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # All calendar-day decisions (today, off days, late marks) use this zone.
    school_timezone: str = Field("Asia/Karachi", alias="SCHOOL_TIMEZONE")
    late_grace_minutes: int = Field(15, alias="LATE_GRACE_MINUTES", ge=0)
    holidays_csv: str = Field("", alias="HOLIDAYS")
    auto_out_time: str = Field("19:00", alias="AUTO_OUT_TIME")
    cron_secret: Optional[str] = Field(None, alias="CRON_SECRET")

    cors_origins_csv: str = Field("*", alias="CORS_ORIGINS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @property
    def holidays(self) -> List[date]:
        return [date.fromisoformat(s) for s in _split_csv(self.holidays_csv)]

    @property
    def cors_origins(self) -> List[str]:
        return _split_csv(self.cors_origins_csv)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
