from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.attendance.router import router as attendance_router
from app.api.v1.cron.router import router as cron_router
from app.api.v1.late_reason.router import router as late_reason_router
from app.api.v1.teacher_attendance.router import router as teacher_attendance_router
from app.core.config import settings
from app.core.logging_config import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="School Attendance Backend")

    # CORS: allow the attendance frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(attendance_router)
    app.include_router(teacher_attendance_router)
    app.include_router(late_reason_router)
    app.include_router(cron_router)

    return app


app = create_app()
