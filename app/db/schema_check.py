import asyncio
import logging
from typing import List

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from app.auth.models import Profile
from app.core.logging_config import configure_logging
from app.core.models import SchoolClass, Student, StudentAttendance, TeacherAttendance
from app.db.session import Base, engine

logger = logging.getLogger(__name__)

# Dependency order: profiles -> classes -> students -> attendance
REQUIRED_TABLES: List[str] = [
    Profile.__tablename__,
    SchoolClass.__tablename__,
    Student.__tablename__,
    StudentAttendance.__tablename__,
    TeacherAttendance.__tablename__,
]

# Columns added after the first release; existing Postgres databases get them in place.
ALTER_ATTENDANCE_COLUMNS: List[str] = [
    f"""
    ALTER TABLE {table}
        ADD COLUMN IF NOT EXISTS late_reason TEXT,
        ADD COLUMN IF NOT EXISTS approval_status VARCHAR(20),
        ADD COLUMN IF NOT EXISTS approved_by UUID REFERENCES profiles(id) ON DELETE SET NULL,
        ADD COLUMN IF NOT EXISTS approved_at TIMESTAMPTZ,
        ADD COLUMN IF NOT EXISTS rejected_by UUID REFERENCES profiles(id) ON DELETE SET NULL,
        ADD COLUMN IF NOT EXISTS rejected_at TIMESTAMPTZ,
        ADD COLUMN IF NOT EXISTS out_time TIMESTAMPTZ;
    """
    for table in (StudentAttendance.__tablename__, TeacherAttendance.__tablename__)
]

ALTER_PROFILES_EXPECTED_TIME: str = """
    ALTER TABLE profiles ADD COLUMN IF NOT EXISTS expected_time VARCHAR(5);
"""


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """
    Ensure that all attendance tables exist in the connected database.
    Missing tables are created; returns their names.
    """
    async with db_engine.begin() as conn:
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        missing = [name for name in REQUIRED_TABLES if name not in existing]
        if missing:
            tables = [Base.metadata.tables[name] for name in missing]
            await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, tables=tables))

        if db_engine.dialect.name == "postgresql":
            await conn.exec_driver_sql(ALTER_PROFILES_EXPECTED_TIME)
            for ddl in ALTER_ATTENDANCE_COLUMNS:
                await conn.exec_driver_sql(ddl)

    if missing:
        logger.info("Created missing tables: %s", ", ".join(missing))
    else:
        logger.info("All attendance tables already exist in the database.")
    return missing


async def main() -> None:
    configure_logging()
    await ensure_tables(engine)


if __name__ == "__main__":
    asyncio.run(main())
