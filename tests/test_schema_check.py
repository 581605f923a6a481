import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.schema_check import REQUIRED_TABLES, ensure_tables


@pytest.mark.asyncio
async def test_ensure_tables_creates_missing_tables_once() -> None:
    engine = create_async_engine(
        "sqlite+aiosqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    try:
        assert await ensure_tables(engine) == REQUIRED_TABLES
        assert await ensure_tables(engine) == []
    finally:
        await engine.dispose()
