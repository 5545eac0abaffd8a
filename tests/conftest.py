"""Shared fixtures: an in-memory SQLite database with the full schema."""
import pytest_asyncio

from db.connection import create_engine_for, make_session_factory
from db.models import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def session_factory():
    engine = create_engine_for(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()
