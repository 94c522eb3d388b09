"""Integration tests for the application database layer."""

import pytest
from sqlalchemy import select

from memoir.db import close_db, get_engine, get_session, init_db
from memoir.models.memory_job import MemoryJob


class TestDatabase:
    """Tests against the engine configured from settings."""

    @pytest.fixture(autouse=True)
    async def database(self):
        await init_db()
        yield
        await close_db()

    def test_engine_uses_configured_url(self):
        assert get_engine().url.drivername == "sqlite+aiosqlite"

    async def test_session_commits(self):
        async with get_session() as session:
            job = MemoryJob(user_id="db-commit-user")
            session.add(job)

        async with get_session() as session:
            stored = await session.get(MemoryJob, job.id)
        assert stored is not None

    async def test_session_rolls_back_on_error(self):
        with pytest.raises(RuntimeError):
            async with get_session() as session:
                session.add(MemoryJob(user_id="db-rollback-user"))
                await session.flush()
                raise RuntimeError("boom")

        async with get_session() as session:
            result = await session.execute(select(MemoryJob).where(MemoryJob.user_id == "db-rollback-user"))
        assert result.scalar_one_or_none() is None
