"""Integration tests for MCP tool wrappers."""

import importlib
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from memoir.errors import InvalidRequestError, JobNotFoundError
from memoir.services.profile import ProfileService
from memoir.tools import memory_job_create, memory_job_process, memory_job_status, memory_schedule, profile_get


@pytest.fixture
def mock_jobs():
    """Patch the job service used by the tools."""
    # Tool functions shadow their module names on the package, so patch the modules directly
    modules = [
        importlib.import_module(f"memoir.tools.{name}")
        for name in ("memory_job_create", "memory_job_process", "memory_job_status", "schedule")
    ]
    with patch.object(modules[0], "memory_job_service") as create_mock, \
            patch.object(modules[1], "memory_job_service") as process_mock, \
            patch.object(modules[2], "memory_job_service") as status_mock, \
            patch.object(modules[3], "memory_job_service") as schedule_mock:
        for mock in (create_mock, process_mock, status_mock, schedule_mock):
            mock.create_job = AsyncMock()
            mock.process_job = AsyncMock()
            mock.get_status = AsyncMock()
            mock.create_jobs_for_active_users = AsyncMock()
        yield {
            "create": create_mock,
            "process": process_mock,
            "status": status_mock,
            "schedule": schedule_mock,
        }


class TestJobTools:
    """Tests for the memory job tools."""

    async def test_create(self, mock_jobs):
        mock_jobs["create"].create_job.return_value = {"id": "abc", "status": "pending"}

        result = await memory_job_create(user_id="user-1")

        assert result == {"id": "abc", "status": "pending"}
        mock_jobs["create"].create_job.assert_awaited_once_with("user-1")

    async def test_create_invalid_user(self, mock_jobs):
        mock_jobs["create"].create_job.side_effect = InvalidRequestError("User ID is required")

        result = await memory_job_create(user_id="")

        assert result == {"status": "error", "reason": "User ID is required"}

    async def test_process_invalid_id(self, mock_jobs):
        result = await memory_job_process(job_id="not-a-uuid")

        assert result == {"status": "error", "reason": "invalid job_id"}
        mock_jobs["process"].process_job.assert_not_awaited()

    async def test_process_not_found(self, mock_jobs):
        job_id = uuid4()
        mock_jobs["process"].process_job.side_effect = JobNotFoundError(job_id)

        result = await memory_job_process(job_id=str(job_id))

        assert result["status"] == "not_found"
        assert str(job_id) in result["reason"]

    async def test_process_failure_reported(self, mock_jobs):
        mock_jobs["process"].process_job.side_effect = RuntimeError("merge service down")

        result = await memory_job_process(job_id=str(uuid4()))

        assert result == {"status": "error", "reason": "merge service down"}

    async def test_status_user_mismatch_warns(self, mock_jobs):
        mock_jobs["status"].get_status.return_value = {"status": "found", "job": {"user_id": "user-1"}}

        result = await memory_job_status(job_id=str(uuid4()), user_id="user-2")

        assert result["warning"] == "job belongs to different user_id"

    async def test_status_invalid_id(self, mock_jobs):
        assert (await memory_job_status(job_id="nope"))["status"] == "error"

    async def test_schedule(self, mock_jobs):
        mock_jobs["schedule"].create_jobs_for_active_users.return_value = {"status": "completed"}

        result = await memory_schedule(lookback_days=3)

        assert result == {"status": "completed"}
        mock_jobs["schedule"].create_jobs_for_active_users.assert_awaited_once_with(lookback_days=3)

    async def test_schedule_invalid_window(self, mock_jobs):
        mock_jobs["schedule"].create_jobs_for_active_users.side_effect = InvalidRequestError(
            "lookback_days must be a positive integer"
        )

        result = await memory_schedule(lookback_days=0)

        assert result == {"status": "error", "reason": "lookback_days must be a positive integer"}


class TestProfileTool:
    """Tests for profile_get."""

    @pytest.fixture(autouse=True)
    def use_test_db(self, session_factory):
        with patch("memoir.tools.profile.get_session", session_factory):
            yield

    async def test_found(self, session_factory, test_user_id):
        async with session_factory() as session:
            profile = await ProfileService().upsert_profile(session, test_user_id, {"goals": ["x"]}, 1, 6)
        async with session_factory() as session:
            await ProfileService().set_summary(session, test_user_id, "Working toward x.")

        result = await profile_get(user_id=test_user_id)

        assert result["status"] == "found"
        assert result["profile"]["id"] == str(profile.id)
        assert result["profile"]["ai_summary"] == "Working toward x."

    async def test_not_found(self, test_user_id):
        result = await profile_get(user_id=test_user_id)
        assert result == {"status": "not_found", "user_id": test_user_id}

    async def test_requires_user(self):
        assert (await profile_get(user_id=""))["status"] == "error"
