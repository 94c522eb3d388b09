"""Integration tests for the internal HTTP routes."""

import json
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from starlette.requests import Request

import server
from memoir.errors import InvalidRequestError, JobNotFoundError


def _request(method: str = "POST", body=None, query: bytes = b"", client=("127.0.0.1", 50000)) -> Request:
    payload = json.dumps(body).encode("utf-8") if body is not None else b""
    scope = {
        "type": "http",
        "method": method,
        "path": "/",
        "query_string": query,
        "headers": [(b"content-type", b"application/json")],
        "client": client,
    }

    async def receive():
        return {"type": "http.request", "body": payload, "more_body": False}

    return Request(scope, receive)


def _json(response) -> dict:
    return json.loads(response.body)


@pytest.fixture
def mock_service():
    """Patch the job service used by the routes."""
    service = MagicMock()
    service.create_job = AsyncMock()
    service.process_job = AsyncMock()
    service.get_status = AsyncMock()
    with patch.object(server, "memory_job_service", service):
        yield service


class TestInternalRoutes:
    """Tests for localhost-only internal routes."""

    async def test_health(self):
        response = await server.health_check(_request("GET"))
        assert response.status_code == 200
        assert response.body == b"OK"

    async def test_rejects_remote_clients(self, mock_service):
        response = await server.internal_create_job(_request(body={"user_id": "u"}, client=("10.0.0.8", 1234)))
        assert response.status_code == 403
        mock_service.create_job.assert_not_awaited()

    async def test_create(self, mock_service):
        mock_service.create_job.return_value = {"id": "abc", "status": "pending"}

        response = await server.internal_create_job(_request(body={"userId": "user-1"}))

        assert response.status_code == 200
        assert _json(response) == {"success": True, "job": {"id": "abc", "status": "pending"}}
        mock_service.create_job.assert_awaited_once_with("user-1")

    async def test_create_missing_user(self, mock_service):
        response = await server.internal_create_job(_request(body={}))
        assert response.status_code == 400

    async def test_create_empty_body(self, mock_service):
        response = await server.internal_create_job(_request())
        assert response.status_code == 400

    async def test_create_invalid_user(self, mock_service):
        mock_service.create_job.side_effect = InvalidRequestError("User ID is required")
        response = await server.internal_create_job(_request(body={"user_id": " "}))
        assert response.status_code == 400

    async def test_create_database_error(self, mock_service):
        mock_service.create_job.side_effect = RuntimeError("connection refused")

        response = await server.internal_create_job(_request(body={"user_id": "user-1"}))

        assert response.status_code == 500
        assert _json(response) == {"error": "connection refused"}

    async def test_process(self, mock_service):
        job_id = uuid4()
        mock_service.process_job.return_value = {"status": "completed"}

        response = await server.internal_process_job(_request(body={"jobId": str(job_id)}))

        assert response.status_code == 200
        assert _json(response)["result"] == {"status": "completed"}
        mock_service.process_job.assert_awaited_once_with(job_id)

    async def test_process_missing_job_id(self, mock_service):
        response = await server.internal_process_job(_request(body={}))
        assert response.status_code == 400

    async def test_process_invalid_job_id(self, mock_service):
        response = await server.internal_process_job(_request(body={"job_id": "123"}))
        assert response.status_code == 400

    async def test_process_unknown_job(self, mock_service):
        job_id = uuid4()
        mock_service.process_job.side_effect = JobNotFoundError(job_id)

        response = await server.internal_process_job(_request(body={"job_id": str(job_id)}))

        assert response.status_code == 404

    async def test_process_pipeline_error(self, mock_service):
        mock_service.process_job.side_effect = RuntimeError("merge service down")

        response = await server.internal_process_job(_request(body={"job_id": str(uuid4())}))

        assert response.status_code == 500
        assert _json(response) == {"error": "merge service down"}

    async def test_status_get(self, mock_service):
        job_id = uuid4()
        mock_service.get_status.return_value = {"status": "found", "job": {"id": str(job_id)}}

        response = await server.internal_job_status(
            _request("GET", query=f"job_id={job_id}".encode())
        )

        assert response.status_code == 200
        assert _json(response)["job"]["id"] == str(job_id)

    async def test_status_post(self, mock_service):
        mock_service.get_status.return_value = {"status": "found", "job": {}}
        response = await server.internal_job_status(_request(body={"job_id": str(uuid4())}))
        assert response.status_code == 200

    async def test_status_not_found(self, mock_service):
        mock_service.get_status.return_value = {"status": "not_found"}
        response = await server.internal_job_status(_request("GET", query=f"jobId={uuid4()}".encode()))
        assert response.status_code == 404

    async def test_status_missing_job_id(self, mock_service):
        response = await server.internal_job_status(_request("GET"))
        assert response.status_code == 400

    async def test_profile(self):
        with patch.object(server, "profile_get", AsyncMock(return_value={"status": "found", "profile": {}})):
            response = await server.internal_profile(_request(body={"user_id": "user-1"}))
        assert response.status_code == 200

    async def test_profile_not_found(self):
        with patch.object(server, "profile_get", AsyncMock(return_value={"status": "not_found"})):
            response = await server.internal_profile(_request(body={"user_id": "user-1"}))
        assert response.status_code == 404

    async def test_profile_missing_user(self):
        response = await server.internal_profile(_request(body={}))
        assert response.status_code == 400

    async def test_scheduled(self):
        schedule = AsyncMock(return_value={"status": "completed", "summary": {"jobs_created": 1}})
        with patch.object(server, "memory_schedule", schedule):
            response = await server.internal_scheduled(_request(body={"lookback_days": 3}))

        assert response.status_code == 200
        assert _json(response)["summary"] == {"jobs_created": 1}
        schedule.assert_awaited_once_with(lookback_days=3)

    async def test_scheduled_accepts_numeric_string(self):
        schedule = AsyncMock(return_value={"status": "completed", "summary": {}})
        with patch.object(server, "memory_schedule", schedule):
            response = await server.internal_scheduled(_request(body={"lookback_days": "7"}))

        assert response.status_code == 200
        schedule.assert_awaited_once_with(lookback_days=7)

    async def test_scheduled_default_window(self):
        schedule = AsyncMock(return_value={"status": "completed", "summary": {}})
        with patch.object(server, "memory_schedule", schedule):
            response = await server.internal_scheduled(_request(body={}))

        assert response.status_code == 200
        schedule.assert_awaited_once_with(lookback_days=None)

    @pytest.mark.parametrize("value", ["seven", 0, -3, 1.5, True, [7]])
    async def test_scheduled_rejects_bad_window(self, value):
        schedule = AsyncMock()
        with patch.object(server, "memory_schedule", schedule):
            response = await server.internal_scheduled(_request(body={"lookback_days": value}))

        assert response.status_code == 400
        assert "lookback_days" in _json(response)["error"]
        schedule.assert_not_awaited()

    async def test_scheduled_service_rejection(self):
        schedule = AsyncMock(return_value={"status": "error", "reason": "lookback_days must be a positive integer"})
        with patch.object(server, "memory_schedule", schedule):
            response = await server.internal_scheduled(_request(body={"lookback_days": 2}))

        assert response.status_code == 400
