"""FastMCP server for memoir - incremental memory extraction from conversation history."""

import logging
from uuid import UUID

from fastmcp import FastMCP
from fastmcp.server.auth.providers.github import GitHubProvider
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse

from memoir.config import settings

logging.basicConfig(
    level=settings.memoir_log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# Suppress noisy MCP streamable_http ClosedResourceError logs (known issue with stateless mode)
# See: https://github.com/modelcontextprotocol/python-sdk/issues/1658
logging.getLogger("mcp.server.streamable_http").setLevel(logging.CRITICAL)
logging.getLogger("httpx").setLevel(logging.WARNING)

from memoir.errors import InvalidRequestError, JobNotFoundError  # noqa: E402
from memoir.services import memory_job_service  # noqa: E402
from memoir.tools import (  # noqa: E402
    memory_job_create,
    memory_job_process,
    memory_job_status,
    memory_schedule,
    profile_get,
)

logger = logging.getLogger(__name__)

# Configure GitHub OAuth when credentials are present
auth = None
if settings.github_client_id:
    auth = GitHubProvider(
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        base_url=f"http://localhost:{settings.memoir_port}",
    )

# Initialize FastMCP server (stateless for HMR compatibility)
mcp = FastMCP("memoir", auth=auth, stateless_http=True, json_response=True)


# Health check endpoint
@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> PlainTextResponse:
    """Health check endpoint for container orchestration."""
    return PlainTextResponse("OK")


# Internal API endpoints for cron and local automation (unauthenticated, localhost only)


def _check_localhost(request: Request) -> bool:
    """Verify request is from localhost."""
    client_host = request.client.host if request.client else None
    return client_host in ("127.0.0.1", "localhost", "::1")


def _forbidden() -> JSONResponse:
    return JSONResponse({"error": "Forbidden: localhost only"}, status_code=403)


async def _read_json(request: Request) -> dict:
    """Request body as a dict; an empty or non-object body reads as {}."""
    body = await request.body()
    if not body:
        return {}
    data = await request.json()
    return data if isinstance(data, dict) else {}


def _parse_job_id(value) -> UUID | None:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _parse_lookback_days(value) -> int | None:
    """Positive day count from an int or a digit string; None if invalid."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if not isinstance(value, int) or value < 1:
        return None
    return value


@mcp.custom_route("/internal/memory-jobs/create", methods=["POST"])
async def internal_create_job(request: Request) -> JSONResponse:
    """Create a memory job for a user and trigger processing in the background."""
    if not _check_localhost(request):
        return _forbidden()

    try:
        data = await _read_json(request)
        user_id = data.get("user_id") or data.get("userId")
        if not user_id:
            return JSONResponse({"error": "User ID is required"}, status_code=400)
        job = await memory_job_service.create_job(user_id)
        return JSONResponse({"success": True, "job": job})
    except InvalidRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except Exception as e:
        logger.exception("Failed to create memory job")
        return JSONResponse({"error": str(e)}, status_code=500)


@mcp.custom_route("/internal/memory-jobs/process", methods=["POST"])
async def internal_process_job(request: Request) -> JSONResponse:
    """Process a pending memory job synchronously."""
    if not _check_localhost(request):
        return _forbidden()

    try:
        data = await _read_json(request)
        raw_job_id = data.get("job_id") or data.get("jobId")
        if not raw_job_id:
            return JSONResponse({"error": "Job ID is required"}, status_code=400)
        job_id = _parse_job_id(raw_job_id)
        if job_id is None:
            return JSONResponse({"error": "Invalid job ID"}, status_code=400)
        result = await memory_job_service.process_job(job_id)
        return JSONResponse({"success": True, "result": result})
    except JobNotFoundError as e:
        return JSONResponse({"error": str(e)}, status_code=404)
    except Exception as e:
        logger.exception("Memory job processing failed")
        return JSONResponse({"error": str(e)}, status_code=500)


@mcp.custom_route("/internal/memory-jobs/status", methods=["GET", "POST"])
async def internal_job_status(request: Request) -> JSONResponse:
    """Get the status of a memory job (query parameter or JSON body)."""
    if not _check_localhost(request):
        return _forbidden()

    try:
        if request.method == "GET":
            raw_job_id = request.query_params.get("job_id") or request.query_params.get("jobId")
        else:
            data = await _read_json(request)
            raw_job_id = data.get("job_id") or data.get("jobId")
        if not raw_job_id:
            return JSONResponse({"error": "Job ID is required"}, status_code=400)
        job_id = _parse_job_id(raw_job_id)
        if job_id is None:
            return JSONResponse({"error": "Invalid job ID"}, status_code=400)

        status = await memory_job_service.get_status(job_id)
        if status["status"] == "not_found":
            return JSONResponse({"error": "Job not found"}, status_code=404)
        return JSONResponse(status)
    except Exception as e:
        logger.exception("Failed to read memory job status")
        return JSONResponse({"error": str(e)}, status_code=500)


@mcp.custom_route("/internal/profile", methods=["POST"])
async def internal_profile(request: Request) -> JSONResponse:
    """Get a user's memory profile."""
    if not _check_localhost(request):
        return _forbidden()

    try:
        data = await _read_json(request)
        user_id = data.get("user_id") or data.get("userId")
        if not user_id:
            return JSONResponse({"error": "User ID is required"}, status_code=400)
        result = await profile_get(user_id)
        if result["status"] == "not_found":
            return JSONResponse({"error": "Profile not found"}, status_code=404)
        return JSONResponse(result)
    except Exception as e:
        logger.exception("Failed to read profile")
        return JSONResponse({"error": str(e)}, status_code=500)


@mcp.custom_route("/internal/memory-jobs/scheduled", methods=["POST"])
async def internal_scheduled(request: Request) -> JSONResponse:
    """Create jobs for every recently active user (cron entry point)."""
    if not _check_localhost(request):
        return _forbidden()

    try:
        data = await _read_json(request)
        raw_days = data.get("lookback_days", data.get("lookbackDays"))
        lookback_days = None
        if raw_days is not None:
            lookback_days = _parse_lookback_days(raw_days)
            if lookback_days is None:
                return JSONResponse({"error": "lookback_days must be a positive integer"}, status_code=400)
        result = await memory_schedule(lookback_days=lookback_days)
        if result.get("status") == "error":
            return JSONResponse({"error": result["reason"]}, status_code=400)
        return JSONResponse({"success": True, **result})
    except Exception as e:
        logger.exception("Scheduled memory processing failed")
        return JSONResponse({"error": str(e)}, status_code=500)


# Register MCP tools
@mcp.tool()
async def create_memory_job(user_id: str) -> dict:
    """Create a memory processing job for a user.

    The job examines the user's most recent unanalyzed conversations
    (at most 10 per job) and merges what it learns into their profile.
    Processing starts in the background; poll job_status for progress.

    Args:
        user_id: User identifier.

    Returns:
        dict with job id, status, and conversation counts.
    """
    return await memory_job_create(user_id=user_id)


@mcp.tool()
async def process_memory_job(job_id: str) -> dict:
    """Process a pending memory job and wait for the result.

    Args:
        job_id: UUID of the job.

    Returns:
        dict summarizing conversations processed, skipped, failed and
        duplicated, or a "noop" status if the job is not pending.
    """
    return await memory_job_process(job_id=job_id)


@mcp.tool()
async def job_status(job_id: str, user_id: str | None = None) -> dict:
    """Get the status of a memory job, including the profile once completed."""
    return await memory_job_status(job_id=job_id, user_id=user_id)


@mcp.tool()
async def get_profile(user_id: str) -> dict:
    """Get a user's merged memory profile and AI summary.

    Args:
        user_id: User identifier.

    Returns:
        dict with status and the profile (profile_data, version, ai_summary).
    """
    return await profile_get(user_id=user_id)


@mcp.tool()
async def schedule_memory_jobs(lookback_days: int | None = None) -> dict:
    """Create memory jobs for all recently active users.

    Args:
        lookback_days: Activity window in days (default: 7).

    Returns:
        dict with run summary and per-user results.
    """
    return await memory_schedule(lookback_days=lookback_days)


# ASGI app for uvicorn
app = mcp.http_app()

if __name__ == "__main__":
    mcp.run(
        transport="http",
        host=settings.memoir_host,
        port=settings.memoir_port,
        stateless_http=True,
    )
