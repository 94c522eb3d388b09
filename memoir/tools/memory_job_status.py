"""memory_job_status tool for polling memory jobs."""

from uuid import UUID

from memoir.services import memory_job_service


async def memory_job_status(job_id: str, user_id: str | None = None) -> dict:
    """Get the status of a memory job, with the user's profile once completed."""
    try:
        jid = UUID(job_id)
    except (TypeError, ValueError):
        return {"status": "error", "reason": "invalid job_id"}

    status = await memory_job_service.get_status(jid)
    job = status.get("job")
    if job and user_id and job["user_id"] != user_id:
        status["warning"] = "job belongs to different user_id"
    return status
