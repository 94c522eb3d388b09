"""memory_job_create tool for queueing a memory processing job."""

from memoir.errors import InvalidRequestError
from memoir.services import memory_job_service


async def memory_job_create(user_id: str) -> dict:
    """Create a memory processing job for a user and start it in the background.

    The job examines up to ``batch_size`` of the user's most recent
    conversations that have never been analyzed. Poll ``memory_job_status``
    for progress.

    Args:
        user_id: User identifier.

    Returns:
        dict with the job id, status ("pending"), total_conversations,
        unprocessed_conversations and created_at. On bad input, a dict with
        status "error" and a reason.

    Example:
        >>> memory_job_create(user_id="user-123")
        {
            "id": "0b5e...",
            "status": "pending",
            "total_conversations": 10,
            "unprocessed_conversations": 23,
            "progress_percentage": 0
        }
    """
    try:
        return await memory_job_service.create_job(user_id)
    except InvalidRequestError as exc:
        return {"status": "error", "reason": str(exc)}
