"""memory_job_process tool for running a pending job synchronously."""

from uuid import UUID

from memoir.errors import JobNotFoundError
from memoir.services import memory_job_service


async def memory_job_process(job_id: str) -> dict:
    """Process a pending memory job and wait for it to finish.

    Calling this on a job that is already processing or finished is a no-op.

    Args:
        job_id: UUID of the job.

    Returns:
        dict summarizing the run, a "noop" status, or status "error" with a reason.
    """
    try:
        jid = UUID(job_id)
    except (TypeError, ValueError):
        return {"status": "error", "reason": "invalid job_id"}

    try:
        return await memory_job_service.process_job(jid)
    except JobNotFoundError as exc:
        return {"status": "not_found", "reason": str(exc)}
    except Exception as exc:  # noqa: BLE001
        return {"status": "error", "reason": str(exc)}
