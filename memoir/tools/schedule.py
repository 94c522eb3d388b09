"""memory_schedule tool for creating jobs for recently active users."""

from memoir.errors import InvalidRequestError
from memoir.services import memory_job_service


async def memory_schedule(lookback_days: int | None = None) -> dict:
    """Create memory jobs for every recently active, non-anonymous user.

    Users without unprocessed conversations are skipped. Intended to be run
    periodically (e.g. from cron via ``scripts/memoir_client.py scheduled``).

    Args:
        lookback_days: Activity window in days, at least 1 (default: 7).

    Returns:
        dict with a run summary and per-user results. On a bad window, a dict
        with status "error" and a reason.
    """
    try:
        return await memory_job_service.create_jobs_for_active_users(lookback_days=lookback_days)
    except InvalidRequestError as exc:
        return {"status": "error", "reason": str(exc)}
