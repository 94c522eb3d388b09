"""profile_get tool for reading a user's memory profile."""

from memoir.db import get_session
from memoir.services import profile_service


async def profile_get(user_id: str) -> dict:
    """Get the memory profile for a user.

    Args:
        user_id: User identifier.

    Returns:
        dict with status "found" and the profile (including ``ai_summary``),
        "not_found", or "error" with a reason.
    """
    if not user_id:
        return {"status": "error", "reason": "User ID is required"}

    async with get_session() as session:
        profile = await profile_service.get_profile(session, user_id)
        if profile is None:
            return {"status": "not_found", "user_id": user_id}
        return {"status": "found", "profile": profile.to_dict()}
