"""Profile merge and persistence."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from memoir.models.user_profile import UserProfile
from memoir.services.completion import OpenAICompletionService, extraction_completion
from memoir.services.response_parsing import ParseFailure, parse_merge_response

logger = logging.getLogger(__name__)


MERGE_SYSTEM_PROMPT = """You maintain a long-term memory profile of a user. You are given the user's existing profile and new information extracted from recent conversations, both as JSON objects. Produce a single updated profile.

Guidelines:
1. Keep everything from the existing profile that is not contradicted by the new information
2. When the new information contradicts the existing profile, prefer the new information
3. Remove exact and near-duplicate list items, keeping the most specific wording
4. Keep the same key structure; add new keys only when the new information requires them
5. Never invent facts that appear in neither input

Only output the merged JSON object. No markdown, no explanations."""

MERGE_USER_PROMPT = """Merge the new memory data into the existing profile."""


@dataclass(frozen=True)
class ProfileMergeResult:
    """Merged profile data and how it was produced."""

    data: dict[str, Any]
    mode: str  # "new", "llm" or "fallback"


class ProfileService:
    """Service for merging new insights into a user's persisted profile."""

    def __init__(self, completion: OpenAICompletionService = extraction_completion):
        self.completion = completion

    async def get_profile(self, session: AsyncSession, user_id: str) -> UserProfile | None:
        """Get the profile for a user, if one exists."""
        result = await session.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def merge_with_existing(
        self,
        existing_data: dict[str, Any] | None,
        new_data: dict[str, Any],
    ) -> ProfileMergeResult:
        """Merge batch insights into existing profile data using the model.

        With no existing profile the batch data is used as-is. If the model's
        reply cannot be parsed, the batch data is used alone. Errors raised by
        the completion call itself propagate.

        Args:
            existing_data: Persisted profile data, or None for a new profile.
            new_data: Deterministically merged insights from this batch.

        Returns:
            ProfileMergeResult with the data to persist.
        """
        if existing_data is None:
            return ProfileMergeResult(data=new_data, mode="new")

        response = await self.completion.complete(
            MERGE_SYSTEM_PROMPT,
            (
                f"{MERGE_USER_PROMPT}\n\n"
                f"Existing Profile:\n{json.dumps(existing_data, indent=2, default=str)}\n\n"
                f"New Memory Data:\n{json.dumps(new_data, indent=2, default=str)}"
            ),
        )
        parsed = parse_merge_response(response)
        if isinstance(parsed, ParseFailure):
            logger.warning("Failed to parse merged profile, using new data only: %s", parsed.error)
            return ProfileMergeResult(data=new_data, mode="fallback")
        return ProfileMergeResult(data=parsed.data, mode="llm")

    async def upsert_profile(
        self,
        session: AsyncSession,
        user_id: str,
        profile_data: dict[str, Any],
        conversation_count: int,
        message_count: int,
    ) -> UserProfile:
        """Create or update the user's profile, bumping its version by one.

        Counters and version are incremented in SQL so concurrent writers
        never lose an increment.

        Args:
            session: Database session.
            user_id: User identifier.
            profile_data: New profile data (replaces the stored data).
            conversation_count: Conversations successfully processed in this batch.
            message_count: Messages in those conversations.

        Returns:
            The refreshed UserProfile.
        """
        now = datetime.utcnow()
        profile = await self.get_profile(session, user_id)

        if profile is None:
            profile = UserProfile(
                user_id=user_id,
                profile_data=profile_data,
                conversation_count=conversation_count,
                message_count=message_count,
                version=1,
                created_at=now,
                updated_at=now,
            )
            session.add(profile)
            await session.flush()
            return profile

        await session.execute(
            update(UserProfile)
            .where(UserProfile.user_id == user_id)
            .values(
                profile_data=profile_data,
                conversation_count=UserProfile.conversation_count + conversation_count,
                message_count=UserProfile.message_count + message_count,
                version=UserProfile.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await session.refresh(profile)
        return profile

    async def touch(self, session: AsyncSession, user_id: str) -> bool:
        """Refresh ``updated_at`` on an existing profile without a version bump.

        Returns:
            True if a profile existed and was touched.
        """
        result = await session.execute(
            update(UserProfile)
            .where(UserProfile.user_id == user_id)
            .values(updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def set_summary(
        self,
        session: AsyncSession,
        user_id: str,
        summary: str,
    ) -> UserProfile | None:
        """Store a new AI summary, bumping both the summary and profile versions."""
        now = datetime.utcnow()
        result = await session.execute(
            update(UserProfile)
            .where(UserProfile.user_id == user_id)
            .values(
                ai_summary=summary,
                ai_summary_version=UserProfile.ai_summary_version + 1,
                ai_summary_updated_at=now,
                version=UserProfile.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            return None
        profile = await self.get_profile(session, user_id)
        if profile is not None:
            await session.refresh(profile)
        return profile


# Global singleton instance
profile_service = ProfileService()
