"""Summary stage: natural-language digest of a structured profile."""

import json
import logging
from typing import Any

from memoir.errors import SummaryGenerationError
from memoir.services.completion import AnthropicCompletionService, summary_completion

logger = logging.getLogger(__name__)


SUMMARY_SYSTEM_PROMPT = """You write short briefing notes that are inserted into the system prompt of an assistant before it talks with a returning user.

Given the user's memory profile as JSON, write up to 5 sentences telling the assistant what it should know and how it should adapt: how to address the user, what matters to them, what they are working on, and what has helped before.

Write in plain prose addressed to the assistant. Do not use lists, headings or JSON. Do not mention that the information comes from a profile."""


class SummaryService:
    """Service for producing the AI summary injected into future sessions."""

    def __init__(self, completion: AnthropicCompletionService = summary_completion):
        self.completion = completion

    async def generate(self, user_id: str, profile_data: dict[str, Any]) -> str:
        """Generate a summary of at most five sentences for a profile.

        Args:
            user_id: User identifier (for error context).
            profile_data: Structured profile data.

        Returns:
            The summary text.

        Raises:
            SummaryGenerationError: If the profile is empty or generation fails.
        """
        if not profile_data:
            raise SummaryGenerationError(f"No profile data to summarize for user {user_id}")

        prompt = (
            "USER PROFILE DATA TO SUMMARIZE:\n"
            f"{json.dumps(profile_data, indent=2, default=str)}\n\n"
            "Generate an AI instruction summary (up to 5 sentences) based on this user profile data."
        )
        try:
            summary = (await self.completion.complete(SUMMARY_SYSTEM_PROMPT, prompt)).strip()
        except Exception as exc:
            raise SummaryGenerationError(
                f"Failed to generate AI summary for user {user_id}: {exc}"
            ) from exc

        if not summary:
            raise SummaryGenerationError(f"Empty summary returned for user {user_id}")

        logger.debug("Generated %d-character summary for user %s", len(summary), user_id)
        return summary


# Global singleton instance
summary_service = SummaryService()
