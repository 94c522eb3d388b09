"""Quality filtering for conversations before extraction."""

import math
from dataclasses import dataclass
from typing import Sequence

from memoir.config import settings
from memoir.models.conversation import Message
from memoir.models.conversation_analysis import SkipReason


@dataclass(frozen=True)
class QualityVerdict:
    """Result of the quality gate for one conversation."""

    passed: bool
    reason: SkipReason | None
    message_count: int
    user_message_count: int
    user_characters: int

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "reason": self.reason.value if self.reason else None,
            "message_count": self.message_count,
            "user_message_count": self.user_message_count,
            "user_characters": self.user_characters,
        }


def user_text(messages: Sequence[Message]) -> str:
    """Concatenate the user-authored message text."""
    return " ".join(msg.content or "" for msg in messages if msg.role == "user")


def format_transcript(messages: Sequence[Message]) -> str:
    """Render messages as ``role: content`` lines."""
    return "\n".join(f"{msg.role}: {msg.content}" for msg in messages)


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token)."""
    return math.ceil(len(text) / 4)


def evaluate_quality(
    messages: Sequence[Message],
    min_messages: int = settings.memoir_min_messages,
    min_user_messages: int = settings.memoir_min_user_messages,
    min_user_characters: int = settings.memoir_min_user_characters,
) -> QualityVerdict:
    """Decide whether a conversation carries enough signal to extract from.

    A conversation passes when it has at least ``min_messages`` messages, at
    least ``min_user_messages`` of them from the user, and the joined user text
    is at least ``min_user_characters`` long.
    """
    user_messages = [msg for msg in messages if msg.role == "user"]
    characters = len(user_text(messages))

    passed = (
        len(messages) >= min_messages
        and len(user_messages) >= min_user_messages
        and characters >= min_user_characters
    )

    reason = None
    if not passed:
        if len(messages) < settings.memoir_min_extractable_messages:
            reason = SkipReason.TOO_SHORT
        else:
            reason = SkipReason.INSUFFICIENT_QUALITY

    return QualityVerdict(
        passed=passed,
        reason=reason,
        message_count=len(messages),
        user_message_count=len(user_messages),
        user_characters=characters,
    )


def classify_length(
    message_count: int,
    estimated_tokens: int,
    min_messages: int = settings.memoir_min_extractable_messages,
    max_tokens: int = settings.memoir_max_conversation_tokens,
) -> SkipReason | None:
    """Return a skip reason when a transcript is too short or too long to send."""
    if message_count < min_messages:
        return SkipReason.TOO_SHORT
    if estimated_tokens > max_tokens:
        return SkipReason.TOO_LONG
    return None
