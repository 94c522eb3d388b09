"""Extraction stage: per-conversation insight extraction via the completion service."""

import logging
import time
from dataclasses import dataclass
from typing import Any

from memoir.config import get_quality_score
from memoir.models.conversation_analysis import ProcessingStatus, SkipReason
from memoir.services.completion import OpenAICompletionService, extraction_completion
from memoir.services.conversations import ConversationTranscript
from memoir.services.quality import classify_length, estimate_tokens, format_transcript
from memoir.services.response_parsing import ParseFailure, Skip, parse_extraction_response

logger = logging.getLogger(__name__)


EXTRACTION_SYSTEM_PROMPT = """You are a memory system for a supportive conversational assistant. You read a single conversation between a user and the assistant and extract what the assistant should remember about the user to personalize future conversations.

Guidelines:
1. Only record facts the user stated or clearly implied; never speculate
2. Prefer durable information (preferences, goals, ongoing situations, relationships, coping strategies that helped) over passing remarks
3. Write each item as a short, self-contained statement
4. Omit anything the user asked not to be remembered

Output format (JSON object):
{
  "personal_details": {"preferred_name": "...", "pronouns": "..."},
  "preferences": ["..."],
  "goals": ["..."],
  "challenges": ["..."],
  "helpful_strategies": ["..."],
  "important_people": ["..."],
  "communication_style": "..."
}

Omit keys with no content. If the conversation contains nothing worth remembering, output {"skipped": true, "reason": "insufficient_quality"}.
Only output valid JSON. No markdown, no explanations."""

EXTRACTION_USER_PROMPT = """Extract what should be remembered about the user from the conversation below. Return only the JSON object."""


@dataclass
class ExtractionOutcome:
    """What examining one conversation produced."""

    status: ProcessingStatus
    analysis_result: dict[str, Any]
    message_count: int
    estimated_tokens: int
    duration_ms: int = 0
    skip_reason: str | None = None
    error_details: dict[str, Any] | None = None
    insights: dict[str, Any] | None = None
    called_model: bool = False

    @property
    def quality_score(self) -> int:
        return get_quality_score(self.status.value)

    @property
    def succeeded(self) -> bool:
        return self.status == ProcessingStatus.COMPLETED and self.insights is not None

    @classmethod
    def skipped(
        cls,
        reason: str,
        message_count: int,
        estimated_tokens: int = 0,
        payload: dict[str, Any] | None = None,
        called_model: bool = False,
    ) -> "ExtractionOutcome":
        analysis_result = dict(payload or {})
        analysis_result.update({"skipped": True, "reason": reason})
        return cls(
            status=ProcessingStatus.SKIPPED,
            analysis_result=analysis_result,
            message_count=message_count,
            estimated_tokens=estimated_tokens,
            skip_reason=reason,
            called_model=called_model,
        )


class ExtractionService:
    """Runs the completion service over one conversation at a time."""

    def __init__(self, completion: OpenAICompletionService = extraction_completion):
        self.completion = completion

    @property
    def model(self) -> str | None:
        return getattr(self.completion, "model", None)

    async def extract(self, conversation: ConversationTranscript) -> ExtractionOutcome:
        """Examine a conversation and classify the result.

        Conversations that are too short or too long are skipped without calling
        the model. Errors from the call or from parsing are captured as a
        ``failed`` outcome rather than raised, so one bad conversation never
        aborts a batch.

        Args:
            conversation: The conversation with its messages.

        Returns:
            ExtractionOutcome describing what should be ledgered.
        """
        started = time.monotonic()
        outcome = await self._extract(conversation)
        outcome.duration_ms = int((time.monotonic() - started) * 1000)
        return outcome

    async def _extract(self, conversation: ConversationTranscript) -> ExtractionOutcome:
        transcript = format_transcript(conversation.messages)
        message_count = conversation.message_count
        tokens = estimate_tokens(transcript)

        length_reason = classify_length(message_count, tokens)
        if length_reason == SkipReason.TOO_SHORT:
            logger.info("Skipping conversation %s: too short (%d messages)", conversation.id, message_count)
            return ExtractionOutcome.skipped(
                length_reason.value,
                message_count,
                tokens,
                payload={"message_count": message_count},
            )
        if length_reason == SkipReason.TOO_LONG:
            logger.info("Skipping conversation %s: too long (%d estimated tokens)", conversation.id, tokens)
            return ExtractionOutcome.skipped(
                length_reason.value,
                message_count,
                tokens,
                payload={"estimated_tokens": tokens},
            )

        try:
            response = await self.completion.complete(
                EXTRACTION_SYSTEM_PROMPT,
                f"{EXTRACTION_USER_PROMPT}\n\nConversation:\n{transcript}",
            )
            parsed = parse_extraction_response(response)
            if isinstance(parsed, ParseFailure):
                raise ValueError(f"Unparsable extraction response: {parsed.error}")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Extraction failed for conversation %s: %s", conversation.id, exc)
            return ExtractionOutcome(
                status=ProcessingStatus.FAILED,
                analysis_result={
                    "skipped": True,
                    "reason": SkipReason.PROCESSING_ERROR.value,
                    "error": str(exc),
                },
                message_count=message_count,
                estimated_tokens=tokens,
                skip_reason=SkipReason.PROCESSING_ERROR.value,
                error_details={"error": str(exc), "step": "extraction"},
                called_model=True,
            )

        if isinstance(parsed, Skip):
            logger.info("Model skipped conversation %s: %s", conversation.id, parsed.reason)
            return ExtractionOutcome.skipped(
                parsed.reason,
                message_count,
                tokens,
                payload=parsed.payload,
                called_model=True,
            )

        return ExtractionOutcome(
            status=ProcessingStatus.COMPLETED,
            analysis_result=parsed.data,
            message_count=message_count,
            estimated_tokens=tokens,
            insights=parsed.data,
            called_model=True,
        )


# Global singleton instance
extraction_service = ExtractionService()
