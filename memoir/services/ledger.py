"""Analysis ledger: the per-conversation idempotency record."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from memoir.models.conversation_analysis import ConversationAnalysis
from memoir.services.extraction import ExtractionOutcome


class LedgerWrite(str, Enum):
    """Result of recording an outcome."""

    CREATED = "created"
    DUPLICATE = "duplicate"


class AnalysisLedger:
    """Records which conversations have been examined, and how it went."""

    async def processed_conversation_ids(self, session: AsyncSession, user_id: str) -> set[UUID]:
        """All conversation ids that already have a ledger row for this user."""
        result = await session.execute(
            select(ConversationAnalysis.conversation_id).where(
                ConversationAnalysis.user_id == user_id
            )
        )
        return {row[0] for row in result.all()}

    async def get_record(
        self,
        session: AsyncSession,
        user_id: str,
        conversation_id: UUID,
    ) -> ConversationAnalysis | None:
        result = await session.execute(
            select(ConversationAnalysis).where(
                ConversationAnalysis.user_id == user_id,
                ConversationAnalysis.conversation_id == conversation_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_records(self, session: AsyncSession, user_id: str) -> list[ConversationAnalysis]:
        result = await session.execute(
            select(ConversationAnalysis)
            .where(ConversationAnalysis.user_id == user_id)
            .order_by(ConversationAnalysis.extracted_at)
        )
        return list(result.scalars().all())

    async def record(
        self,
        session: AsyncSession,
        user_id: str,
        conversation_id: UUID,
        outcome: ExtractionOutcome,
        job_id: UUID | None = None,
        model: str | None = None,
    ) -> LedgerWrite:
        """Write the outcome row for a conversation unless one already exists.

        An existing row means another job got there first: it is left as the
        outcome of record and only annotated with duplicate-attempt metadata.

        Args:
            session: Database session.
            user_id: User identifier.
            conversation_id: Conversation examined.
            outcome: What the extraction stage produced.
            job_id: Job that examined the conversation.
            model: Model used for the extraction call, if any.

        Returns:
            LedgerWrite.CREATED or LedgerWrite.DUPLICATE.
        """
        existing = await self.get_record(session, user_id, conversation_id)
        if existing is not None:
            self._annotate_duplicate(existing, job_id, outcome.duration_ms)
            await session.flush()
            return LedgerWrite.DUPLICATE

        session.add(
            ConversationAnalysis(
                user_id=user_id,
                conversation_id=conversation_id,
                processing_status=outcome.status,
                skip_reason=outcome.skip_reason,
                analysis_result=outcome.analysis_result,
                error_details=outcome.error_details,
                quality_score=outcome.quality_score,
                message_count=outcome.message_count,
                total_tokens=outcome.estimated_tokens,
                processing_duration_ms=outcome.duration_ms,
                extraction_metadata=self._metadata(job_id, model, outcome),
            )
        )
        await session.flush()
        return LedgerWrite.CREATED

    async def mark_duplicate(
        self,
        session: AsyncSession,
        user_id: str,
        conversation_id: UUID,
        job_id: UUID | None = None,
        duration_ms: int = 0,
    ) -> bool:
        """Annotate an existing row after losing an insert race. Returns False if none exists."""
        existing = await self.get_record(session, user_id, conversation_id)
        if existing is None:
            return False
        self._annotate_duplicate(existing, job_id, duration_ms)
        await session.flush()
        return True

    def _metadata(
        self,
        job_id: UUID | None,
        model: str | None,
        outcome: ExtractionOutcome,
    ) -> dict[str, Any]:
        return {
            "model": model if outcome.called_model else None,
            "job_id": str(job_id) if job_id else None,
            "processing_duration_ms": outcome.duration_ms,
        }

    def _annotate_duplicate(
        self,
        record: ConversationAnalysis,
        job_id: UUID | None,
        duration_ms: int,
    ) -> None:
        # Reassign rather than mutate so the JSON column is flagged dirty
        metadata = dict(record.extraction_metadata or {})
        metadata.update({
            "duplicate_processing_attempt": True,
            "duplicate_attempt_at": datetime.utcnow().isoformat(),
            "duplicate_job_id": str(job_id) if job_id else None,
            "duplicate_processing_duration_ms": duration_ms,
        })
        record.extraction_metadata = metadata


# Global singleton instance
analysis_ledger = AnalysisLedger()
