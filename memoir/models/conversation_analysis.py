"""Per-conversation analysis ledger model."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, UniqueConstraint
from sqlmodel import Column, Field, SQLModel


class ProcessingStatus(str, Enum):
    """Outcome of examining a single conversation."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(str, Enum):
    """Well-known reasons a conversation produced no insights."""

    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    INSUFFICIENT_QUALITY = "insufficient_quality"
    PROCESSING_ERROR = "processing_error"


class ConversationAnalysis(SQLModel, table=True):
    """Ledger row recording that a conversation has been examined.

    One row per (user_id, conversation_id). The unique constraint is what keeps
    a conversation from ever being examined twice.
    """

    __tablename__ = "conversation_analyses"
    __table_args__ = (
        UniqueConstraint("user_id", "conversation_id", name="uq_conversation_analyses_user_conversation"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(index=True, max_length=255)
    conversation_id: UUID = Field(index=True)

    processing_status: ProcessingStatus = Field(index=True)
    # Model-declared skips may carry free-form reasons, so this is not an enum column
    skip_reason: str | None = Field(default=None, max_length=255)
    analysis_result: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    error_details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    # Diagnostics
    quality_score: int = Field(default=0)
    message_count: int = Field(default=0)
    total_tokens: int = Field(default=0)
    processing_duration_ms: int = Field(default=0)
    extraction_metadata: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    extracted_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_duplicate_attempted(self) -> bool:
        """Whether a later job tried to analyze this conversation again."""
        return bool((self.extraction_metadata or {}).get("duplicate_processing_attempt"))

    def to_dict(self) -> dict[str, Any]:
        """Convert ledger row to dictionary for API responses."""
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "conversation_id": str(self.conversation_id),
            "processing_status": self.processing_status.value,
            "skip_reason": self.skip_reason,
            "analysis_result": self.analysis_result,
            "error_details": self.error_details,
            "quality_score": self.quality_score,
            "message_count": self.message_count,
            "total_tokens": self.total_tokens,
            "processing_duration_ms": self.processing_duration_ms,
            "extraction_metadata": self.extraction_metadata,
            "extracted_at": self.extracted_at.isoformat(),
        }
