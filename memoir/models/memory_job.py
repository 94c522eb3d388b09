"""Memory job model for background profile processing."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class MemoryJobStatus(str, Enum):
    """States for memory processing jobs."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MemoryJobType(str, Enum):
    """Kinds of background memory jobs."""

    MEMORY_PROCESSING = "memory_processing"


class MemoryJob(SQLModel, table=True):
    """One bounded batch of conversation processing for a user."""

    __tablename__ = "memory_jobs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(index=True, max_length=255)

    status: MemoryJobStatus = Field(default=MemoryJobStatus.PENDING, index=True)
    job_type: MemoryJobType = Field(default=MemoryJobType.MEMORY_PROCESSING)

    # Progress
    total_conversations: int = Field(default=0, ge=0)
    processed_conversations: int = Field(default=0, ge=0)
    progress_percentage: int = Field(default=0, ge=0, le=100)
    batch_size: int = Field(default=10, ge=1)

    # Outcome counters
    conversations_skipped: int = Field(default=0)
    conversations_failed: int = Field(default=0)
    conversations_duplicate: int = Field(default=0)
    total_tokens_processed: int = Field(default=0)
    average_quality_score: float = Field(default=0.0)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)

    error_message: str | None = Field(default=None)
    processing_details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    def to_dict(self) -> dict[str, Any]:
        """Convert job to dictionary for API responses."""
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "status": self.status.value,
            "job_type": self.job_type.value,
            "total_conversations": self.total_conversations,
            "processed_conversations": self.processed_conversations,
            "progress_percentage": self.progress_percentage,
            "batch_size": self.batch_size,
            "conversations_skipped": self.conversations_skipped,
            "conversations_failed": self.conversations_failed,
            "conversations_duplicate": self.conversations_duplicate,
            "total_tokens_processed": self.total_tokens_processed,
            "average_quality_score": self.average_quality_score,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
            "processing_details": self.processing_details,
        }
