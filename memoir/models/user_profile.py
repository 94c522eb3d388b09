"""Merged, versioned user profile model."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class UserProfile(SQLModel, table=True):
    """Single merged profile per user."""

    __tablename__ = "user_profiles"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(unique=True, index=True, max_length=255)

    profile_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    # Cumulative counters across all processing history
    conversation_count: int = Field(default=0)
    message_count: int = Field(default=0)
    version: int = Field(default=0)

    # Natural-language digest for prompt injection
    ai_summary: str | None = Field(default=None)
    ai_summary_version: int = Field(default=0)
    ai_summary_updated_at: datetime | None = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert profile to dictionary for API responses."""
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "profile_data": self.profile_data,
            "conversation_count": self.conversation_count,
            "message_count": self.message_count,
            "version": self.version,
            "ai_summary": self.ai_summary,
            "ai_summary_version": self.ai_summary_version,
            "ai_summary_updated_at": (
                self.ai_summary_updated_at.isoformat() if self.ai_summary_updated_at else None
            ),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
