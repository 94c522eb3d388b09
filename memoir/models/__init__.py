"""Data models for memoir."""

from memoir.models.conversation import Conversation, Message
from memoir.models.conversation_analysis import ConversationAnalysis, ProcessingStatus, SkipReason
from memoir.models.memory_job import MemoryJob, MemoryJobStatus, MemoryJobType
from memoir.models.user_profile import UserProfile

__all__ = [
    "Conversation",
    "ConversationAnalysis",
    "MemoryJob",
    "MemoryJobStatus",
    "MemoryJobType",
    "Message",
    "ProcessingStatus",
    "SkipReason",
    "UserProfile",
]
