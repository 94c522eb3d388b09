"""Services layer for memoir."""

from memoir.services.completion import (
    AnthropicCompletionService,
    OpenAICompletionService,
    extraction_completion,
    summary_completion,
)
from memoir.services.conversations import ConversationStore, conversation_store
from memoir.services.extraction import ExtractionService, extraction_service
from memoir.services.ledger import AnalysisLedger, analysis_ledger
from memoir.services.memory_jobs import MemoryJobService, memory_job_service
from memoir.services.profile import ProfileService, profile_service
from memoir.services.selection import ConversationSelector, conversation_selector
from memoir.services.summary import SummaryService, summary_service

__all__ = [
    "AnthropicCompletionService",
    "OpenAICompletionService",
    "extraction_completion",
    "summary_completion",
    "ConversationStore",
    "conversation_store",
    "ExtractionService",
    "extraction_service",
    "AnalysisLedger",
    "analysis_ledger",
    "MemoryJobService",
    "memory_job_service",
    "ProfileService",
    "profile_service",
    "ConversationSelector",
    "conversation_selector",
    "SummaryService",
    "summary_service",
]
