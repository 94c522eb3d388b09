"""Unit tests for data models."""

from datetime import datetime
from uuid import uuid4

from memoir.config import get_quality_score
from memoir.models.conversation_analysis import ConversationAnalysis, ProcessingStatus, SkipReason
from memoir.models.memory_job import MemoryJob, MemoryJobStatus, MemoryJobType
from memoir.models.user_profile import UserProfile


class TestMemoryJobModel:
    """Tests for the MemoryJob model."""

    def test_defaults(self):
        job = MemoryJob(user_id="user-1")
        assert job.status == MemoryJobStatus.PENDING
        assert job.job_type == MemoryJobType.MEMORY_PROCESSING
        assert job.progress_percentage == 0
        assert job.batch_size == 10

    def test_to_dict_serialization(self):
        job = MemoryJob(user_id="user-1", total_conversations=4, processing_details={"message": "Queued"})
        result = job.to_dict()

        assert result["status"] == "pending"
        assert result["job_type"] == "memory_processing"
        assert result["total_conversations"] == 4
        assert result["started_at"] is None
        assert result["processing_details"] == {"message": "Queued"}
        assert "created_at" in result


class TestConversationAnalysisModel:
    """Tests for the ConversationAnalysis ledger model."""

    def test_duplicate_attempt_flag(self):
        record = ConversationAnalysis(
            user_id="user-1",
            conversation_id=uuid4(),
            processing_status=ProcessingStatus.COMPLETED,
        )
        assert not record.is_duplicate_attempted

        record.extraction_metadata = {"duplicate_processing_attempt": True}
        assert record.is_duplicate_attempted

    def test_to_dict_serialization(self):
        record = ConversationAnalysis(
            user_id="user-1",
            conversation_id=uuid4(),
            processing_status=ProcessingStatus.SKIPPED,
            skip_reason=SkipReason.TOO_SHORT.value,
            analysis_result={"skipped": True, "reason": "too_short"},
        )
        result = record.to_dict()
        assert result["processing_status"] == "skipped"
        assert result["skip_reason"] == "too_short"

    def test_enum_values(self):
        assert ProcessingStatus.COMPLETED.value == "completed"
        assert SkipReason.TOO_LONG.value == "too_long"
        assert SkipReason.PROCESSING_ERROR.value == "processing_error"


class TestUserProfileModel:
    """Tests for the UserProfile model."""

    def test_to_dict_exposes_summary(self):
        profile = UserProfile(
            user_id="user-1",
            profile_data={"preferences": ["tea"]},
            version=2,
            ai_summary="Likes tea.",
            ai_summary_version=1,
            ai_summary_updated_at=datetime.utcnow(),
        )
        result = profile.to_dict()
        assert result["ai_summary"] == "Likes tea."
        assert result["version"] == 2
        assert result["profile_data"] == {"preferences": ["tea"]}


class TestQualityScores:
    """Tests for ledger quality scores."""

    def test_scores(self):
        assert get_quality_score("completed") == 8
        assert get_quality_score("skipped") == 3
        assert get_quality_score("failed") == 0
        assert get_quality_score("unknown") == 0
