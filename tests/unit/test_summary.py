"""Unit tests for summary generation."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from memoir.errors import SummaryGenerationError
from memoir.services.summary import SummaryService


class TestSummaryService:
    """Tests for SummaryService."""

    @pytest.fixture
    def completion(self):
        completion = MagicMock()
        completion.complete = AsyncMock(return_value="  Address them as Sam. They are training for a race.  ")
        return completion

    @pytest.fixture
    def service(self, completion):
        return SummaryService(completion=completion)

    async def test_generates_summary(self, service, completion):
        summary = await service.generate("user-1", {"personal_details": {"preferred_name": "Sam"}})

        assert summary == "Address them as Sam. They are training for a race."
        _, prompt = completion.complete.await_args.args
        assert '"preferred_name": "Sam"' in prompt

    async def test_empty_profile_raises(self, service, completion):
        with pytest.raises(SummaryGenerationError):
            await service.generate("user-1", {})
        completion.complete.assert_not_awaited()

    async def test_completion_error_wrapped(self, service, completion):
        completion.complete.side_effect = RuntimeError("overloaded")

        with pytest.raises(SummaryGenerationError, match="overloaded"):
            await service.generate("user-1", {"goals": ["x"]})

    async def test_blank_summary_raises(self, service, completion):
        completion.complete.return_value = "   "

        with pytest.raises(SummaryGenerationError, match="Empty summary"):
            await service.generate("user-1", {"goals": ["x"]})
