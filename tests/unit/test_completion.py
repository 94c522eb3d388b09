"""Unit tests for completion services."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from memoir.errors import CompletionError
from memoir.services.completion import AnthropicCompletionService, OpenAICompletionService


class TestOpenAICompletionService:
    """Tests for OpenAICompletionService."""

    @pytest.fixture
    def service(self):
        service = OpenAICompletionService(model="gpt-test", temperature=0.3)
        service._client = MagicMock()
        service._client.chat.completions.create = AsyncMock()
        return service

    async def test_returns_first_choice(self, service):
        service._client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"a": 1}'))]
        )

        result = await service.complete("system", "user")

        assert result == '{"a": 1}'
        kwargs = service._client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"] == [
            {"role": "system", "content": "system"},
            {"role": "user", "content": "user"},
        ]

    async def test_empty_content_raises(self, service):
        service._client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None))]
        )

        with pytest.raises(CompletionError):
            await service.complete("system", "user")


class TestAnthropicCompletionService:
    """Tests for AnthropicCompletionService."""

    @pytest.fixture
    def service(self):
        service = AnthropicCompletionService(model="claude-test", temperature=0.3, max_tokens=1000)
        service._client = MagicMock()
        service._client.messages.create = AsyncMock()
        return service

    async def test_joins_text_blocks(self, service):
        service._client.messages.create.return_value = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Hello "),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text="world."),
            ]
        )

        result = await service.complete("system", "user")

        assert result == "Hello world."
        kwargs = service._client.messages.create.await_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["max_tokens"] == 1000

    async def test_blank_raises(self, service):
        service._client.messages.create.return_value = SimpleNamespace(content=[])

        with pytest.raises(CompletionError):
            await service.complete("system", "user")
