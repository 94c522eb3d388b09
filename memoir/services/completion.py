"""LLM completion services used by the extraction, merge and summary stages."""

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from memoir.config import settings
from memoir.errors import CompletionError


class OpenAICompletionService:
    """Chat-completion capability backed by OpenAI."""

    def __init__(
        self,
        model: str = settings.memoir_extraction_model,
        temperature: float = settings.memoir_extraction_temperature,
    ):
        self.model = model
        self.temperature = temperature
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazily initialize the OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Submit a system + user prompt pair and return the response text.

        Args:
            system_prompt: Instruction framing the task.
            user_prompt: Task payload.

        Returns:
            The raw text of the first choice.

        Raises:
            CompletionError: If the model returned no content.
        """
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.temperature,
        )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise CompletionError(f"Empty response from {self.model}")
        return content


class AnthropicCompletionService:
    """Messages-API capability backed by Anthropic."""

    def __init__(
        self,
        model: str = settings.memoir_summary_model,
        temperature: float = settings.memoir_summary_temperature,
        max_tokens: int = settings.memoir_summary_max_tokens,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client: AsyncAnthropic | None = None

    @property
    def client(self) -> AsyncAnthropic:
        """Lazily initialize the Anthropic client."""
        if self._client is None:
            self._client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        return self._client

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Submit a system + user prompt pair and return the response text."""
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise CompletionError(f"Empty response from {self.model}")
        return text


# Global singleton instances
extraction_completion = OpenAICompletionService()
summary_completion = AnthropicCompletionService()
