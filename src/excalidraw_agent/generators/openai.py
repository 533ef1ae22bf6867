"""
OpenAI generator.

Requires the 'openai' extra: pip install excalidraw-agent[openai]
"""

from __future__ import annotations

from typing import Any

try:
    import openai
    from openai import AsyncOpenAI  # type: ignore[import-not-found]
except ImportError:
    raise ImportError(
        "OpenAI generator requires the 'openai' package. "
        "Install with: pip install excalidraw-agent[openai]"
    )

from excalidraw_agent.errors import (
    GeneratorError,
    GeneratorNetworkError,
    GeneratorRequestError,
    GeneratorTimeoutError,
)
from excalidraw_agent.generators.base import (
    DEFAULT_TIMEOUT_MS,
    GenerationResult,
    Generator,
    TokenUsage,
)
from excalidraw_agent.utils.json_repair import parse_structured_output

DEFAULT_MODEL = "gpt-4o-mini"


def _map_error(exc: Exception, operation: str) -> GeneratorError:
    # APITimeoutError subclasses APIConnectionError, so it is checked first.
    if isinstance(exc, openai.APITimeoutError):
        return GeneratorTimeoutError(str(exc), operation=operation)
    if isinstance(exc, (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError)):
        return GeneratorNetworkError(str(exc), operation=operation)
    status = getattr(exc, "status_code", None)
    return GeneratorRequestError(str(exc), operation=operation, status_code=status)


class OpenAIGenerator(Generator):
    """
    Generator backed by OpenAI chat completions.

    Example:
        from openai import AsyncOpenAI
        from excalidraw_agent.generators import OpenAIGenerator

        generator = OpenAIGenerator(AsyncOpenAI(), model="gpt-4o-mini")
        result = await generator.generate_text("Describe this diagram")
    """

    name = "openai"

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        temperature: float | None = None,
    ) -> None:
        # Retries are owned by the retry orchestrator.
        self.client = client or AsyncOpenAI(max_retries=0)
        self.model = model or DEFAULT_MODEL
        self.temperature = temperature

    def _build_messages(self, prompt: str, system: str | None) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def _complete(self, request_kwargs: dict[str, Any], operation: str) -> GenerationResult:
        if self.temperature is not None:
            request_kwargs["temperature"] = self.temperature
        try:
            response = await self.client.chat.completions.create(**request_kwargs)
        except openai.OpenAIError as exc:
            raise _map_error(exc, operation) from exc

        choice = response.choices[0]
        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                input_tokens=response.usage.prompt_tokens or 0,
                output_tokens=response.usage.completion_tokens or 0,
            )
        return GenerationResult(
            text=choice.message.content or "",
            usage=usage,
            finish_reason=choice.finish_reason,
            model=getattr(response, "model", None) or self.model,
        )

    async def generate_text(
        self,
        prompt: str,
        *,
        system: str | None = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> GenerationResult:
        """Send a chat completion request."""
        return await self._complete(
            {
                "model": self.model,
                "messages": self._build_messages(prompt, system),
                "timeout": timeout_ms / 1000,
            },
            "generate_text",
        )

    async def generate_object(
        self,
        prompt: str,
        *,
        schema: dict[str, Any],
        system: str | None = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> GenerationResult:
        """Request a JSON-schema constrained response and parse it."""
        result = await self._complete(
            {
                "model": self.model,
                "messages": self._build_messages(prompt, system),
                "timeout": timeout_ms / 1000,
                "response_format": {
                    "type": "json_schema",
                    "json_schema": {"name": schema.get("title", "response"), "schema": schema},
                },
            },
            "generate_object",
        )
        result.object = parse_structured_output(result.text)
        return result
