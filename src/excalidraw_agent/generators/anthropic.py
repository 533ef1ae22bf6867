"""
Anthropic generator.

Requires the 'anthropic' extra: pip install excalidraw-agent[anthropic]
"""

from __future__ import annotations

from typing import Any

try:
    import anthropic
    from anthropic import AsyncAnthropic  # type: ignore[import-not-found]
except ImportError:
    raise ImportError(
        "Anthropic generator requires the 'anthropic' package. "
        "Install with: pip install excalidraw-agent[anthropic]"
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

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def _map_error(exc: Exception, operation: str) -> GeneratorError:
    if isinstance(exc, anthropic.APITimeoutError):
        return GeneratorTimeoutError(str(exc), operation=operation)
    if isinstance(
        exc, (anthropic.APIConnectionError, anthropic.RateLimitError, anthropic.InternalServerError)
    ):
        return GeneratorNetworkError(str(exc), operation=operation)
    status = getattr(exc, "status_code", None)
    return GeneratorRequestError(str(exc), operation=operation, status_code=status)


class AnthropicGenerator(Generator):
    """
    Generator backed by the Anthropic messages API.

    Example:
        from anthropic import AsyncAnthropic
        from excalidraw_agent.generators import AnthropicGenerator

        generator = AnthropicGenerator(AsyncAnthropic())
        result = await generator.generate_text("Describe this diagram")
    """

    name = "anthropic"

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str | None = None,
        max_tokens: int = 8192,
    ) -> None:
        self.client = client or AsyncAnthropic(max_retries=0)
        self.model = model or DEFAULT_MODEL
        self.max_tokens = max_tokens

    async def generate_text(
        self,
        prompt: str,
        *,
        system: str | None = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> GenerationResult:
        """Send a messages request to Anthropic."""
        request_kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "timeout": timeout_ms / 1000,
        }
        if system:
            # Anthropic handles system separately
            request_kwargs["system"] = system

        try:
            response = await self.client.messages.create(**request_kwargs)
        except anthropic.AnthropicError as exc:
            raise _map_error(exc, "generate_text") from exc

        content = ""
        for block in response.content:
            if block.type == "text":
                content += block.text

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                input_tokens=response.usage.input_tokens or 0,
                output_tokens=response.usage.output_tokens or 0,
                cache_read_tokens=getattr(response.usage, "cache_read_input_tokens", None) or 0,
                cache_write_tokens=getattr(response.usage, "cache_creation_input_tokens", None)
                or 0,
            )

        return GenerationResult(
            text=content,
            usage=usage,
            finish_reason=response.stop_reason,
            model=getattr(response, "model", None) or self.model,
        )
