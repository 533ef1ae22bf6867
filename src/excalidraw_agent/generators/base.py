"""
Base generator interface.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from excalidraw_agent.utils.json_repair import parse_structured_output

DEFAULT_TIMEOUT_MS = 60_000

JSON_ONLY_INSTRUCTION = (
    "Respond with a single JSON document matching this JSON schema. "
    "Do not wrap it in markdown and do not add commentary.\n"
)


@dataclass
class TokenUsage:
    """Token counts for a single generation request."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_write_tokens
        )

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
            cache_write_tokens=self.cache_write_tokens + other.cache_write_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class GenerationResult:
    """Response from a generator."""

    text: str
    object: Any = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None
    model: str | None = None


class Generator(ABC):
    """
    Abstract base class for LLM backends.

    A generator turns a prompt (plus optional system instruction) into text,
    or into a JSON object matching a schema. Provider failures must surface
    as ``GeneratorTimeoutError``/``GeneratorNetworkError`` (retryable) or
    ``GeneratorRequestError`` (fatal) so the retry orchestrator can classify
    them.

    Example implementation for a custom provider:

        class EchoGenerator(Generator):
            name = "echo"

            async def generate_text(self, prompt, *, system=None, timeout_ms=60_000):
                return GenerationResult(text=prompt)
    """

    name: str = "generator"

    @abstractmethod
    async def generate_text(
        self,
        prompt: str,
        *,
        system: str | None = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> GenerationResult:
        """
        Generate free-form text.

        Args:
            prompt: User prompt
            system: Optional system instruction
            timeout_ms: Provider-side request timeout

        Returns:
            GenerationResult with ``text`` set
        """

    async def generate_object(
        self,
        prompt: str,
        *,
        schema: dict[str, Any],
        system: str | None = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> GenerationResult:
        """
        Generate a JSON object matching ``schema``.

        Default implementation asks for JSON through ``generate_text`` and
        parses the reply with the output repair helpers. Override when the
        provider has a native structured-output mode.

        Raises:
            OutputRepairError: if the reply cannot be parsed even after repair
        """
        instruction = JSON_ONLY_INSTRUCTION + json.dumps(schema)
        full_system = f"{system}\n\n{instruction}" if system else instruction
        result = await self.generate_text(prompt, system=full_system, timeout_ms=timeout_ms)
        result.object = parse_structured_output(result.text)
        return result
