"""
LLM generator backends.

Every backend exposes the same text/object generation capability, so the
modifier never depends on a specific provider.
"""

from excalidraw_agent.generators.base import GenerationResult, Generator, TokenUsage
from excalidraw_agent.generators.registry import (
    GeneratorRegistry,
    create_generator,
    default_registry,
)

__all__ = [
    "GenerationResult",
    "Generator",
    "GeneratorRegistry",
    "TokenUsage",
    "create_generator",
    "default_registry",
]

# Optional imports for specific providers
try:
    from excalidraw_agent.generators.openai import OpenAIGenerator  # noqa: F401

    __all__.append("OpenAIGenerator")
except ImportError:
    pass

try:
    from excalidraw_agent.generators.anthropic import AnthropicGenerator  # noqa: F401

    __all__.append("AnthropicGenerator")
except ImportError:
    pass
