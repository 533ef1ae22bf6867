"""
Generator registry for runtime LLM backend selection.

Provides a central registry where generators can be registered, looked up,
and switched at runtime.

Example:
    from excalidraw_agent.generators.registry import GeneratorRegistry

    registry = GeneratorRegistry()

    # Register by instance
    registry.register("fake", my_generator)

    # Register by factory (lazy creation)
    registry.register_factory("anthropic", lambda model: AnthropicGenerator(model=model))

    # Look up
    generator = registry.get("anthropic", model="claude-sonnet-4-20250514")
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from excalidraw_agent.logging import get_logger

if TYPE_CHECKING:
    from excalidraw_agent.config import AgentToolkitConfig
    from excalidraw_agent.generators.base import Generator

logger = get_logger("generators.registry")

# (model) -> Generator
GeneratorFactory = Callable[[str | None], "Generator"]


class _GeneratorEntry:
    """Internal entry holding either a generator instance or a factory."""

    __slots__ = ("name", "instance", "factory")

    def __init__(
        self,
        name: str,
        instance: Generator | None = None,
        factory: GeneratorFactory | None = None,
    ) -> None:
        self.name = name
        self.instance = instance
        self.factory = factory


class GeneratorRegistry:
    """
    A registry of generators.

    Generators can be registered by instance (eager) or by factory (lazy).
    The first registered name becomes the default.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _GeneratorEntry] = {}
        self._default_name: str | None = None

    def register(self, name: str, generator: Generator) -> None:
        """
        Register a generator instance.

        Raises:
            ValueError: If name is empty
        """
        if not name:
            raise ValueError("Generator name must not be empty")
        if name in self._entries:
            logger.debug("Overriding generator: %s", name)

        self._entries[name] = _GeneratorEntry(name=name, instance=generator)
        logger.debug("Registered generator: %s", name)

        if self._default_name is None:
            self._default_name = name

    def register_factory(self, name: str, factory: GeneratorFactory) -> None:
        """
        Register a generator factory for lazy creation.

        The factory is called with the requested model the first time the
        generator is requested via ``get()``.

        Raises:
            ValueError: If name is empty
        """
        if not name:
            raise ValueError("Generator name must not be empty")
        if name in self._entries:
            logger.debug("Overriding generator factory: %s", name)

        self._entries[name] = _GeneratorEntry(name=name, factory=factory)
        logger.debug("Registered generator factory: %s", name)

        if self._default_name is None:
            self._default_name = name

    def get(self, name: str, model: str | None = None) -> Generator:
        """
        Get a generator by name, creating it from its factory if needed.

        Raises:
            KeyError: If generator not found
        """
        entry = self._entries.get(name)
        if entry is None:
            available = ", ".join(self._entries.keys()) or "(none)"
            raise KeyError(f"Generator '{name}' not found. Available: {available}")

        if entry.instance is not None:
            return entry.instance

        if entry.factory is None:
            raise RuntimeError(f"Generator '{name}' has no instance or factory")

        logger.debug("Creating generator '%s' from factory", name)
        entry.instance = entry.factory(model)
        return entry.instance

    def get_default(self, model: str | None = None) -> Generator | None:
        """Get the default generator, or None if nothing is registered."""
        if self._default_name is None:
            return None
        return self.get(self._default_name, model=model)

    @property
    def default_name(self) -> str | None:
        return self._default_name

    def set_default(self, name: str) -> None:
        """
        Set the default generator.

        Raises:
            KeyError: If generator not found
        """
        if name not in self._entries:
            available = ", ".join(self._entries.keys()) or "(none)"
            raise KeyError(f"Generator '{name}' not found. Available: {available}")
        self._default_name = name
        logger.debug("Default generator set to: %s", name)

    def unregister(self, name: str) -> bool:
        """Remove a registered generator. Returns False if it was not found."""
        if name not in self._entries:
            return False
        del self._entries[name]
        if self._default_name == name:
            self._default_name = next(iter(self._entries), None)
        return True

    def list_generators(self) -> list[str]:
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __repr__(self) -> str:
        names = ", ".join(self._entries.keys())
        default = f" default={self._default_name}" if self._default_name else ""
        return f"GeneratorRegistry([{names}]{default})"


def _openai_factory(model: str | None) -> Generator:
    from excalidraw_agent.generators.openai import OpenAIGenerator

    return OpenAIGenerator(model=model)


def _anthropic_factory(model: str | None) -> Generator:
    from excalidraw_agent.generators.anthropic import AnthropicGenerator

    return AnthropicGenerator(model=model)


def default_registry() -> GeneratorRegistry:
    """A registry with lazy factories for the bundled providers."""
    registry = GeneratorRegistry()
    registry.register_factory("openai", _openai_factory)
    registry.register_factory("anthropic", _anthropic_factory)
    return registry


def create_generator(
    config: AgentToolkitConfig,
    registry: GeneratorRegistry | None = None,
) -> Generator:
    """
    Build the generator selected by ``config.provider``/``config.model``.

    Raises:
        KeyError: If the provider is unknown
        ImportError: If the provider's optional extra is not installed
    """
    registry = registry or default_registry()
    return registry.get(config.provider, model=config.model)
