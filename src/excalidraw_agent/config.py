"""
Configuration for the diagram toolkit.

Provides a flexible configuration system that can be loaded from YAML files,
environment variables, or constructed programmatically.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import find_dotenv, load_dotenv

from excalidraw_agent.retry import RetryPolicy

ENV_PREFIX = "EXCALIDRAW_AGENT_"

Provider = Literal["openai", "anthropic"]

DEFAULT_DIAGRAM_HOST_URL = "https://json.excalidraw.com/api/v2/"
DEFAULT_UPLOAD_URL = "https://json.excalidraw.com/api/v2/post/"
DEFAULT_SHARE_BASE_URL = "https://excalidraw.com/"


@dataclass
class AgentToolkitConfig:
    """
    Main configuration for resolving, modifying and publishing diagrams.

    Example YAML:
        api_base: https://sketch.example.com
        request_timeout_ms: 60000
        provider: anthropic
        model: claude-sonnet-4-20250514
        retry:
          max_retries: 3
          base_delay_ms: 1000
          max_delay_ms: 30000
    """

    # Endpoints
    api_base: str | None = None  # Remote parse/share service
    diagram_host_url: str = DEFAULT_DIAGRAM_HOST_URL  # GET {url}{shareId}
    upload_url: str = DEFAULT_UPLOAD_URL  # POST encrypted blob
    share_base_url: str = DEFAULT_SHARE_BASE_URL  # Prefix of generated links

    # Network
    request_timeout_ms: float = 60_000  # Remote parse/share calls
    fetch_timeout_ms: float = 10_000  # Diagram host fetches
    max_upstream_bytes: int = 25 * 1024 * 1024

    # Generation
    provider: Provider = "openai"
    model: str | None = None  # None = provider default
    generation_timeout_ms: float = 60_000
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    prefer_explicit_edits: bool = False  # Apply "<id> <path> = '<value>'" edits directly

    log_level: str = "WARNING"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentToolkitConfig:
        """Create config from a dictionary."""
        defaults = cls()
        return cls(
            api_base=data.get("api_base"),
            diagram_host_url=data.get("diagram_host_url", defaults.diagram_host_url),
            upload_url=data.get("upload_url", defaults.upload_url),
            share_base_url=data.get("share_base_url", defaults.share_base_url),
            request_timeout_ms=data.get("request_timeout_ms", defaults.request_timeout_ms),
            fetch_timeout_ms=data.get("fetch_timeout_ms", defaults.fetch_timeout_ms),
            max_upstream_bytes=data.get("max_upstream_bytes", defaults.max_upstream_bytes),
            provider=data.get("provider", defaults.provider),
            model=data.get("model"),
            generation_timeout_ms=data.get("generation_timeout_ms", defaults.generation_timeout_ms),
            retry=RetryPolicy.from_dict(data.get("retry") or {}),
            prefer_explicit_edits=data.get("prefer_explicit_edits", False),
            log_level=data.get("log_level", defaults.log_level),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> AgentToolkitConfig:
        """Load config from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, content: str) -> AgentToolkitConfig:
        """Load config from a YAML string."""
        data = yaml.safe_load(content)
        return cls.from_dict(data or {})

    @classmethod
    def from_env(cls, base: AgentToolkitConfig | None = None, **overrides: Any) -> AgentToolkitConfig:
        """Overlay ``EXCALIDRAW_AGENT_*`` variables (and a ``.env`` file) on a config."""
        load_dotenv(find_dotenv(usecwd=True))
        data = (base or cls()).to_dict()

        env_map: dict[str, tuple[str, type]] = {
            "API_BASE": ("api_base", str),
            "DIAGRAM_HOST_URL": ("diagram_host_url", str),
            "UPLOAD_URL": ("upload_url", str),
            "SHARE_BASE_URL": ("share_base_url", str),
            "REQUEST_TIMEOUT_MS": ("request_timeout_ms", float),
            "FETCH_TIMEOUT_MS": ("fetch_timeout_ms", float),
            "PROVIDER": ("provider", str),
            "MODEL": ("model", str),
            "GENERATION_TIMEOUT_MS": ("generation_timeout_ms", float),
            "LOG_LEVEL": ("log_level", str),
        }
        for suffix, (key, convert) in env_map.items():
            value = os.environ.get(f"{ENV_PREFIX}{suffix}")
            if value:
                data[key] = convert(value)

        max_retries = os.environ.get(f"{ENV_PREFIX}MAX_RETRIES")
        if max_retries:
            data["retry"]["max_retries"] = int(max_retries)

        data.update(overrides)
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "api_base": self.api_base,
            "diagram_host_url": self.diagram_host_url,
            "upload_url": self.upload_url,
            "share_base_url": self.share_base_url,
            "request_timeout_ms": self.request_timeout_ms,
            "fetch_timeout_ms": self.fetch_timeout_ms,
            "max_upstream_bytes": self.max_upstream_bytes,
            "provider": self.provider,
            "model": self.model,
            "generation_timeout_ms": self.generation_timeout_ms,
            "retry": self.retry.to_dict(),
            "prefer_explicit_edits": self.prefer_explicit_edits,
            "log_level": self.log_level,
        }
