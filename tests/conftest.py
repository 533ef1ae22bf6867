"""Shared pytest fixtures for excalidraw-agent tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from excalidraw_agent.config import AgentToolkitConfig
from excalidraw_agent.crypto import generate_key
from excalidraw_agent.generators.base import GenerationResult, Generator, TokenUsage
from excalidraw_agent.http import HttpTransport
from excalidraw_agent.models import Diagram


class FakeGenerator(Generator):
    """Replays scripted responses; an exception in the script is raised."""

    name = "fake"

    def __init__(self, responses: list[str | BaseException], tokens: int = 10) -> None:
        self.responses = list(responses)
        self.tokens = tokens
        self.calls: list[dict[str, Any]] = []

    async def generate_text(
        self,
        prompt: str,
        *,
        system: str | None = None,
        timeout_ms: float = 60_000,
    ) -> GenerationResult:
        self.calls.append({"prompt": prompt, "system": system, "timeout_ms": timeout_ms})
        if not self.responses:
            raise AssertionError("FakeGenerator ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return GenerationResult(
            text=response,
            usage=TokenUsage(input_tokens=self.tokens, output_tokens=self.tokens),
            finish_reason="stop",
            model="fake-model",
        )


@pytest.fixture
def elements() -> list[dict[str, Any]]:
    """Two labelled boxes joined by an arrow."""
    return [
        {
            "id": "web",
            "type": "rectangle",
            "x": 0,
            "y": 0,
            "width": 100,
            "height": 60,
            "boundElements": [{"id": "a1", "type": "arrow"}, {"id": "web-label", "type": "text"}],
        },
        {
            "id": "web-label",
            "type": "text",
            "x": 10,
            "y": 20,
            "width": 80,
            "height": 20,
            "text": "Web",
            "containerId": "web",
        },
        {
            "id": "api",
            "type": "rectangle",
            "x": 200,
            "y": 0,
            "width": 100,
            "height": 60,
            "label": {"text": "API"},
            "boundElements": [{"id": "a1", "type": "arrow"}],
        },
        {
            "id": "a1",
            "type": "arrow",
            "x": 100,
            "y": 30,
            "width": 100,
            "height": 0,
            "points": [[0, 0], [100, 0]],
            "startBinding": {"elementId": "web"},
            "endBinding": {"elementId": "api"},
        },
    ]


@pytest.fixture
def diagram(elements: list[dict[str, Any]]) -> Diagram:
    return Diagram(elements=elements, app_state={"viewBackgroundColor": "#ffffff"})


@pytest.fixture
def key() -> str:
    return generate_key()


@pytest.fixture
def config() -> AgentToolkitConfig:
    return AgentToolkitConfig(
        api_base="https://sketch.test",
        diagram_host_url="https://host.test/api/v2/",
        upload_url="https://host.test/api/v2/post/",
        share_base_url="https://draw.test/",
    )


@pytest.fixture
def make_transport() -> Callable[..., HttpTransport]:
    """Build an HttpTransport over an httpx.MockTransport handler."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> HttpTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpTransport(client)

    return factory


@pytest.fixture
def make_generator() -> type[FakeGenerator]:
    return FakeGenerator
