"""
Publishing diagrams as share links.

Two backends share one interface:

- :class:`ShareServicePublisher` posts the scene to a share service that does
  the encryption itself.
- :class:`ExcalidrawPublisher` encrypts locally with a fresh key, uploads the
  blob to the diagram host and builds the ``#json=<id>,<key>`` link.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

import httpx

from excalidraw_agent import crypto
from excalidraw_agent.config import AgentToolkitConfig
from excalidraw_agent.errors import PublishError
from excalidraw_agent.http import HttpTransport
from excalidraw_agent.logging import get_logger
from excalidraw_agent.models import Diagram, ShareLinkReference
from excalidraw_agent.share_payload import encode_share_payload

logger = get_logger("publisher")

SHARE_ENDPOINT = "/api/diagrams/share"


def _status_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class Publisher(ABC):
    """Uploads a diagram and returns a share link for it."""

    @abstractmethod
    async def publish(
        self,
        diagram: Diagram,
        *,
        abort: asyncio.Event | None = None,
    ) -> ShareLinkReference:
        """
        Publish ``diagram``.

        Raises:
            PublishError: on upload failure (retryable when transport-level)
        """


class ShareServicePublisher(Publisher):
    """Publishes through ``POST {api_base}/api/diagrams/share``."""

    def __init__(
        self,
        transport: HttpTransport,
        api_base: str,
        timeout_ms: float = 60_000,
    ) -> None:
        self.transport = transport
        self.api_base = api_base
        self.timeout_ms = timeout_ms

    async def publish(
        self,
        diagram: Diagram,
        *,
        abort: asyncio.Event | None = None,
    ) -> ShareLinkReference:
        url = self.api_base.rstrip("/") + SHARE_ENDPOINT
        try:
            response = await self.transport.post(
                url, json=diagram.to_dict(), timeout_ms=self.timeout_ms, abort=abort
            )
        except httpx.HTTPError as exc:
            raise PublishError(f"Share request failed: {exc}", retryable=True) from exc

        if not response.is_success:
            raise PublishError(
                f"Share service returned HTTP {response.status_code}",
                status_code=response.status_code,
                retryable=_status_retryable(response.status_code),
            )
        try:
            data: Any = response.json()
        except ValueError as exc:
            raise PublishError("Share service returned invalid JSON") from exc
        if not isinstance(data, dict) or not isinstance(data.get("url"), str):
            raise PublishError("Share service response has no url")

        return ShareLinkReference(
            url=data["url"],
            share_id=data.get("shareId"),
            encryption_key=data.get("encryptionKey"),
        )


class ExcalidrawPublisher(Publisher):
    """
    Encrypts locally and uploads to the diagram host.

    The key never leaves this process except inside the returned URL
    fragment.
    """

    def __init__(
        self,
        transport: HttpTransport,
        config: AgentToolkitConfig | None = None,
    ) -> None:
        self.transport = transport
        self.config = config or AgentToolkitConfig()

    async def publish(
        self,
        diagram: Diagram,
        *,
        abort: asyncio.Event | None = None,
    ) -> ShareLinkReference:
        key = crypto.generate_key()
        blob = encode_share_payload(diagram.to_dict(), key)
        logger.debug("Uploading %d encrypted bytes to %s", len(blob), self.config.upload_url)

        try:
            response = await self.transport.post(
                self.config.upload_url,
                content=blob,
                headers={"Content-Type": "application/octet-stream"},
                timeout_ms=self.config.request_timeout_ms,
                abort=abort,
            )
        except httpx.HTTPError as exc:
            raise PublishError(f"Upload failed: {exc}", retryable=True) from exc

        if not response.is_success:
            raise PublishError(
                f"Upload failed: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
                retryable=_status_retryable(response.status_code),
            )
        try:
            data: Any = response.json()
        except ValueError as exc:
            raise PublishError("Upload response is not valid JSON") from exc
        share_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(share_id, str) or not share_id:
            raise PublishError("Upload response has no id")

        return ShareLinkReference(
            url=f"{self.config.share_base_url}#json={share_id},{key}",
            share_id=share_id,
            encryption_key=key,
        )
