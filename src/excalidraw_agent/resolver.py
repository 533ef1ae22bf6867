"""
Share-link resolution.

A share URL is classified by the ``#json=<shareId>,<key>`` grammar:

- **local path**: the encrypted blob is fetched from the diagram host (or
  taken straight from the id when it is an inline base64 payload) and
  decrypted here; the remote parse service is never contacted.
- **remote path**: any other URL is handed to
  ``{api_base}/api/diagrams/parse``; nothing is decrypted locally.

Both paths normalize the scene into a :class:`Diagram`.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import httpx

from excalidraw_agent import crypto
from excalidraw_agent.config import AgentToolkitConfig
from excalidraw_agent.errors import (
    CryptoError,
    InvalidDiagramError,
    KeyFormatError,
    ResolveError,
)
from excalidraw_agent.http import HttpTransport, ResponseTooLargeError
from excalidraw_agent.logging import get_logger
from excalidraw_agent.models import Diagram, ShareLinkReference
from excalidraw_agent.share_payload import (
    decode_inline_payload,
    decode_share_payload,
    is_v2_format,
)

logger = get_logger("resolver")

SHARE_LINK_PATTERN = re.compile(r"#json=([^,]+),(.+)$")
PARSE_ENDPOINT = "/api/diagrams/parse"
TRACE_HEADER = "x-trace-id"

ShareUrlType = Literal["v1", "v2", "base64"]
ResolveSource = Literal["local", "remote"]


def is_json_share_url(url: str) -> bool:
    """Whether ``url`` carries an embedded-key fragment."""
    return SHARE_LINK_PATTERN.search(url) is not None


def extract_share_link(url: str) -> ShareLinkReference:
    """Split a share URL into id and key when it matches the grammar."""
    match = SHARE_LINK_PATTERN.search(url)
    if match is None:
        return ShareLinkReference(url=url)
    return ShareLinkReference(url=url, share_id=match.group(1), encryption_key=match.group(2))


@dataclass(frozen=True)
class ResolvedDiagram:
    """A resolved diagram plus how it was obtained."""

    diagram: Diagram
    source: ResolveSource
    reference: ShareLinkReference
    share_url_type: ShareUrlType | None = None


class ShareLinkResolver:
    """
    Turns share URLs into diagrams.

    Example:
        async with HttpTransport() as transport:
            resolver = ShareLinkResolver(transport, config)
            diagram = await resolver.resolve(url, api_base="https://sketch.example.com")
    """

    def __init__(
        self,
        transport: HttpTransport,
        config: AgentToolkitConfig | None = None,
    ) -> None:
        self.transport = transport
        self.config = config or AgentToolkitConfig()

    async def resolve(
        self,
        share_url: str,
        api_base: str | None = None,
        trace_id: str | None = None,
        abort: asyncio.Event | None = None,
    ) -> Diagram:
        """
        Resolve ``share_url`` into a diagram.

        Raises:
            ResolveError: fetch, decrypt or parse failure (see ``kind``)
            InvalidDiagramError: the scene has no ``elements`` array
            OperationTimeoutError / OperationCancelledError: on timeout or abort
        """
        resolved = await self.resolve_with_metadata(
            share_url, api_base=api_base, trace_id=trace_id, abort=abort
        )
        return resolved.diagram

    async def resolve_with_metadata(
        self,
        share_url: str,
        api_base: str | None = None,
        trace_id: str | None = None,
        abort: asyncio.Event | None = None,
    ) -> ResolvedDiagram:
        reference = extract_share_link(share_url)
        share_id, encryption_key = reference.share_id, reference.encryption_key
        if share_id is not None and encryption_key is not None:
            logger.debug("Resolving share link locally (id=%s)", share_id)
            return await self._resolve_local(reference, share_id, encryption_key, abort=abort)

        base = api_base or self.config.api_base
        if not base:
            raise ValueError(
                "Share URL has no embedded key and no remote parse endpoint (api_base) is configured"
            )
        logger.debug("Resolving share link through remote parse service %s", base)
        return await self._resolve_remote(reference, base, trace_id=trace_id, abort=abort)

    async def _resolve_local(
        self,
        reference: ShareLinkReference,
        share_id: str,
        encryption_key: str,
        abort: asyncio.Event | None,
    ) -> ResolvedDiagram:
        try:
            key = crypto.import_key(encryption_key)
        except KeyFormatError as exc:
            raise ResolveError(
                f"Invalid encryption key in share link: {exc}", kind="decrypt"
            ) from exc

        blob = decode_inline_payload(share_id)
        if blob is not None:
            share_url_type: ShareUrlType = "base64"
            logger.debug("Share id carries an inline payload (%d bytes)", len(blob))
        else:
            blob = await self._fetch_blob(share_id, abort=abort)
            share_url_type = "v2" if is_v2_format(blob) else "v1"

        try:
            scene = decode_share_payload(blob, key)
        except (CryptoError, KeyFormatError) as exc:
            raise ResolveError(f"Failed to decrypt share payload: {exc}", kind="decrypt") from exc

        diagram = Diagram.from_dict(scene, source="share payload")
        logger.debug(
            "Decoded %s share payload with %d elements", share_url_type, len(diagram.elements)
        )
        return ResolvedDiagram(
            diagram=diagram,
            source="local",
            reference=reference,
            share_url_type=share_url_type,
        )

    async def _fetch_blob(self, share_id: str, abort: asyncio.Event | None) -> bytes:
        url = f"{self.config.diagram_host_url}{share_id}"
        try:
            response = await self.transport.get(
                url,
                timeout_ms=self.config.fetch_timeout_ms,
                abort=abort,
                max_bytes=self.config.max_upstream_bytes,
            )
        except ResponseTooLargeError as exc:
            raise ResolveError(str(exc), kind="parse") from exc
        except httpx.HTTPError as exc:
            raise ResolveError(f"Failed to fetch share payload: {exc}", kind="fetch") from exc

        if not response.is_success:
            raise ResolveError(
                f"Failed to fetch share payload: HTTP {response.status_code}",
                kind="fetch",
                status_code=response.status_code,
            )
        return response.content

    async def _resolve_remote(
        self,
        reference: ShareLinkReference,
        api_base: str,
        trace_id: str | None,
        abort: asyncio.Event | None,
    ) -> ResolvedDiagram:
        url = api_base.rstrip("/") + PARSE_ENDPOINT
        headers = {TRACE_HEADER: trace_id} if trace_id else None
        try:
            response = await self.transport.get(
                url,
                params={"shareUrl": reference.url},
                headers=headers,
                timeout_ms=self.config.request_timeout_ms,
                abort=abort,
                max_bytes=self.config.max_upstream_bytes,
            )
        except ResponseTooLargeError as exc:
            raise ResolveError(str(exc), kind="parse") from exc
        except httpx.HTTPError as exc:
            raise ResolveError(f"Remote parse request failed: {exc}", kind="fetch") from exc

        if not response.is_success:
            raise ResolveError(
                f"Remote parse service returned HTTP {response.status_code}",
                kind="fetch",
                status_code=response.status_code,
            )
        if not response.content.strip():
            raise ResolveError("Remote parse service returned an empty body", kind="parse")
        try:
            data = response.json()
        except ValueError as exc:
            raise ResolveError("Remote parse service returned invalid JSON", kind="parse") from exc

        return ResolvedDiagram(
            diagram=Diagram.from_dict(data, source="remote parse response"),
            source="remote",
            reference=reference,
        )


def read_diagram_file(path: str | Path) -> Diagram:
    """
    Load a local ``.excalidraw`` file.

    Raises:
        InvalidDiagramError: if the file is not JSON or has no elements
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidDiagramError(
            f"Invalid diagram file {path}: {exc.msg}", operation="read_diagram_file"
        ) from exc
    return Diagram.from_dict(data, source=f"file {path}")
