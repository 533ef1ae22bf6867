"""
HTTP transport used by the resolver and publishers.

A thin async wrapper around ``httpx.AsyncClient`` that routes every request
through :func:`run_cancellable`, so each call has its own timeout and can be
aborted by an external event. Transports are constructed and injected; there
is no process-wide client.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from excalidraw_agent.cancellation import run_cancellable

DEFAULT_TIMEOUT_MS = 60_000
USER_AGENT = "excalidraw-agent/0.1"

_FRAMING_HEADERS = ("content-encoding", "content-length", "transfer-encoding")


class ResponseTooLargeError(ValueError):
    """An upstream body exceeded the configured byte limit."""


class HttpTransport:
    """Async HTTP client with per-request timeout and cancellation.

    Example:
        async with HttpTransport() as transport:
            response = await transport.get(url, timeout_ms=10_000, abort=stop)
            response.raise_for_status()
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        user_agent: str = USER_AGENT,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": user_agent},
            timeout=None,
        )

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
        content: bytes | None = None,
        timeout_ms: float | None = DEFAULT_TIMEOUT_MS,
        abort: asyncio.Event | None = None,
        max_bytes: int | None = None,
    ) -> httpx.Response:
        """Send a request; the body is fully read before returning.

        With ``max_bytes`` the body is streamed and reading stops with
        :class:`ResponseTooLargeError` as soon as the limit is passed.
        """
        request = self._client.build_request(
            method,
            url,
            params=params,
            headers=headers,
            json=json,
            content=content,
        )
        return await run_cancellable(
            self._send(request, max_bytes),
            timeout_ms=timeout_ms,
            abort=abort,
            operation=f"{method} {url.split('?', 1)[0]}",
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def _send(self, request: httpx.Request, max_bytes: int | None) -> httpx.Response:
        if max_bytes is None:
            return await self._client.send(request)

        response = await self._client.send(request, stream=True)
        try:
            declared = response.headers.get("content-length")
            if declared is not None and declared.isdigit() and int(declared) > max_bytes:
                raise ResponseTooLargeError(
                    f"Upstream response too large: {declared} bytes (max {max_bytes})"
                )
            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > max_bytes:
                    raise ResponseTooLargeError(
                        f"Upstream response too large: more than {max_bytes} bytes"
                    )
                chunks.append(chunk)
        finally:
            await response.aclose()

        # the body is already decoded, so the framing headers no longer apply
        headers = [
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in _FRAMING_HEADERS
        ]
        return httpx.Response(
            response.status_code,
            headers=headers,
            content=b"".join(chunks),
            request=request,
        )
