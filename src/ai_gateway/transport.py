"""
ai-gateway: Outbound HTTP transport.

The gateway only needs "send this request, give me status and JSON body".
``AiohttpTransport`` is the built-in implementation; a proxying transport
(for example, one relaying through a privileged process) can replace it by
implementing the same protocol.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import aiohttp

from ai_gateway.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class HttpRequest:
    """A provider call ready to be sent."""

    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    timeout: float = 60.0


@dataclass
class HttpResponse:
    status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@runtime_checkable
class Transport(Protocol):
    """Protocol for outbound HTTP.

    Implementations raise ``ProviderError`` (retryable) for network-level
    failures and return an ``HttpResponse`` for any HTTP status.
    """

    async def send(self, request: HttpRequest, provider: str) -> HttpResponse:
        ...

    async def close(self) -> None:
        ...


class AiohttpTransport:
    """Transport backed by a lazily created ``aiohttp.ClientSession``.

    Example::

        transport = AiohttpTransport()
        response = await transport.send(HttpRequest(url, headers=h, body=payload), "openai")
        await transport.close()
    """

    def __init__(self, default_headers: dict[str, str] | None = None) -> None:
        self._default_headers = default_headers or {}
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Lazily create and return the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json", **self._default_headers}
            )
        return self._session

    async def send(self, request: HttpRequest, provider: str) -> HttpResponse:
        session = await self._get_session()
        try:
            timeout = aiohttp.ClientTimeout(total=request.timeout)
            async with session.request(
                request.method,
                request.url,
                json=request.body,
                headers=request.headers,
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                return HttpResponse(status=resp.status, body=_decode(text))
        except asyncio.TimeoutError as e:
            raise ProviderError(provider, f"Timeout after {request.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ProviderError(provider, f"Connection error: {e}") from e

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


def _decode(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text
