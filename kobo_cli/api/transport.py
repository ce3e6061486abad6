"""
HTTP transport capability used by the API client, and its aiohttp binding.

The client owns cookies, redirects and authorization; a transport only
performs exactly the request it is given.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from kobo_cli.exceptions import TransportError

log = logging.getLogger(__name__)


@dataclass
class RequestEnvelope:
    """One outgoing HTTP request."""

    method: str
    url: str
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: bytes | None = None


@dataclass
class TransportResponse:
    """A received HTTP response. `body` is empty for streamed downloads."""

    status: int
    headers: CIMultiDictProxy
    body: bytes = b""
    url: str = ""

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


class AsyncSink(Protocol):
    async def write(self, data: bytes) -> object: ...


class Transport(Protocol):
    """Performs single HTTP exchanges without following redirects or storing cookies."""

    async def request(self, request: RequestEnvelope) -> TransportResponse: ...

    async def download(
        self, request: RequestEnvelope, sink: AsyncSink
    ) -> TransportResponse: ...

    async def close(self) -> None: ...


class AiohttpTransport:
    """Transport backed by a single aiohttp ClientSession."""

    CHUNK_SIZE = 131072  # 128 KB

    def __init__(self, timeout: aiohttp.ClientTimeout | None = None):
        self._timeout = timeout or aiohttp.ClientTimeout(
            total=None, sock_connect=15, sock_read=90
        )
        self._session: aiohttp.ClientSession | None = None

    async def _initialize_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                # Cookies are handled by the client's own jar.
                cookie_jar=aiohttp.DummyCookieJar(),
                timeout=self._timeout,
                skip_auto_headers=("User-Agent",),
            )
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def _request_kwargs(self, request: RequestEnvelope) -> dict:
        return {
            "method": request.method,
            "url": URL(request.url, encoded=True),
            "headers": request.headers,
            "data": request.body,
            "allow_redirects": False,
        }

    async def request(self, request: RequestEnvelope) -> TransportResponse:
        session = await self._initialize_session()
        try:
            async with session.request(**self._request_kwargs(request)) as r:
                body = await r.read()
                return TransportResponse(
                    status=r.status, headers=r.headers, body=body, url=request.url
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"{request.method} {request.url} failed: {e or type(e).__name__}"
            ) from e

    async def download(
        self, request: RequestEnvelope, sink: AsyncSink
    ) -> TransportResponse:
        session = await self._initialize_session()
        try:
            async with session.request(**self._request_kwargs(request)) as r:
                if 200 <= r.status < 300:
                    async for chunk in r.content.iter_chunked(self.CHUNK_SIZE):
                        await sink.write(chunk)
                return TransportResponse(
                    status=r.status, headers=r.headers, url=request.url
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Download of {request.url} failed: {e or type(e).__name__}"
            ) from e
