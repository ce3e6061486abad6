"""Shared fakes: a scripted transport, an in-memory session store and a script evaluator."""

import json
from collections import defaultdict, deque
from typing import Any

import pytest
from multidict import CIMultiDict, CIMultiDictProxy

from kobo_cli.api.client import INITIALIZATION_URL, KoboAPIClient
from kobo_cli.api.transport import RequestEnvelope, TransportResponse
from kobo_cli.models.credentials import CredentialState

RESOURCES = {
    "sign_in_page": "https://authorize.kobo.com/signin",
    "book": "https://storeapi.kobo.com/v1/products/books/{ProductId}",
    "library_sync": "https://storeapi.kobo.com/v1/library/sync",
    "user_wishlist": "https://storeapi.kobo.com/v1/user/wishlist",
    "content_access_book": "https://storeapi.kobo.com/v1/products/{ProductId}/access",
}


def _route_key(method: str, url: str) -> tuple[str, str]:
    return method.upper(), url.split("?", 1)[0]


class FakeTransport:
    """
    Serves scripted responses per (method, URL without query), in order.

    Every request is recorded; a request with nothing scripted fails the test.
    """

    def __init__(self):
        self.requests: list[RequestEnvelope] = []
        self.closed = False
        self._routes: dict[tuple[str, str], deque] = defaultdict(deque)

    def add(
        self,
        method: str,
        url: str,
        status: int = 200,
        body: bytes | str = b"",
        headers: list[tuple[str, str]] | dict[str, str] | None = None,
        times: int = 1,
    ) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        for _ in range(times):
            self._routes[_route_key(method, url)].append((status, body, headers))

    def add_json(self, method: str, url: str, payload: Any, status: int = 200, **kw):
        headers = kw.pop("headers", None) or []
        if isinstance(headers, dict):
            headers = list(headers.items())
        headers.append(("Content-Type", "application/json; charset=utf-8"))
        self.add(method, url, status, json.dumps(payload), headers, **kw)

    def add_initialization(self) -> None:
        self.add_json("GET", INITIALIZATION_URL, {"Resources": RESOURCES})

    def _next(self, request: RequestEnvelope) -> TransportResponse:
        self.requests.append(request)
        queue = self._routes.get(_route_key(request.method, request.url))
        if not queue:
            raise AssertionError(f"Unexpected request {request.method} {request.url}")
        status, body, headers = queue.popleft()
        return TransportResponse(
            status=status,
            headers=CIMultiDictProxy(CIMultiDict(headers or [])),
            body=body,
            url=request.url,
        )

    def requests_to(self, url: str) -> list[RequestEnvelope]:
        return [r for r in self.requests if r.url.split("?", 1)[0] == url]

    async def request(self, request: RequestEnvelope) -> TransportResponse:
        return self._next(request)

    async def download(self, request: RequestEnvelope, sink) -> TransportResponse:
        response = self._next(request)
        if response.is_success:
            for i in range(0, len(response.body), 4):
                await sink.write(response.body[i : i + 4])
        response.body = b""
        return response

    async def close(self) -> None:
        self.closed = True


class MemoryStore:
    """SessionStore keeping the last saved fields in memory."""

    def __init__(self, **fields: str | None):
        self.fields: dict[str, str | None] = dict(fields)
        self.saves = 0

    def load_credentials(self) -> dict[str, str | None]:
        return dict(self.fields)

    def save_credentials(self, credentials: dict[str, str | None]) -> None:
        self.fields = dict(credentials)
        self.saves += 1


class FakeEvaluator:
    def __init__(self, result: str | None = None):
        self.result = result
        self.sources: list[str] = []

    def evaluate(self, source: str) -> str | None:
        self.sources.append(source)
        return self.result


def token_payload(access: str, refresh: str, user_key: str | None = None) -> dict:
    payload = {"TokenType": "Bearer", "AccessToken": access, "RefreshToken": refresh}
    if user_key is not None:
        payload["UserKey"] = user_key
    return payload


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def logged_in(store) -> CredentialState:
    return CredentialState(
        store,
        device_id="device-1",
        access_token="access-1",
        refresh_token="refresh-1",
        user_id="user-1",
        user_key="key-1",
    )


@pytest.fixture
def evaluator() -> FakeEvaluator:
    return FakeEvaluator()


@pytest.fixture
def client(logged_in, transport, evaluator) -> KoboAPIClient:
    return KoboAPIClient(logged_in, transport=transport, script_evaluator=evaluator)
