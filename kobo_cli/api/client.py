"""
Async client for the Kobo store API.

Owns the cookie jar, the cached endpoint resources and the request
pipeline: default identification headers, cookies, redirects, bearer
authorization and the single refresh-and-retry on HTTP 401. Calls are
awaited one at a time; an instance must not be shared between tasks.
"""

import logging
from typing import Any, Callable

from multidict import CIMultiDict
from yarl import URL

from kobo_cli.exceptions import (
    AuthenticationError,
    NotLoggedInError,
    StatusCodeError,
    phase,
)
from kobo_cli.media.crypto import derive_session_key
from kobo_cli.models.book import Book, BookInfo, parse_sync_page
from kobo_cli.models.content_access import ContentAccessDescriptor, parse_descriptor
from kobo_cli.models.credentials import CredentialState
from kobo_cli.models.resources import ServiceResources
from kobo_cli.web.script_engine import ScriptEvaluator

from .auth import KoboAuthenticator, bearer_header
from .codecs import Json
from .cookies import CookieStore
from .device import DEFAULT_HEADERS
from .transport import (
    AiohttpTransport,
    AsyncSink,
    RequestEnvelope,
    Transport,
    TransportResponse,
)

log = logging.getLogger(__name__)

STORE_API_URL = "https://storeapi.kobo.com/v1"
INITIALIZATION_URL = f"{STORE_API_URL}/initialization"

SYNC_TOKEN_HEADER = "x-kobo-synctoken"
SYNC_STATE_HEADER = "x-kobo-sync"

BodyFactory = Callable[[CIMultiDict], bytes | None]


def apply_default_headers(headers: CIMultiDict) -> None:
    """Sets the identification headers, replacing any caller-supplied values."""
    for name, value in DEFAULT_HEADERS.items():
        headers[name] = value


def _redirect_target(url: str, response: TransportResponse) -> str | None:
    """The first Location header that resolves against `url`, if any."""
    for location in response.headers.getall("Location", []):
        try:
            target = URL(url, encoded=True).join(URL(location, encoded=True))
        except ValueError:
            continue
        if target.is_absolute():
            return str(target)
    return None


class KoboAPIClient:
    """Client for the Kobo store, bound to one credential state."""

    def __init__(
        self,
        credentials: CredentialState,
        transport: Transport | None = None,
        script_evaluator: ScriptEvaluator | None = None,
    ):
        """
        Args:
            credentials: The session to authenticate with and update.
            transport: Performs the HTTP exchanges; aiohttp by default.
            script_evaluator: Runs the sign-in page scripts during login.
        """
        self.credentials = credentials
        self._transport: Transport = transport or AiohttpTransport()
        self._cookies = CookieStore()
        self._resources: ServiceResources | None = None
        self._authenticator = KoboAuthenticator(self, script_evaluator)

    @property
    def authenticator(self) -> KoboAuthenticator:
        """Provides access to the authentication helper."""
        return self._authenticator

    @property
    def cookies(self) -> CookieStore:
        return self._cookies

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> "KoboAPIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # Request pipeline

    async def _exchange(self, request: RequestEnvelope) -> TransportResponse:
        apply_default_headers(request.headers)
        cookie_header = self._cookies.header_for(request.url)
        if cookie_header:
            request.headers["Cookie"] = cookie_header
        response = await self._transport.request(request)
        log.debug(f"{request.method} {request.url} -> {response.status}")
        self._cookies.store_response(
            request.url, response.headers.getall("Set-Cookie", [])
        )
        return response

    async def raw_request(self, request: RequestEnvelope) -> TransportResponse:
        """
        Sends a request with cookies, following redirects with plain GETs.

        A redirect target gets only the identification headers and cookies,
        never the original authorization.
        """
        response = await self._exchange(request)
        url = request.url
        while response.is_redirect:
            target = _redirect_target(url, response)
            if target is None:
                break
            log.debug(f"Following redirect {response.status} to {target}")
            url = target
            response = await self._exchange(RequestEnvelope("GET", url, CIMultiDict()))
        return response

    async def _send(
        self,
        method: str,
        url: str,
        headers: CIMultiDict | None,
        body: BodyFactory | None,
        authorization: str,
    ) -> TransportResponse:
        request_headers = CIMultiDict(headers or {})
        request_headers["Authorization"] = authorization
        data = body(request_headers) if body else None
        return await self.raw_request(RequestEnvelope(method, url, request_headers, data))

    async def _retry_after_refresh(
        self,
        failed_authorization: str,
        method: str,
        url: str,
        headers: CIMultiDict | None,
        body: BodyFactory | None,
        require_login: bool = False,
    ) -> TransportResponse:
        log.debug(f"Got 401 for {url}, refreshing authorization")
        authorization = await self._authenticator.refresh_auth()
        if authorization == failed_authorization:
            raise AuthenticationError(
                "Token refresh did not produce a new authorization."
            )
        if require_login and not self.credentials.is_logged_in():
            raise NotLoggedInError()
        return await self._send(method, url, headers, body, authorization)

    async def anonymous_request(
        self,
        method: str,
        url: str,
        headers: CIMultiDict | None = None,
        body: BodyFactory | None = None,
    ) -> TransportResponse:
        """
        Sends a request that needs device authorization but no signed-in user.

        Device authentication runs first if the session has no tokens yet.
        """
        authorization = await self._authenticator.get_authorization()
        response = await self._send(method, url, headers, body, authorization)
        if response.status != 401:
            return response
        return await self._retry_after_refresh(authorization, method, url, headers, body)

    async def request(
        self,
        method: str,
        url: str,
        headers: CIMultiDict | None = None,
        body: BodyFactory | None = None,
    ) -> TransportResponse:
        """
        Sends a request on behalf of the signed-in user.

        On HTTP 401 the tokens are refreshed and the request is retried
        exactly once; the second response is returned whatever its status.

        Raises:
            NotLoggedInError: If the session is not logged in.
        """
        if not self.credentials.is_logged_in():
            raise NotLoggedInError()
        authorization = bearer_header(self.credentials.access_token())
        if authorization is None:
            raise NotLoggedInError()
        response = await self._send(method, url, headers, body, authorization)
        if response.status != 401:
            return response
        return await self._retry_after_refresh(
            authorization, method, url, headers, body, require_login=True
        )

    # Endpoints

    async def settings(self) -> ServiceResources:
        """The store's endpoint templates, fetched once per client."""
        if self._resources is None:
            response = await self.anonymous_request("GET", INITIALIZATION_URL)
            self._resources = ServiceResources.from_payload(Json.decode(response))
            log.debug("Fetched store resources")
        return self._resources

    async def _sync_page(
        self, token: str | None, include_finished: bool
    ) -> tuple[list[Book], str | None]:
        resources = await self.settings()
        headers = CIMultiDict()
        if token:
            headers[SYNC_TOKEN_HEADER] = token
        response = await self.request("GET", resources.library_sync, headers)
        books = parse_sync_page(Json.decode(response), include_finished)
        next_token = None
        if response.headers.get(SYNC_STATE_HEADER) == "continue":
            next_token = response.headers.get(SYNC_TOKEN_HEADER) or None
        return books, next_token

    async def book_list(self, include_finished: bool = False) -> list[Book]:
        """
        Lists the books in the user's library, sorted by title.

        Args:
            include_finished: Also list books marked as finished or with no
                reading state.
        """
        with phase("list"):
            books: list[Book] = []
            token = None
            while True:
                page, token = await self._sync_page(token, include_finished)
                books.extend(page)
                if token is None:
                    break
                log.debug(f"Library sync continues ({len(books)} books so far)")
            books.sort(key=lambda b: b.title)
            return books

    async def book_info(self, product_id: str) -> BookInfo:
        with phase("info"):
            resources = await self.settings()
            response = await self.request("GET", resources.book_url(product_id))
            return BookInfo.from_payload(Json.decode(response))

    async def access_book(self, product_id: str) -> ContentAccessDescriptor:
        """
        Fetches where to download a book and, for protected books, its keys.

        Raises:
            NotLoggedInError: If the device id or user id is missing.
            DescriptorError: If the response cannot be parsed.
        """
        with phase("book-access"):
            resources = await self.settings()
            device_id = self.credentials.device_id()
            user_id = self.credentials.user_id()
            if not device_id or not user_id:
                raise NotLoggedInError()
            session_key = derive_session_key(device_id, user_id)
            response = await self.request(
                "GET", resources.content_access_url(product_id)
            )
            return parse_descriptor(Json.decode(response), session_key)

    async def download(self, url: str, sink: AsyncSink) -> TransportResponse:
        """
        Streams a content URL into `sink` in a single attempt.

        Download URLs are pre-signed, so there is neither a refresh nor a
        redirect.

        Raises:
            NotLoggedInError: If the session is not logged in.
            StatusCodeError: If the response is not a success.
        """
        with phase("download"):
            if not self.credentials.is_logged_in():
                raise NotLoggedInError()
            authorization = bearer_header(self.credentials.access_token())
            if authorization is None:
                raise NotLoggedInError()
            headers = CIMultiDict(Authorization=authorization)
            apply_default_headers(headers)
            cookie_header = self._cookies.header_for(url)
            if cookie_header:
                headers["Cookie"] = cookie_header
            response = await self._transport.download(
                RequestEnvelope("GET", url, headers), sink
            )
            log.debug(f"GET {url} -> {response.status} (download)")
            self._cookies.store_response(url, response.headers.getall("Set-Cookie", []))
            if not response.is_success:
                raise StatusCodeError(response.status, url)
            return response

    async def login(self, username: str, password: str, captcha: str) -> None:
        """Signs in with the web sign-in flow and stores the user identity."""
        with phase("login"):
            await self._authenticator.login(username, password, captcha)
