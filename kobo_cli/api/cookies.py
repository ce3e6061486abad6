"""
Cookie storage for the API client, built on http.cookiejar.

Every cookie the server sends is stored, but only cookies whose name and
value are RFC 6265 compliant are ever sent back.
"""

import email.message
import logging
import urllib.request
from collections.abc import Iterable, Iterator
from http.cookiejar import Cookie, CookieJar, DefaultCookiePolicy

from .content_type import is_token_char

log = logging.getLogger(__name__)

_FORBIDDEN_VALUE_CHARS = frozenset('",;\\')


def _is_valid_value_char(c: str) -> bool:
    return 0x21 <= ord(c) <= 0x7E and c not in _FORBIDDEN_VALUE_CHARS


def is_cookie_compliant(cookie: Cookie) -> bool:
    """True if the cookie may be echoed back in a Cookie header."""
    if not all(is_token_char(c) for c in cookie.name):
        return False
    return all(_is_valid_value_char(c) for c in cookie.value or "")


class CompliantCookiePolicy(DefaultCookiePolicy):
    """Standard domain/path/expiry matching plus the compliance filter."""

    def return_ok(self, cookie: Cookie, request) -> bool:
        if not is_cookie_compliant(cookie):
            log.debug(f"Not sending non-compliant cookie '{cookie.name}'")
            return False
        return super().return_ok(cookie, request)


class _ResponseAdapter:
    """The minimal response interface CookieJar.extract_cookies needs."""

    def __init__(self, set_cookie_headers: Iterable[str]):
        self._headers = email.message.Message()
        for value in set_cookie_headers:
            self._headers["Set-Cookie"] = value

    def info(self) -> email.message.Message:
        return self._headers


class CookieStore:
    """A cookie jar owned by exactly one API client instance."""

    def __init__(self) -> None:
        self._jar = CookieJar(policy=CompliantCookiePolicy())

    def __iter__(self) -> Iterator[Cookie]:
        return iter(self._jar)

    def __len__(self) -> int:
        return len(self._jar)

    def set_cookie(self, cookie: Cookie) -> None:
        self._jar.set_cookie(cookie)

    def header_for(self, url: str) -> str | None:
        """Builds the Cookie header value for a request to `url`, if any."""
        request = urllib.request.Request(url)
        self._jar.add_cookie_header(request)
        return request.get_header("Cookie")

    def store_response(self, url: str, set_cookie_headers: Iterable[str]) -> None:
        """Stores the cookies from the Set-Cookie headers of a response to `url`."""
        headers = list(set_cookie_headers)
        if not headers:
            return
        self._jar.extract_cookies(
            _ResponseAdapter(headers), urllib.request.Request(url)
        )
