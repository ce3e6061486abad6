"""
Request and response body codecs.

Request side: every codec turns a Python value into bytes according to the
charset of the request's Content-Type, setting a default Content-Type only
when the caller supplied none. Response side: decoding requires HTTP 200
and honours the response charset.
"""

import codecs
import json
from typing import Any
from urllib.parse import urlencode

from multidict import CIMultiDict

from kobo_cli.exceptions import (
    ContentTypeError,
    DecodeError,
    FormEncodeError,
    InvalidEncodingError,
    StatusCodeError,
)

from .content_type import parse_media_type
from .transport import TransportResponse

_UTF8_LABELS = ("utf8", "utf-8")


def charset_from_content_type(header: str | bytes) -> str | None:
    """
    Returns the charset parameter of a Content-Type header, if any.

    Raises:
        ContentTypeError: If the header is malformed or names a charset twice.
    """
    charsets = parse_media_type(header).get_all("charset")
    if len(charsets) > 1:
        raise ContentTypeError("Content-Type header has more than one charset")
    return charsets[0] if charsets else None


def is_utf8(charset: str) -> bool:
    return charset.lower() in _UTF8_LABELS


def lookup_encoding(charset: str) -> codecs.CodecInfo:
    """Resolves a charset label, raising InvalidEncodingError with the raw label."""
    try:
        info = codecs.lookup(charset)
    except LookupError as e:
        raise InvalidEncodingError(_raw(charset)) from e
    # base64, rot13, zlib and friends are registered codecs but not charsets
    if not getattr(info, "_is_text_encoding", True):
        raise InvalidEncodingError(_raw(charset))
    return info


def _raw(charset: str) -> bytes:
    return charset.encode("utf-8", "surrogateescape")


def _foreign_charset(headers) -> str | None:
    """The Content-Type charset when it is present and not UTF-8."""
    content_type = headers.get("Content-Type")
    if content_type is None:
        return None
    charset = charset_from_content_type(content_type)
    if charset is None or is_utf8(charset):
        return None
    return charset


def _encode_text(text: str, charset: str | None) -> bytes:
    if charset is None:
        return text.encode("utf-8")
    try:
        return text.encode(lookup_encoding(charset).name)
    except (LookupError, UnicodeError) as e:
        raise InvalidEncodingError(_raw(charset)) from e


def _decode_text(body: bytes, charset: str | None) -> str:
    if charset is None:
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidEncodingError(b"UTF-8") from e
    try:
        return body.decode(lookup_encoding(charset).name)
    except (LookupError, UnicodeError) as e:
        raise InvalidEncodingError(_raw(charset)) from e


def _require_ok(response: TransportResponse) -> None:
    if response.status != 200:
        raise StatusCodeError(response.status, response.url or None)


class Raw:
    """Bytes sent and received untouched."""

    def __init__(self, data: bytes = b""):
        self.data = data

    def encode(self, headers: CIMultiDict) -> bytes:
        return bytes(self.data)

    @staticmethod
    def decode(response: TransportResponse) -> bytes:
        _require_ok(response)
        return response.body


class Text:
    """A string transcoded to and from the Content-Type charset."""

    def __init__(self, text: str = ""):
        self.text = text

    def encode(self, headers: CIMultiDict) -> bytes:
        return _encode_text(self.text, _foreign_charset(headers))

    @staticmethod
    def decode(response: TransportResponse) -> str:
        _require_ok(response)
        return _decode_text(response.body, _foreign_charset(response.headers))


class Json:
    """A JSON document."""

    CONTENT_TYPE = "application/json; charset=utf-8"

    def __init__(self, value: Any = None):
        self.value = value

    def encode(self, headers: CIMultiDict) -> bytes:
        charset = None
        if "Content-Type" in headers:
            charset = _foreign_charset(headers)
        else:
            headers["Content-Type"] = self.CONTENT_TYPE
        try:
            text = json.dumps(self.value, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Cannot encode JSON body: {e}") from e
        return _encode_text(text, charset)

    @staticmethod
    def decode(response: TransportResponse) -> Any:
        _require_ok(response)
        text = _decode_text(response.body, _foreign_charset(response.headers))
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON in response from {response.url}: {e}") from e


class Form:
    """An application/x-www-form-urlencoded body built from ordered pairs."""

    CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"

    def __init__(self, fields: dict[str, Any] | list[tuple[str, Any]]):
        self.fields = fields

    def _pairs(self) -> list[tuple[str, str]]:
        items = self.fields.items() if isinstance(self.fields, dict) else self.fields
        pairs = []
        for key, value in items:
            if isinstance(value, bool):
                value = "true" if value else "false"
            elif isinstance(value, (int, float)):
                value = str(value)
            elif not isinstance(value, str):
                raise FormEncodeError(
                    f"Cannot form-encode field '{key}' of type {type(value).__name__}"
                )
            pairs.append((str(key), value))
        return pairs

    def encode(self, headers: CIMultiDict) -> bytes:
        charset = None
        if "Content-Type" in headers:
            charset = _foreign_charset(headers)
        else:
            headers["Content-Type"] = self.CONTENT_TYPE
        encoding = "utf-8" if charset is None else lookup_encoding(charset).name
        try:
            return urlencode(self._pairs(), encoding=encoding).encode("ascii")
        except (LookupError, UnicodeError) as e:
            raise InvalidEncodingError(_raw(charset or "utf-8")) from e
