"""
Parser for Content-Type header values (RFC 7231 media types).

    media-type = type "/" subtype *( OWS ";" OWS parameter )
    parameter  = token "=" ( token / quoted-string )

Parsing is strict: the first malformed byte aborts with ContentTypeError.
"""

from dataclasses import dataclass

from kobo_cli.exceptions import ContentTypeError

_TCHAR = frozenset(
    "!#$%&'*+-.^_`|~0123456789"
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
)
_OWS = " \t"


def is_token_char(c: str) -> bool:
    return c in _TCHAR


def _is_qdtext(c: str) -> bool:
    # HTAB / SP / %x21 / %x23-5B / %x5D-7E / obs-text
    o = ord(c)
    return c in "\t !" or 0x23 <= o <= 0x5B or 0x5D <= o <= 0x7E or o >= 0x80


def _is_quoted_pair_char(c: str) -> bool:
    o = ord(c)
    return c == "\t" or (o > 31 and o != 127)


@dataclass(frozen=True)
class MediaType:
    """A parsed media type with its parameters in header order."""

    type: str
    subtype: str
    parameters: tuple[tuple[str, str], ...] = ()

    def get_all(self, name: str) -> list[str]:
        """Returns every value of the parameter `name` (case-insensitive)."""
        name = name.lower()
        return [v for k, v in self.parameters if k.lower() == name]

    def get(self, name: str) -> str | None:
        values = self.get_all(name)
        return values[0] if values else None

    def __str__(self) -> str:
        out = f"{self.type}/{self.subtype}"
        for key, value in self.parameters:
            if value and all(is_token_char(c) for c in value):
                out += f"; {key}={value}"
            else:
                escaped = value.replace("\\", "\\\\").replace('"', '\\"')
                out += f'; {key}="{escaped}"'
        return out


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str | None:
        return None if self.at_end() else self.text[self.pos]

    def skip_ows(self) -> None:
        while not self.at_end() and self.text[self.pos] in _OWS:
            self.pos += 1

    def expect(self, c: str) -> None:
        if self.peek() != c:
            raise ContentTypeError()
        self.pos += 1

    def token(self) -> str:
        start = self.pos
        while not self.at_end() and is_token_char(self.text[self.pos]):
            self.pos += 1
        if start == self.pos:
            raise ContentTypeError()
        return self.text[start : self.pos]

    def quoted_string(self) -> str:
        self.expect('"')
        out = []
        while not self.at_end():
            c = self.text[self.pos]
            self.pos += 1
            if c == '"':
                return "".join(out)
            if c == "\\":
                if self.at_end():
                    raise ContentTypeError()
                c = self.text[self.pos]
                self.pos += 1
                if not _is_quoted_pair_char(c):
                    raise ContentTypeError()
            elif not _is_qdtext(c):
                raise ContentTypeError()
            out.append(c)
        raise ContentTypeError("Unterminated quoted string in Content-Type header")

    def value(self) -> str:
        value = self.quoted_string() if self.peek() == '"' else self.token()
        # A value must be followed by whitespace, another parameter or the end.
        if self.peek() not in (None, " ", "\t", ";"):
            raise ContentTypeError()
        return value

    def parameters(self) -> tuple[tuple[str, str], ...]:
        params = []
        while not self.at_end():
            self.skip_ows()
            if self.at_end():
                break
            self.expect(";")
            self.skip_ows()
            if self.at_end():
                break
            key = self.token()
            self.expect("=")
            params.append((key, self.value()))
        return tuple(params)


def parse_media_type(header: str | bytes) -> MediaType:
    """
    Parses a Content-Type header value.

    Raises:
        ContentTypeError: If the value is not a valid media type.
    """
    if isinstance(header, bytes):
        header = header.decode("latin-1")
    parser = _Parser(header)
    parser.skip_ows()
    type_ = parser.token()
    parser.expect("/")
    subtype = parser.token()
    return MediaType(type_, subtype, parser.parameters())
