"""
Content-access descriptor parsing.

The store answers a content-access request either with a two-element
array ``[ContentUrls, ContentKeys]`` or an object with those two keys.
The first usable content URL wins; when it is DRM protected, the content
keys are decrypted with the session key right away so that a descriptor
either parses completely or not at all.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, Field, ValidationError, field_validator

from kobo_cli.exceptions import DescriptorError
from kobo_cli.media.crypto import decrypt_content_key

log = logging.getLogger(__name__)

PROTECTED_DRM_TYPE = "KDRM"
TRACKING_PREFIXES = ("b=", "%62=")


class ContentUrl(BaseModel):
    drm_type: Literal["KDRM", "SignedNoDrm"] = Field(alias="DRMType")
    url_format: Literal["EPUB3", "EPUB3FL", "KEPUB"] = Field(alias="UrlFormat")
    download_url: str = Field(alias="DownloadUrl")
    byte_size: int = Field(alias="ByteSize", ge=0)

    @field_validator("download_url")
    @classmethod
    def validate_download_url(cls, v: str) -> str:
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"'{v}' is not an absolute http(s) URL")
        return v


@dataclass
class ContentAccessDescriptor:
    """Where to download a book from, and the keys to its protected entries."""

    url: str
    size: int
    has_drm: bool
    content_keys: dict[str, bytes] | None = field(default=None, repr=False)


def strip_tracking_parameter(url: str) -> str:
    """
    Removes the `b` query parameter, literal or percent-encoded.

    The URL is returned untouched when the parameter is absent.
    """
    parts = urlsplit(url)
    if not parts.query:
        return url
    kept = []
    found = False
    for pair in filter(None, parts.query.split("&")):
        if pair == "b" or pair.startswith(TRACKING_PREFIXES):
            found = True
        else:
            kept.append(pair)
    if not found:
        return url
    return urlunsplit(parts._replace(query="&".join(kept)))


def _select_content_url(entries: Any) -> ContentUrl:
    if not isinstance(entries, list):
        raise DescriptorError("ContentUrls is not an array")
    for entry in entries:
        try:
            return ContentUrl.model_validate(entry)
        except ValidationError as e:
            log.debug(f"Skipping unusable content URL: {e.error_count()} errors")
    raise DescriptorError("No usable content URL in content-access response")


def _key_pair(entry: Any) -> tuple[Any, Any]:
    if isinstance(entry, list):
        if len(entry) != 2:
            raise DescriptorError("Content key entry must have exactly 2 elements")
        return entry[0], entry[1]
    if isinstance(entry, dict):
        if "Name" not in entry or "Value" not in entry:
            raise DescriptorError("Content key entry is missing Name or Value")
        return entry["Name"], entry["Value"]
    raise DescriptorError("Content key entry is neither an array nor an object")


def parse_content_keys(entries: Any, session_key: bytes) -> dict[str, bytes]:
    """
    Decrypts every content key, mapping container entry names to AES keys.

    Raises:
        DescriptorError: If any entry is malformed or fails to decrypt.
    """
    if not isinstance(entries, list):
        raise DescriptorError("ContentKeys is not an array")
    keys = {}
    for entry in entries:
        name, value = _key_pair(entry)
        if not isinstance(name, str) or not isinstance(value, str):
            raise DescriptorError("Content key name and value must be strings")
        keys[name] = decrypt_content_key(value, session_key)
    return keys


def _split_payload(payload: Any) -> tuple[Any, Any]:
    if isinstance(payload, list):
        if not payload:
            raise DescriptorError("Content-access response is an empty array")
        if len(payload) > 2:
            raise DescriptorError("Content-access response has more than 2 elements")
        return payload[0], payload[1] if len(payload) == 2 else None
    if isinstance(payload, dict):
        if "ContentUrls" not in payload:
            raise DescriptorError("Content-access response is missing ContentUrls")
        return payload["ContentUrls"], payload.get("ContentKeys")
    raise DescriptorError("Content-access response is neither an array nor an object")


def parse_descriptor(payload: Any, session_key: bytes) -> ContentAccessDescriptor:
    """
    Parses a content-access response.

    Raises:
        DescriptorError: If no content URL is usable, if DRM keys are
            missing, malformed, or present for an unprotected book in
            array form.
    """
    urls, keys = _split_payload(payload)
    content_url = _select_content_url(urls)
    has_drm = content_url.drm_type == PROTECTED_DRM_TYPE
    url = strip_tracking_parameter(content_url.download_url)

    content_keys = None
    if has_drm:
        if keys is None:
            raise DescriptorError("Protected book has no content keys")
        content_keys = parse_content_keys(keys, session_key)
    elif isinstance(payload, list) and len(payload) == 2:
        raise DescriptorError("Unprotected book must not carry content keys")

    log.debug(
        f"Content URL format={content_url.url_format} drm={has_drm} "
        f"size={content_url.byte_size}"
    )
    return ContentAccessDescriptor(
        url=url, size=content_url.byte_size, has_drm=has_drm, content_keys=content_keys
    )
