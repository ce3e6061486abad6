"""
Endpoint templates published by the store's initialization call.
"""

from typing import Any
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kobo_cli.exceptions import DecodeError

DISPLAY_PROFILE = "Android"
PRODUCT_ID_PLACEHOLDER = "{ProductId}"


def _require_absolute_url(value: str) -> str:
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"'{value}' is not an absolute URL")
    return value


class ServiceResources(BaseModel):
    """The subset of initialization resources the client uses."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    sign_in_page: str
    book: str
    library_sync: str
    user_wishlist: str
    content_access_book: str

    @field_validator("sign_in_page", "library_sync", "user_wishlist")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _require_absolute_url(v)

    @classmethod
    def from_payload(cls, payload: Any) -> "ServiceResources":
        """
        Extracts the resources from an initialization response.

        Raises:
            DecodeError: If a required resource is missing or malformed.
        """
        try:
            return _InitializationPayload.model_validate(payload).resources
        except ValidationError as e:
            raise DecodeError(f"Unexpected initialization payload: {e}") from e

    def book_url(self, product_id: str) -> str:
        return self.book.replace(PRODUCT_ID_PLACEHOLDER, product_id)

    def content_access_url(self, product_id: str) -> str:
        """
        The content-access URL for a product, with the display profile appended.

        Raises:
            DecodeError: If the filled-in template is not an absolute URL.
        """
        url = self.content_access_book.replace(PRODUCT_ID_PLACEHOLDER, product_id)
        try:
            parts = urlsplit(_require_absolute_url(url))
        except ValueError as e:
            raise DecodeError(str(e)) from e
        query = f"{parts.query}&" if parts.query else ""
        query += f"DisplayProfile={DISPLAY_PROFILE}"
        return urlunsplit(parts._replace(query=query))


class _InitializationPayload(BaseModel):
    resources: ServiceResources = Field(alias="Resources")
