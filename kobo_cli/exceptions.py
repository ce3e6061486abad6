"""
Defines custom exceptions for the application to allow for more specific error handling.
"""

from collections.abc import Iterator
from contextlib import contextmanager


class KoboCliError(Exception):
    """Base exception for all application-specific errors."""

    phase: str | None = None


class ContentTypeError(KoboCliError):
    """Raised when a Content-Type header does not follow the media-type grammar."""

    def __init__(self, message: str = "Invalid Content-Type header"):
        super().__init__(message)


class InvalidEncodingError(KoboCliError):
    """Raised when a body uses a charset that is unknown or fails to transcode."""

    def __init__(self, charset: bytes):
        super().__init__(f"Invalid encoding {charset!r}")
        self.charset = charset


class NotLoggedInError(KoboCliError):
    """Raised when an operation needs a complete session and there is none."""

    def __init__(self, message: str = "Not logged in. Run 'kobo-cli login' first."):
        super().__init__(message)


class LoginFlowError(KoboCliError):
    """Raised when the sign-in pages do not look the way the login flow expects."""


class StatusCodeError(KoboCliError):
    """Raised when the server answers with an unexpected HTTP status."""

    def __init__(self, status: int, url: str | None = None):
        message = f"Invalid status code {status}"
        if url:
            message += f" for {url}"
        super().__init__(message)
        self.status = status
        self.url = url


class DecodeError(KoboCliError):
    """Raised when structured data cannot be encoded or decoded as expected."""


class FormEncodeError(KoboCliError):
    """Raised when a value cannot be encoded as application/x-www-form-urlencoded."""


class TransportError(KoboCliError):
    """Raised when the HTTP transport itself fails (connection, timeout, TLS)."""


class ConfigurationError(KoboCliError):
    """Raised for issues related to configuration loading or validation."""


class SessionStoreError(ConfigurationError):
    """Raised when the persisted session cannot be read or written."""


class AuthenticationError(KoboCliError):
    """Raised when the token endpoints answer with something unusable."""


class AuthorizationError(AuthenticationError):
    """Raised when no usable authorization header can be produced."""


class DescriptorError(KoboCliError):
    """Raised when a content-access descriptor cannot be parsed."""


class DecryptionError(KoboCliError):
    """Raised when a protected container cannot be decrypted."""


@contextmanager
def phase(name: str) -> Iterator[None]:
    """Tags any application error escaping the block with the phase it failed in."""
    try:
        yield
    except KoboCliError as e:
        if e.phase is None:
            e.phase = name
        raise
