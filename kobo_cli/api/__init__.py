"""
Kobo API Layer.

This package handles all communication with the Kobo store: content
negotiation, the HTTP transport, cookies, and device authentication.
"""

from .auth import KoboAuthenticator
from .client import KoboAPIClient
from .transport import AiohttpTransport

__all__ = ["AiohttpTransport", "KoboAPIClient", "KoboAuthenticator"]
