"""
Data Models Layer.

This package contains the credential state machine and the Pydantic models
for configuration and the store's payloads.
"""

from .book import Book, BookInfo
from .config import AppConfig
from .content_access import ContentAccessDescriptor
from .credentials import CredentialState

__all__ = ["AppConfig", "Book", "BookInfo", "ContentAccessDescriptor", "CredentialState"]
