"""
Pydantic models for catalog sync pages and book metadata.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_pascal

from kobo_cli.exceptions import DecodeError

log = logging.getLogger(__name__)


class _StoreModel(BaseModel):
    """Base for payloads the store sends with PascalCase keys."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class ContributorRole(_StoreModel):
    role: str | None = None
    name: str


class BookMetadata(_StoreModel):
    revision_id: str
    title: str
    contributor_roles: list[ContributorRole] | None = None


class BookEntitlement(_StoreModel):
    accessibility: str | None = None
    is_locked: bool | None = None
    is_removed: bool | None = None

    @property
    def is_accessible(self) -> bool:
        """Previews and locked entitlements cannot be downloaded."""
        return self.accessibility != "Preview" and not self.is_locked


class StatusInfo(_StoreModel):
    status: str | None = None


class ReadingState(_StoreModel):
    status_info: StatusInfo | None = None


class NewEntitlement(_StoreModel):
    book_entitlement: BookEntitlement | None = None
    reading_state: ReadingState | None = None
    book_metadata: BookMetadata

    def is_unfinished(self) -> bool:
        if self.reading_state is None or self.reading_state.status_info is None:
            return False
        return self.reading_state.status_info.status != "Finished"


class SyncItem(_StoreModel):
    new_entitlement: NewEntitlement


def join_authors(roles: list[ContributorRole] | None) -> str | None:
    """
    Joins every contributor with the Author role using ' & '.

    Falls back to the first contributor when nobody is credited as author.
    """
    if not roles:
        return None
    authors = " & ".join(r.name for r in roles if r.role == "Author")
    return authors or roles[0].name or None


class Book(BaseModel):
    """One downloadable title in the user's library."""

    model_config = ConfigDict(frozen=True)

    authors: str | None = None
    title: str
    revision_id: str
    is_archived: bool = False

    def __str__(self) -> str:
        if self.authors:
            return f"{self.title} by {self.authors}"
        return self.title

    @classmethod
    def from_entitlement(cls, entitlement: NewEntitlement) -> "Book":
        metadata = entitlement.book_metadata
        is_removed = (
            entitlement.book_entitlement.is_removed
            if entitlement.book_entitlement
            else None
        )
        return cls(
            authors=join_authors(metadata.contributor_roles),
            title=metadata.title,
            revision_id=metadata.revision_id,
            is_archived=bool(is_removed),
        )


class _BookInfoPayload(_StoreModel):
    title: str
    contributor_roles: list[ContributorRole] | None = None


class BookInfo(BaseModel):
    author: str | None = None
    title: str

    @classmethod
    def from_payload(cls, payload: Any) -> "BookInfo":
        """
        Builds book info from the `book` resource response.

        Raises:
            DecodeError: If the payload has no title.
        """
        try:
            metadata = _BookInfoPayload.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(f"Unexpected book info payload: {e}") from e
        return cls(author=join_authors(metadata.contributor_roles), title=metadata.title)


def parse_sync_page(payload: Any, include_finished: bool = False) -> list[Book]:
    """
    Extracts the downloadable books from one library sync page.

    Elements that are not new entitlements, or that fail validation, are
    skipped. Without `include_finished`, only books with a reading status
    other than "Finished" are returned.

    Raises:
        DecodeError: If the page is not a JSON array.
    """
    if not isinstance(payload, list):
        raise DecodeError("Library sync page is not a JSON array")

    books = []
    for element in payload:
        try:
            item = SyncItem.model_validate(element)
        except ValidationError:
            continue
        entitlement = item.new_entitlement
        if entitlement.book_entitlement and not entitlement.book_entitlement.is_accessible:
            continue
        if not include_finished and not entitlement.is_unfinished():
            continue
        books.append(Book.from_entitlement(entitlement))
    log.debug(f"Sync page: {len(payload)} items, {len(books)} books")
    return books
