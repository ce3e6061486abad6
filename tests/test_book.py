import pytest

from kobo_cli.exceptions import DecodeError
from kobo_cli.models.book import BookInfo, join_authors, parse_sync_page
from kobo_cli.models.book import ContributorRole
from kobo_cli.models.resources import ServiceResources

from .conftest import RESOURCES


def item(title="Title", status="Reading", entitlement=None, roles=None, **extra):
    new_entitlement = {
        "BookMetadata": {
            "RevisionId": f"id-{title}",
            "Title": title,
            "ContributorRoles": roles
            if roles is not None
            else [{"Role": "Author", "Name": "Writer"}],
        },
        **extra,
    }
    if status is not None:
        new_entitlement["ReadingState"] = {"StatusInfo": {"Status": status}}
    if entitlement is not None:
        new_entitlement["BookEntitlement"] = entitlement
    return {"NewEntitlement": new_entitlement}


def test_join_authors():
    roles = [
        ContributorRole(role="Illustrator", name="Pictures"),
        ContributorRole(role="Author", name="First"),
        ContributorRole(role="Author", name="Second"),
    ]
    assert join_authors(roles) == "First & Second"
    assert join_authors(roles[:1]) == "Pictures"
    assert join_authors([]) is None
    assert join_authors(None) is None


def test_sync_page_filters_unfinished_books():
    payload = [
        item("Reading"),
        item("Finished", status="Finished"),
        item("Never opened", status=None),
        item("Preview", entitlement={"Accessibility": "Preview"}),
        item("Locked", entitlement={"IsLocked": True}),
        {"ChangedReadingState": {}},
        {"NewEntitlement": {"BookMetadata": {"Title": "no revision"}}},
    ]
    assert [b.title for b in parse_sync_page(payload)] == ["Reading"]
    assert [b.title for b in parse_sync_page(payload, include_finished=True)] == [
        "Reading",
        "Finished",
        "Never opened",
    ]


def test_book_fields():
    payload = [
        item(
            "Archived",
            entitlement={"Accessibility": "Full", "IsRemoved": True},
            roles=[{"Name": "Somebody"}],
        )
    ]
    (book,) = parse_sync_page(payload)
    assert book.revision_id == "id-Archived"
    assert book.authors == "Somebody"
    assert book.is_archived
    assert str(book) == "Archived by Somebody"


def test_book_without_contributors():
    (book,) = parse_sync_page([item("Anonymous", roles=[])])
    assert book.authors is None
    assert str(book) == "Anonymous"


def test_sync_page_must_be_an_array():
    with pytest.raises(DecodeError):
        parse_sync_page({"NewEntitlement": {}})


def test_book_info_from_payload():
    info = BookInfo.from_payload(
        {"Title": "T", "ContributorRoles": [{"Role": "Author", "Name": "A"}]}
    )
    assert (info.author, info.title) == ("A", "T")
    with pytest.raises(DecodeError):
        BookInfo.from_payload({"ContributorRoles": []})


def test_service_resources():
    resources = ServiceResources.from_payload({"Resources": {**RESOURCES, "other": 1}})
    assert resources.book_url("p1") == "https://storeapi.kobo.com/v1/products/books/p1"
    assert (
        resources.content_access_url("p1")
        == "https://storeapi.kobo.com/v1/products/p1/access?DisplayProfile=Android"
    )


def test_content_access_url_keeps_existing_query():
    resources = ServiceResources.from_payload(
        {
            "Resources": {
                **RESOURCES,
                "content_access_book": "https://s/{ProductId}/access?x=1",
            }
        }
    )
    assert resources.content_access_url("p1") == "https://s/p1/access?x=1&DisplayProfile=Android"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"Resources": {k: v for k, v in RESOURCES.items() if k != "library_sync"}},
        {"Resources": {**RESOURCES, "sign_in_page": "/relative"}},
    ],
)
def test_bad_initialization_payloads(payload):
    with pytest.raises(DecodeError):
        ServiceResources.from_payload(payload)
