import base64

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from kobo_cli.api.auth import DEVICE_AUTH_URL, REFRESH_URL
from kobo_cli.api.client import (
    INITIALIZATION_URL,
    SYNC_STATE_HEADER,
    SYNC_TOKEN_HEADER,
    KoboAPIClient,
)
from kobo_cli.api.device import USER_AGENT
from kobo_cli.exceptions import (
    AuthenticationError,
    NotLoggedInError,
    StatusCodeError,
)
from kobo_cli.media.crypto import derive_session_key
from kobo_cli.models.credentials import CredentialState

from .conftest import RESOURCES, token_payload

API_URL = "https://storeapi.kobo.com/v1/user/profile"
SYNC_URL = RESOURCES["library_sync"]


def entitlement(revision_id: str, title: str, status: str = "Reading") -> dict:
    return {
        "NewEntitlement": {
            "BookEntitlement": {"Accessibility": "Full", "IsRemoved": False},
            "ReadingState": {"StatusInfo": {"Status": status}},
            "BookMetadata": {
                "RevisionId": revision_id,
                "Title": title,
                "ContributorRoles": [{"Role": "Author", "Name": "Some Author"}],
            },
        }
    }


class Sink:
    def __init__(self):
        self.data = b""

    async def write(self, data: bytes) -> None:
        self.data += data


@pytest.mark.asyncio
async def test_request_requires_login(transport):
    client = KoboAPIClient(CredentialState(device_id="device-1"), transport=transport)
    with pytest.raises(NotLoggedInError):
        await client.request("GET", API_URL)
    assert transport.requests == []


@pytest.mark.asyncio
async def test_request_sends_identification_and_bearer(client, transport):
    transport.add("GET", API_URL, headers={"User-Agent": "ignored"})
    await client.request("GET", API_URL, {"User-Agent": "custom", "X-Extra": "1"})

    sent = transport.requests[0]
    assert sent.headers["Authorization"] == "Bearer access-1"
    assert sent.headers["User-Agent"] == USER_AGENT
    assert sent.headers.getall("User-Agent") == [USER_AGENT]
    assert sent.headers["x-kobo-appversion"]
    assert sent.headers["X-Extra"] == "1"


@pytest.mark.asyncio
async def test_cookies_are_stored_and_sent(client, transport):
    transport.add("GET", API_URL, headers=[("Set-Cookie", "session=abc; Path=/")])
    transport.add("GET", API_URL)
    await client.request("GET", API_URL)
    await client.request("GET", API_URL)
    assert "Cookie" not in transport.requests[0].headers
    assert transport.requests[1].headers["Cookie"] == "session=abc"


@pytest.mark.asyncio
async def test_relative_redirect_is_followed_without_authorization(client, transport):
    transport.add("POST", API_URL, status=302, headers={"Location": "/v1/next?x=1"})
    transport.add("GET", "https://storeapi.kobo.com/v1/next", body=b"done")

    response = await client.request("POST", API_URL, body=lambda headers: b"payload")

    assert response.status == 200
    assert response.body == b"done"
    follow = transport.requests[1]
    assert follow.method == "GET"
    assert follow.url == "https://storeapi.kobo.com/v1/next?x=1"
    assert follow.body is None
    assert "Authorization" not in follow.headers
    assert follow.headers["User-Agent"] == USER_AGENT


@pytest.mark.asyncio
async def test_redirect_chain_is_followed_to_the_end(client, transport):
    base = "https://storeapi.kobo.com/hop"
    transport.add(
        "GET",
        f"{base}/1",
        status=302,
        headers=[("Location", "/hop/2"), ("Set-Cookie", "s=1; Path=/")],
    )
    transport.add("GET", f"{base}/2", status=301, headers={"Location": "3"})
    transport.add("GET", f"{base}/3", body=b"ok")

    response = await client.request("GET", f"{base}/1")

    assert response.status == 200
    assert response.body == b"ok"
    assert [r.url for r in transport.requests] == [
        f"{base}/1",
        f"{base}/2",
        f"{base}/3",
    ]
    assert "Cookie" not in transport.requests[0].headers
    assert transport.requests[1].headers["Cookie"] == "s=1"
    assert transport.requests[2].headers["Cookie"] == "s=1"
    assert all("Authorization" not in r.headers for r in transport.requests[1:])


@pytest.mark.asyncio
async def test_redirect_without_usable_location_is_returned(client, transport):
    transport.add("GET", API_URL, status=302)
    response = await client.request("GET", API_URL)
    assert response.status == 302
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_401_refreshes_and_retries_once(client, transport, store):
    transport.add("GET", API_URL, status=401)
    transport.add_json("POST", REFRESH_URL, token_payload("access-2", "refresh-2"))
    transport.add("GET", API_URL, body=b"ok")

    response = await client.request("GET", API_URL)

    assert response.body == b"ok"
    refresh = transport.requests[1]
    assert refresh.headers["Authorization"] == "Bearer access-1"
    assert b'"RefreshToken":"refresh-1"' in refresh.body
    assert transport.requests[2].headers["Authorization"] == "Bearer access-2"
    assert store.fields["access_token"] == "access-2"
    assert store.fields["user_key"] == "key-1"


@pytest.mark.asyncio
async def test_second_401_is_returned_without_another_refresh(client, transport):
    transport.add("GET", API_URL, status=401, times=2)
    transport.add_json("POST", REFRESH_URL, token_payload("access-2", "refresh-2"))

    response = await client.request("GET", API_URL)

    assert response.status == 401
    assert len(transport.requests_to(API_URL)) == 2
    assert len(transport.requests_to(REFRESH_URL)) == 1


@pytest.mark.asyncio
async def test_refresh_that_changes_nothing_is_an_error(client, transport):
    transport.add("GET", API_URL, status=401)
    transport.add_json("POST", REFRESH_URL, token_payload("access-1", "refresh-1"))
    with pytest.raises(AuthenticationError):
        await client.request("GET", API_URL)
    assert len(transport.requests_to(API_URL)) == 1


@pytest.mark.asyncio
async def test_anonymous_request_authenticates_the_device_first(transport, store):
    credentials = CredentialState(store)
    client = KoboAPIClient(credentials, transport=transport)
    transport.add_json("POST", DEVICE_AUTH_URL, token_payload("access-9", "refresh-9"))
    transport.add("GET", API_URL)

    await client.anonymous_request("GET", API_URL)

    assert credentials.device_id()
    assert transport.requests[1].headers["Authorization"] == "Bearer access-9"
    assert store.fields["device_id"] == credentials.device_id()
    assert store.fields["access_token"] == "access-9"


@pytest.mark.asyncio
async def test_settings_are_fetched_once(client, transport):
    transport.add_initialization()
    first = await client.settings()
    second = await client.settings()
    assert first is second
    assert first.library_sync == SYNC_URL
    assert len(transport.requests_to(INITIALIZATION_URL)) == 1


@pytest.mark.asyncio
async def test_book_list_follows_sync_pages(client, transport):
    transport.add_initialization()
    transport.add_json(
        "GET",
        SYNC_URL,
        [entitlement("r2", "Zebra"), entitlement("r3", "Done", status="Finished")],
        headers={SYNC_STATE_HEADER: "continue", SYNC_TOKEN_HEADER: "token-1"},
    )
    transport.add_json("GET", SYNC_URL, [entitlement("r1", "Apple")])

    books = await client.book_list()

    assert [b.revision_id for b in books] == ["r1", "r2"]
    sync_requests = transport.requests_to(SYNC_URL)
    assert SYNC_TOKEN_HEADER not in sync_requests[0].headers
    assert sync_requests[1].headers[SYNC_TOKEN_HEADER] == "token-1"


@pytest.mark.asyncio
async def test_book_list_with_finished_books(client, transport):
    transport.add_initialization()
    transport.add_json("GET", SYNC_URL, [entitlement("r3", "Done", status="Finished")])
    books = await client.book_list(include_finished=True)
    assert [str(b) for b in books] == ["Done by Some Author"]


@pytest.mark.asyncio
async def test_book_list_errors_carry_the_phase(client, transport):
    transport.add_initialization()
    transport.add("GET", SYNC_URL, status=500)
    with pytest.raises(StatusCodeError) as excinfo:
        await client.book_list()
    assert excinfo.value.phase == "list"


@pytest.mark.asyncio
async def test_book_info(client, transport):
    transport.add_initialization()
    transport.add_json(
        "GET",
        "https://storeapi.kobo.com/v1/products/books/r1",
        {"Title": "Apple", "ContributorRoles": [{"Role": "Author", "Name": "A"}]},
    )
    info = await client.book_info("r1")
    assert (info.author, info.title) == ("A", "Apple")


@pytest.mark.asyncio
async def test_access_book_decrypts_content_keys(client, transport):
    content_key = bytes(range(16))
    session_key = derive_session_key("device-1", "user-1")
    encryptor = Cipher(algorithms.AES(session_key), modes.ECB()).encryptor()
    encrypted = encryptor.update(content_key) + encryptor.finalize()

    transport.add_initialization()
    transport.add_json(
        "GET",
        "https://storeapi.kobo.com/v1/products/r1/access",
        [
            [
                {
                    "DRMType": "KDRM",
                    "UrlFormat": "EPUB3",
                    "DownloadUrl": "https://cdn.kobo.com/book.epub?b=track&sig=1",
                    "ByteSize": 1234,
                }
            ],
            [["OEBPS/ch1.xhtml", base64.b64encode(encrypted).decode()]],
        ],
    )

    descriptor = await client.access_book("r1")

    assert transport.requests[-1].url.endswith("/access?DisplayProfile=Android")
    assert descriptor.has_drm
    assert descriptor.url == "https://cdn.kobo.com/book.epub?sig=1"
    assert descriptor.size == 1234
    assert descriptor.content_keys == {"OEBPS/ch1.xhtml": content_key}


@pytest.mark.asyncio
async def test_download_streams_into_the_sink(client, transport):
    transport.add("GET", "https://cdn.kobo.com/book.epub", body=b"0123456789")
    sink = Sink()
    response = await client.download("https://cdn.kobo.com/book.epub", sink)
    assert response.status == 200
    assert sink.data == b"0123456789"
    assert transport.requests[0].headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_download_failure_is_not_retried(client, transport):
    transport.add("GET", "https://cdn.kobo.com/book.epub", status=401, body=b"nope")
    sink = Sink()
    with pytest.raises(StatusCodeError) as excinfo:
        await client.download("https://cdn.kobo.com/book.epub", sink)
    assert excinfo.value.status == 401
    assert excinfo.value.phase == "download"
    assert sink.data == b""
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_close_closes_the_transport(client, transport):
    async with client:
        pass
    assert transport.closed
