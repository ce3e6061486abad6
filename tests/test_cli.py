import zipfile

import pytest
from typer.testing import CliRunner

from kobo_cli import __version__
from kobo_cli import __main__ as entry_point
from kobo_cli.api.client import KoboAPIClient
from kobo_cli.cli import app as cli_app
from kobo_cli.exceptions import NotLoggedInError
from kobo_cli.storage import tempfiles
from kobo_cli.storage.config_manager import ConfigManager

from .conftest import RESOURCES
from .helpers import build_epub
from .test_client import entitlement

runner = CliRunner()

SESSION = {
    "device_id": "device-1",
    "access_token": "access-1",
    "refresh_token": "refresh-1",
    "user_id": "user-1",
    "user_key": "key-1",
}


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.ini"
    ConfigManager(path).save_credentials(SESSION)
    return path


@pytest.fixture(autouse=True)
def fake_client(monkeypatch, transport):
    monkeypatch.setattr(
        cli_app,
        "KoboAPIClient",
        lambda credentials: KoboAPIClient(credentials, transport=transport),
    )


def script_book(transport, revision_id="r1"):
    container = build_epub([("mimetype", b"application/epub+zip", zipfile.ZIP_STORED)])
    transport.add_json(
        "GET",
        f"https://storeapi.kobo.com/v1/products/{revision_id}/access",
        [
            [
                {
                    "DRMType": "SignedNoDrm",
                    "UrlFormat": "EPUB3",
                    "DownloadUrl": f"https://cdn.kobo.com/{revision_id}.epub",
                    "ByteSize": len(container),
                }
            ]
        ],
    )
    transport.add("GET", f"https://cdn.kobo.com/{revision_id}.epub", body=container)
    return container


def test_version():
    result = runner.invoke(cli_app.app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_list(transport, config_path):
    transport.add_initialization()
    transport.add_json(
        "GET", RESOURCES["library_sync"], [entitlement("r1", "First Book")]
    )
    result = runner.invoke(cli_app.app, ["--config", str(config_path), "list"])
    assert result.exit_code == 0, result.output
    assert "r1 - First Book by Some Author" in result.output


def test_list_requires_login(tmp_path, transport):
    transport.add_json(
        "POST",
        "https://storeapi.kobo.com/v1/auth/device",
        {"TokenType": "Bearer", "AccessToken": "a", "RefreshToken": "r"},
    )
    transport.add_initialization()
    result = runner.invoke(
        cli_app.app, ["--config", str(tmp_path / "config.ini"), "list"]
    )
    assert isinstance(result.exception, NotLoggedInError)


def test_get_names_the_file_after_the_book(transport, config_path, tmp_path):
    transport.add_initialization()
    transport.add_json(
        "GET",
        "https://storeapi.kobo.com/v1/products/books/r1",
        {"Title": "First Book", "ContributorRoles": [{"Role": "Author", "Name": "A"}]},
    )
    container = script_book(transport)
    out = tmp_path / "out"

    result = runner.invoke(
        cli_app.app, ["--config", str(config_path), "get", "r1", "-d", str(out)]
    )

    assert result.exit_code == 0, result.output
    assert (out / "A - First Book.epub").read_bytes() == container


def test_get_with_explicit_output(transport, config_path, tmp_path):
    transport.add_initialization()
    container = script_book(transport)
    out = tmp_path / "out"

    result = runner.invoke(
        cli_app.app,
        ["--config", str(config_path), "get", "r1", "-d", str(out), "-o", "sub/x.epub"],
    )

    assert result.exit_code == 0, result.output
    assert (out / "sub" / "x.epub").read_bytes() == container


def test_pick_downloads_the_selection(transport, config_path, tmp_path):
    transport.add_initialization()
    transport.add_json(
        "GET",
        RESOURCES["library_sync"],
        [entitlement("r1", "Alpha"), entitlement("r2", "Beta"), entitlement("r3", "Gamma")],
    )
    script_book(transport, "r1")
    script_book(transport, "r3")
    out = tmp_path / "out"

    result = runner.invoke(
        cli_app.app,
        ["--config", str(config_path), "pick", "-d", str(out)],
        input="9\n1,3\n",
    )

    assert result.exit_code == 0, result.output
    assert "Invalid selection" in result.output
    assert sorted(p.name for p in out.iterdir()) == [
        "Some Author - Alpha.epub",
        "Some Author - Gamma.epub",
    ]


def test_entry_point_reports_application_errors(monkeypatch):
    def failing_app():
        raise NotLoggedInError()

    monkeypatch.setattr(entry_point, "app", failing_app)
    with pytest.raises(SystemExit) as excinfo:
        entry_point.main()
    assert excinfo.value.code == 1


def test_entry_point_interrupt_removes_partial_files(monkeypatch, tmp_path):
    partial = tmp_path / ".kobo-cli-partial.tmp"
    partial.write_bytes(b"half a book")

    def interrupted_app():
        tempfiles.register(partial)
        raise KeyboardInterrupt

    monkeypatch.setattr(entry_point, "app", interrupted_app)
    with pytest.raises(SystemExit) as excinfo:
        entry_point.main()
    assert excinfo.value.code == cli_app.INTERRUPTED_EXIT_CODE
    assert not partial.exists()
    assert tempfiles.pending() == []
