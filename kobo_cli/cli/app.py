"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from kobo_cli import __version__
from kobo_cli.api.client import KoboAPIClient
from kobo_cli.media.downloader import BookDownloader
from kobo_cli.models.credentials import CredentialState
from kobo_cli.storage import tempfiles
from kobo_cli.storage.config_manager import ConfigManager
from kobo_cli.utils.formatting import format_size, parse_selection
from kobo_cli.utils.path import make_filename, resolve_output_path

from .formatters import book_row, print_books_table, print_captcha_help
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("kobo_cli")

app = typer.Typer(
    name="kobo-cli",
    help=(
        "Download the EPUB books you own from the Kobo store. Use 'kobo-cli"
        " <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

INTERRUPTED_EXIT_CODE = 130


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Runs a command coroutine, removing partial files if it is interrupted."""
    try:
        return asyncio.run(coro)
    except (KeyboardInterrupt, asyncio.CancelledError):
        tempfiles.cleanup()
        console.print("\n[yellow]⚠️  Operation cancelled by user.[/yellow]")
        raise typer.Exit(code=INTERRUPTED_EXIT_CODE) from None


@asynccontextmanager
async def _open_client(config_manager: ConfigManager) -> AsyncIterator[KoboAPIClient]:
    credentials = CredentialState.from_store(config_manager)
    async with KoboAPIClient(credentials) as client:
        yield client


def _output_dir(config_manager: ConfigManager, output_dir: Path | None) -> Path | None:
    if output_dir is not None:
        return output_dir
    return config_manager.load_config().output_dir


async def _download(
    client: KoboAPIClient,
    progress: ProgressManager,
    product_id: str,
    output_dir: Path | None,
    output_file: Path | str | None = None,
) -> Path:
    if output_file is None:
        info = await client.book_info(product_id)
        output_file = make_filename(info.author, info.title)
    destination = resolve_output_path(output_dir, output_file)
    progress.book(destination.name)
    downloader = BookDownloader(client, progress)
    path = await downloader.download_book(product_id, destination)
    console.print(
        f"[green]✓ Saved[/green] '{path}' [dim]({format_size(path.stat().st_size)})[/dim]"
    )
    return path


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-v for debug).",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        envvar="KOBO_CLI_CONFIG",
        help="Use this configuration file instead of the default one.",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
):
    """Kobo Downloader CLI"""
    if version:
        console.print(f"[bold]kobo-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log.setLevel("DEBUG" if verbose >= 1 else "INFO")
    ctx.obj = ConfigManager(config)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def login(
    ctx: typer.Context,
    username: str | None = typer.Option(
        None, "-u", "--username", help="Kobo account e-mail address."
    ),
    password: str | None = typer.Option(
        None, "-p", "--password", help="Kobo account password."
    ),
    captcha: str | None = typer.Option(
        None, "-c", "--captcha", help="hCaptcha response token for the sign-in page."
    ),
):
    """Sign in to Kobo and register this device."""
    config_manager: ConfigManager = ctx.obj
    username = username or typer.prompt("Username")
    password = password or typer.prompt("Password", hide_input=True)
    if not captcha:
        print_captcha_help(console)
        captcha = typer.prompt("Captcha")

    async def _login_async():
        async with _open_client(config_manager) as client:
            await client.login(username, password, captcha)

    _run(_login_async())
    console.print(
        f"[bold green]✓ Logged in.[/bold green] Session saved to "
        f"[dim]{config_manager.config_file_path}[/dim]"
    )


@app.command(name="list")
def list_command(
    ctx: typer.Context,
    show_all: bool = typer.Option(
        False, "--all", "-a", help="Also list finished books and books never opened."
    ),
):
    """List the books in your library."""
    config_manager: ConfigManager = ctx.obj

    async def _list_async():
        async with _open_client(config_manager) as client:
            return await client.book_list(include_finished=show_all)

    books = _run(_list_async())
    for book in books:
        console.print(book_row(book), highlight=False)
    if not books:
        console.print("[yellow]No books found.[/yellow]")


@app.command()
def get(
    ctx: typer.Context,
    product_id: str = typer.Argument(..., help="The book's revision id, see 'list'."),
    output_dir: Path | None = typer.Option(
        None, "-d", "--dir", help="Directory to save the book in."
    ),
    output_file: Path | None = typer.Option(
        None,
        "-o",
        "--output",
        help="File name for the book (default: 'Author - Title.epub').",
    ),
):
    """Download one book."""
    config_manager: ConfigManager = ctx.obj
    output_dir = _output_dir(config_manager, output_dir)

    async def _get_async():
        async with _open_client(config_manager) as client:
            with ProgressManager(console) as progress:
                await _download(client, progress, product_id, output_dir, output_file)

    _run(_get_async())


def _prompt_selection(count: int) -> list[int]:
    while True:
        answer = typer.prompt("Books to download (e.g. 1,3-5)")
        try:
            selection = parse_selection(answer, count)
        except ValueError as e:
            console.print(f"[red]✗ Invalid selection: {e}[/red]")
            continue
        if selection:
            return selection


@app.command()
def pick(
    ctx: typer.Context,
    output_dir: Path | None = typer.Option(
        None, "-d", "--dir", help="Directory to save the books in."
    ),
    show_all: bool = typer.Option(
        False, "--all", "-a", help="Also offer finished books and books never opened."
    ),
):
    """Choose books from your library and download them."""
    config_manager: ConfigManager = ctx.obj
    output_dir = _output_dir(config_manager, output_dir)

    async def _pick_async():
        async with _open_client(config_manager) as client:
            books = await client.book_list(include_finished=show_all)
            if not books:
                console.print("[yellow]No books found.[/yellow]")
                return
            print_books_table(console, books)
            selected = [books[i] for i in _prompt_selection(len(books))]
            with ProgressManager(console) as progress:
                for book in selected:
                    await _download(
                        client,
                        progress,
                        book.revision_id,
                        output_dir,
                        make_filename(book.authors, book.title),
                    )
            if len(selected) > 1:
                console.print(
                    f"[bold green]✓ Downloaded {len(selected)} books.[/bold green]"
                )

    _run(_pick_async())
