"""
Functions for formatting and displaying data in the console using Rich.
"""

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from kobo_cli.models.book import Book

HCAPTCHA_SITE_KEY = "51a1773a-a9ae-4992-a768-e3b8d87355e8"
SIGN_IN_URL = "https://authorize.kobo.com/signin"


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "NotLoggedInError": [
            "• Run `kobo-cli login` to sign in with your Kobo account.",
        ],
        "AuthenticationError": [
            "• Your session may have been revoked. Run `kobo-cli login` again.",
        ],
        "AuthorizationError": [
            "• The store kept rejecting the device token.",
            "• Run `kobo-cli login` again to start a fresh session.",
        ],
        "LoginFlowError": [
            "• Check your username and password.",
            "• The captcha response expires quickly, solve a new one and retry.",
            "• Kobo may have changed its sign-in page.",
        ],
        "StatusCodeError": [
            "• The Kobo store answered with an error.",
            "• Please try again in a few minutes.",
        ],
        "TransportError": [
            "• A network connection issue occurred.",
            "• Check your internet connection.",
        ],
        "DescriptorError": [
            "• The book may not be downloadable (preview, audiobook, or locked).",
            "• Run the command with -v for detailed logs.",
        ],
        "DecryptionError": [
            "• The downloaded file could not be decrypted.",
            "• Log in again to refresh the user key, then retry.",
        ],
        "SessionStoreError": [
            "• The configuration file could not be read or written.",
            "• Check the permissions of the kobo-cli configuration directory.",
        ],
        "ConfigurationError": [
            "• Fix or delete the kobo-cli configuration file.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -v for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    if phase := getattr(error, "phase", None):
        content.add_row(Text(f"While: {phase}", style="yellow"))
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_captcha_help(console: Console) -> None:
    """Explains how to obtain an hCaptcha response token for the login."""
    steps = Text.from_markup(
        f"1. Open [cyan]{SIGN_IN_URL}[/cyan] in a browser.\n"
        "2. Open the developer console and run:\n"
        f"   [green]hcaptcha.render(document.body, {{sitekey: "
        f"'{HCAPTCHA_SITE_KEY}', callback: console.log}})[/green]\n"
        "3. Solve the captcha that appears at the bottom of the page.\n"
        "4. Copy the long token printed in the console and paste it below."
    )
    console.print(
        Panel(steps, title="[bold]Captcha[/bold]", border_style="cyan", expand=False)
    )


def book_row(book: Book) -> str:
    """The one-line listing of a book."""
    line = escape(f"{book.revision_id} - {book}")
    if book.is_archived:
        line += " [dim](archived)[/dim]"
    return line


def print_books_table(console: Console, books: list[Book]) -> None:
    """Displays numbered books for interactive selection."""
    table = Table(box=box.ROUNDED)
    table.add_column("#", justify="right", style="bold magenta")
    table.add_column("Title", style="cyan")
    table.add_column("Authors")
    table.add_column("ID", style="dim", no_wrap=True)
    for i, book in enumerate(books, 1):
        title = escape(book.title)
        if book.is_archived:
            title += " [dim](archived)[/dim]"
        table.add_row(str(i), title, escape(book.authors or ""), book.revision_id)
    console.print(table)
