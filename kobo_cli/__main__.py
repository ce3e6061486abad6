"""
Entry point for `python -m kobo_cli` and the `kobo-cli` script.

Application errors are shown as a suggestion panel and exit with status 1.
An interrupt removes any half-written book before exiting with status 130.
"""

import asyncio
import logging
import sys

import typer

from kobo_cli.cli.app import INTERRUPTED_EXIT_CODE, app, console
from kobo_cli.cli.formatters import format_error_with_suggestions
from kobo_cli.exceptions import KoboCliError
from kobo_cli.storage import tempfiles

log = logging.getLogger("kobo_cli")


def _report(error: Exception, context: dict | None = None) -> int:
    console.print(format_error_with_suggestions(error, context))
    log.debug("Full traceback:", exc_info=error)
    return 1


def _interrupted() -> int:
    tempfiles.cleanup()
    console.print("\n[yellow]⚠️  Download cancelled, partial files removed.[/yellow]")
    return INTERRUPTED_EXIT_CODE


def main() -> None:
    try:
        app()
    except (typer.Exit, typer.Abort):
        return
    except (KeyboardInterrupt, asyncio.CancelledError):
        sys.exit(_interrupted())
    except KoboCliError as e:
        sys.exit(_report(e))
    except Exception as e:
        sys.exit(_report(e, {"type": "Unexpected"}))


if __name__ == "__main__":
    main()
