"""
Rich progress display for book downloads.

The download and decryption code reports through the small
`ProgressReporter` interface; this adapter turns those calls into Rich
progress bars, in bytes while downloading and in entries while decrypting.
"""

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from kobo_cli.media.downloader import DECRYPT_STEP

DESCRIPTION_WIDTH = 55


def _shorten(description: str) -> str:
    if len(description) > DESCRIPTION_WIDTH:
        return description[: DESCRIPTION_WIDTH - 3] + "..."
    return description


class ProgressManager:
    """
    Shows one progress bar per step of the current book.

    Use as a context manager around a download; `book()` sets the label
    shown in front of each step.
    """

    def __init__(self, console: Console):
        self.console = console
        self._label = ""
        self._task_id: TaskID | None = None

        self.byte_progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=20),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=True,
        )
        self.entry_progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=20),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        )
        self._active: Progress | None = None

    def book(self, label: str) -> None:
        self._label = label

    # ProgressReporter

    def start(self, description: str, total: int | None) -> None:
        self.finish()
        progress = (
            self.entry_progress if description == DECRYPT_STEP else self.byte_progress
        )
        text = f"{description} {self._label}".strip()
        progress.start()
        self._task_id = progress.add_task(_shorten(text), total=total)
        self._active = progress

    def advance(self, amount: int) -> None:
        if self._active is not None and self._task_id is not None:
            self._active.advance(self._task_id, amount)

    def finish(self) -> None:
        if self._active is None:
            return
        if self._task_id is not None:
            self._active.remove_task(self._task_id)
        self._active.stop()
        self._active = None
        self._task_id = None

    def __enter__(self) -> "ProgressManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.finish()
