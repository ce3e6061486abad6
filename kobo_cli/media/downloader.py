"""
Downloads a book to disk, decrypting it when it is protected.

Nothing is written to the destination path until the book is complete:
the download and the decrypted copy live in registered temporary files
next to the destination and only the finished file is renamed into place.
"""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

import aiofiles

from kobo_cli.api.client import KoboAPIClient
from kobo_cli.exceptions import phase
from kobo_cli.models.content_access import ContentAccessDescriptor
from kobo_cli.storage import tempfiles

from .decryptor import transcode_container

log = logging.getLogger(__name__)

DOWNLOAD_STEP = "Downloading"
DECRYPT_STEP = "Decrypting"


class ProgressReporter(Protocol):
    """Receives progress of one download or decryption step."""

    def start(self, description: str, total: int | None) -> None: ...

    def advance(self, amount: int) -> None: ...

    def finish(self) -> None: ...


class _ProgressSink:
    """Writes chunks to a file and reports their sizes."""

    def __init__(self, file, reporter: ProgressReporter | None):
        self._file = file
        self._reporter = reporter
        self.written = 0

    async def write(self, data: bytes) -> None:
        await self._file.write(data)
        self.written += len(data)
        if self._reporter:
            self._reporter.advance(len(data))


class BookDownloader:
    """Fetches and decrypts books for one API client."""

    def __init__(
        self, client: KoboAPIClient, progress: ProgressReporter | None = None
    ):
        self._client = client
        self._progress = progress

    async def _fetch(self, descriptor: ContentAccessDescriptor, path: Path) -> None:
        if self._progress:
            self._progress.start(DOWNLOAD_STEP, descriptor.size or None)
        try:
            async with aiofiles.open(path, "wb") as f:
                sink = _ProgressSink(f, self._progress)
                await self._client.download(descriptor.url, sink)
        finally:
            if self._progress:
                self._progress.finish()
        log.debug(f"Downloaded {sink.written} bytes to '{path.name}'")

    async def _decrypt(
        self, descriptor: ContentAccessDescriptor, source: Path, destination: Path
    ) -> None:
        on_entry = None
        if self._progress:
            reporter = self._progress

            def on_entry(done: int, total: int) -> None:
                if done == 1:
                    reporter.start(DECRYPT_STEP, total)
                reporter.advance(1)

        try:
            with phase("decrypt"):
                await asyncio.to_thread(
                    transcode_container,
                    source,
                    destination,
                    descriptor.content_keys or {},
                    on_entry,
                )
        finally:
            if self._progress:
                self._progress.finish()

    async def download_book(self, product_id: str, destination: Path) -> Path:
        """
        Downloads one book to `destination`.

        Returns:
            The path written.
        """
        descriptor = await self._client.access_book(product_id)
        destination.parent.mkdir(parents=True, exist_ok=True)
        directory = destination.parent

        with tempfiles.temporary_file(directory, suffix=".download") as downloaded:
            await self._fetch(descriptor, downloaded)
            if descriptor.has_drm:
                with tempfiles.temporary_file(directory, suffix=".part") as decrypted:
                    await self._decrypt(descriptor, downloaded, decrypted)
                    tempfiles.commit(decrypted, destination)
            else:
                tempfiles.commit(downloaded, destination)

        log.info(f"Saved '{destination}'")
        return destination
