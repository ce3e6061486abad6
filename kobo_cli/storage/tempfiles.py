"""
Process-wide registry of temporary files.

Every temporary file created while downloading or decrypting is registered
here until it is either renamed into place or deleted. Whatever is still
registered when the process is interrupted or exits gets removed.
"""

import atexit
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

log = logging.getLogger(__name__)

_lock = threading.Lock()
_pending: set[Path] = set()


def register(path: Path) -> None:
    with _lock:
        _pending.add(Path(path))


def forget(path: Path) -> None:
    with _lock:
        _pending.discard(Path(path))


def pending() -> list[Path]:
    with _lock:
        return sorted(_pending)


def _remove(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        log.warning(f"Could not remove temporary file '{path}': {e}")


def cleanup() -> None:
    """Removes every registered temporary file."""
    with _lock:
        paths = list(_pending)
        _pending.clear()
    for path in paths:
        log.debug(f"Removing leftover temporary file '{path}'")
        _remove(path)


@contextmanager
def temporary_file(directory: Path, suffix: str = ".tmp") -> Iterator[Path]:
    """
    Creates an empty registered temporary file in `directory`.

    The file is deleted when the block exits unless it was moved away
    with `commit()` first.
    """
    fd, name = tempfile.mkstemp(prefix=".kobo-cli-", suffix=suffix, dir=directory)
    os.close(fd)
    path = Path(name)
    register(path)
    try:
        yield path
    finally:
        with _lock:
            still_pending = path in _pending
            _pending.discard(path)
        if still_pending:
            _remove(path)


def commit(temporary: Path, destination: Path) -> None:
    """Atomically moves a registered temporary file onto its final path."""
    os.replace(temporary, destination)
    forget(temporary)


atexit.register(cleanup)
