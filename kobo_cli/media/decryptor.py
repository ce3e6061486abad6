"""
Transcodes a protected EPUB container into a plain one.
"""

import logging
import shutil
import zipfile
import zlib
from collections.abc import Callable
from pathlib import Path

from kobo_cli.exceptions import DecryptionError

from .crypto import decrypt_entry

log = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024

EntryCallback = Callable[[int, int], None]


def _copy_entry(
    source: zipfile.ZipFile, target: zipfile.ZipFile, info: zipfile.ZipInfo
) -> None:
    out_info = zipfile.ZipInfo(info.filename, date_time=info.date_time)
    out_info.compress_type = info.compress_type
    out_info.external_attr = info.external_attr
    out_info.create_system = info.create_system
    out_info.comment = info.comment
    out_info.file_size = info.file_size
    with source.open(info) as src, target.open(out_info, "w") as dst:
        shutil.copyfileobj(src, dst, COPY_BUFFER_SIZE)


def _decrypt_entry(
    source: zipfile.ZipFile, target: zipfile.ZipFile, info: zipfile.ZipInfo, key: bytes
) -> None:
    plaintext = decrypt_entry(source.read(info), key)
    out_info = zipfile.ZipInfo(info.filename, date_time=info.date_time)
    out_info.compress_type = zipfile.ZIP_DEFLATED
    out_info.external_attr = info.external_attr
    out_info.create_system = info.create_system
    target.writestr(out_info, plaintext)


def transcode_container(
    source: Path,
    destination: Path,
    content_keys: dict[str, bytes],
    on_entry: EntryCallback | None = None,
) -> int:
    """
    Writes a copy of `source` to `destination` with protected entries decrypted.

    Entries named in `content_keys` are decrypted and stored DEFLATE
    compressed; every other entry is copied unchanged, keeping its
    compression method.

    Args:
        source: The downloaded container.
        destination: Where to write the new container.
        content_keys: Entry name to AES key.
        on_entry: Called with (entries done, total entries) after each entry.

    Returns:
        The number of decrypted entries.

    Raises:
        DecryptionError: If the container is corrupt or an entry fails to decrypt.
    """
    decrypted = 0
    try:
        with zipfile.ZipFile(source) as zin, zipfile.ZipFile(destination, "w") as zout:
            entries = zin.infolist()
            for index, info in enumerate(entries, start=1):
                key = content_keys.get(info.filename)
                if key is None:
                    _copy_entry(zin, zout, info)
                else:
                    try:
                        _decrypt_entry(zin, zout, info, key)
                    except DecryptionError as e:
                        raise DecryptionError(f"{info.filename}: {e}") from e
                    decrypted += 1
                if on_entry:
                    on_entry(index, len(entries))
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        raise DecryptionError(f"Corrupt container: {e}") from e
    except (NotImplementedError, RuntimeError) as e:
        # unsupported compression method or a password-protected entry
        raise DecryptionError(f"Unsupported container: {e}") from e

    unused = len(content_keys) - decrypted
    if unused > 0:
        log.debug(f"{unused} content keys did not match any entry")
    log.debug(f"Decrypted {decrypted} of {len(entries)} entries")
    return decrypted
