"""
Utilities for building output file names and paths.
"""

from pathlib import Path

from pathvalidate import sanitize_filename

BOOK_EXTENSION = ".epub"


def make_filename(author: str | None, title: str) -> str:
    """Builds 'Author - Title.epub', or 'Title.epub' when the author is unknown."""
    title = sanitize_filename(title, platform="universal")
    if author:
        name = f"{sanitize_filename(author, platform='universal')} - {title}"
    else:
        name = title
    return f"{name}{BOOK_EXTENSION}"


def resolve_output_path(
    output_dir: Path | None, output_file: Path | str
) -> Path:
    """
    Places `output_file` inside `output_dir`.

    An absolute `output_file` is used as is, and a relative one keeps its
    own sub-directories below `output_dir`.
    """
    output_file = Path(output_file)
    if not output_file.name:
        raise ValueError(f"'{output_file}' is not a file name")
    if output_dir is None or output_file.is_absolute():
        return output_file
    return Path(output_dir) / output_file
