"""
Helper functions for formatting data into human-readable strings.
"""


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '1.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def parse_selection(text: str, count: int) -> list[int]:
    """
    Parses a selection like '1,3-5' into sorted zero-based indexes.

    Numbers are one-based and must lie between 1 and `count`.

    Raises:
        ValueError: If a part is not a number or range, or is out of bounds.
    """
    indexes: set[int] = set()
    for part in text.replace(" ", "").split(","):
        if not part:
            continue
        start, sep, end = part.partition("-")
        first = int(start)
        last = int(end) if sep else first
        if first > last:
            first, last = last, first
        if first < 1 or last > count:
            raise ValueError(f"'{part}' is outside 1-{count}")
        indexes.update(range(first - 1, last))
    return sorted(indexes)
