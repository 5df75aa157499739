"""Timestamp helpers for MM:SS / HH:MM:SS transcript timestamps."""

import re

_TIMESTAMP_RE = re.compile(r"^\s*(\d+):(\d{2})(?::(\d{2}))?\s*$")


def parse_timestamp(value: str) -> int:
    """Parse ``MM:SS`` or ``HH:MM:SS`` into whole seconds.

    Minutes are unbounded in the two-part form, so ``125:30`` is 7530s.

    Raises:
        ValueError: if the string is not a timestamp.
    """
    match = _TIMESTAMP_RE.match(value or "")
    if match is None:
        raise ValueError(f"Not a timestamp: {value!r}")

    first, second, third = match.groups()
    if third is None:
        minutes, seconds = int(first), int(second)
        return minutes * 60 + seconds
    hours, minutes, seconds = int(first), int(second), int(third)
    return hours * 3600 + minutes * 60 + seconds


def format_timestamp(total_seconds: float) -> str:
    """Format seconds as ``MM:SS``, or ``HH:MM:SS`` from one hour up."""
    total = max(0, int(total_seconds))
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def rebase_timestamp(timestamp: str, offset_seconds: float) -> str:
    """Shift a chunk-local timestamp onto the absolute timeline.

    Unparseable timestamps collapse to the chunk start.
    """
    try:
        local = parse_timestamp(timestamp)
    except ValueError:
        return format_timestamp(offset_seconds)
    return format_timestamp(offset_seconds + local)
