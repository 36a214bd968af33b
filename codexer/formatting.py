"""Formatting helpers for timestamps and paths."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string such as '2025-01-31T09:15:00.123Z'. Returns None if unusable."""
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def mtime_to_datetime(mtime: float) -> datetime:
    return datetime.fromtimestamp(mtime, tz=timezone.utc)


def format_datetime(dt: datetime | None) -> str:
    """Format as local 'YYYY-MM-DD HH:MM', or '' when missing."""
    if dt is None:
        return ""
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def format_iso(dt: datetime | None) -> str:
    """Format as UTC ISO-8601 with milliseconds and a 'Z' suffix, or '' when missing."""
    if dt is None:
        return ""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def shorten_path(path: str) -> str:
    """Replace the home directory prefix with '~'."""
    if not path:
        return path
    home = str(Path.home())
    if path == home:
        return "~"
    if path.startswith(home + "/"):
        return "~" + path[len(home):]
    return path


def truncate(text: str, max_length: int, marker: str = "...") -> str:
    """Truncate text so the result, marker included, is at most max_length characters."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(marker)] + marker
