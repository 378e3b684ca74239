"""Timestamp utilities for todosync.

Task timestamps travel as ISO-8601 strings. They are stored exactly as
received and only parsed when two of them have to be ordered, so that a
task pulled from the server compares equal to the copy the server holds.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into a timezone-aware datetime.

    Accepts a trailing "Z" for UTC. Naive timestamps are read as UTC.

    Args:
        value: ISO-8601 timestamp string

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If value is not a string or not ISO-8601
    """
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_iso(dt: datetime) -> str:
    """Format a datetime as a UTC ISO-8601 string with milliseconds and "Z"."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    utc_dt = dt.astimezone(timezone.utc)
    return utc_dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso() -> str:
    """Get the current time as an ISO-8601 UTC string."""
    return format_iso(datetime.now(timezone.utc))


def is_newer(candidate: str, reference: str) -> bool:
    """Check whether candidate is strictly more recent than reference."""
    return parse_timestamp(candidate) > parse_timestamp(reference)


def next_timestamp(previous: Optional[str] = None) -> str:
    """Stamp a mutation, never going backwards from the previous stamp.

    If the clock has not moved past previous (same millisecond, or the
    clock was set back), the result is previous plus one millisecond.

    Args:
        previous: The task's current updatedAt, or None for a new task

    Returns:
        ISO-8601 UTC string >= previous
    """
    now = datetime.now(timezone.utc)
    if previous is None:
        return format_iso(now)
    prev_dt = parse_timestamp(previous)
    if now <= prev_dt:
        return format_iso(prev_dt + timedelta(milliseconds=1))
    return format_iso(now)


def format_timestamp(value: Optional[str]) -> str:
    """Format an ISO timestamp in the local timezone for display.

    Args:
        value: ISO-8601 timestamp string or None

    Returns:
        "YYYY-MM-DD HH:MM:SS" in local time, the raw value if it cannot be
        parsed, or empty string if value is None
    """
    if value is None:
        return ""
    try:
        local_dt = parse_timestamp(value).astimezone()
    except ValueError:
        return value
    return local_dt.strftime("%Y-%m-%d %H:%M:%S")
