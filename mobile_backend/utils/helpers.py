"""
Helper Functions
================

Common utility functions used across the application.
"""

import re
from datetime import datetime, timezone
from typing import Union

_UUID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


def utc_now() -> datetime:
    """Get current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


def format_datetime(dt: datetime) -> str:
    """
    Format a datetime as ISO 8601 UTC with millisecond precision.

    Produces ``2026-01-01T00:00:00.000Z``, the same shape the mobile
    clients and Supabase REST responses use.
    """
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_date(date_str: str) -> datetime:
    """Parse ISO 8601 date string to datetime."""
    return datetime.fromisoformat(date_str.replace("Z", "+00:00"))


def from_epoch_ms(value: Union[int, float]) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def is_uuid(value: str) -> bool:
    """True for an 8-4-4-4-12 hex UUID string (either case)."""
    return _UUID_RE.fullmatch(value) is not None


def redact_id(value: str) -> str:
    """Shorten an identifier for log lines."""
    return f"{value[:8]}..."
