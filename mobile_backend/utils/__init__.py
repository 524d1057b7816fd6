"""
Utilities Module
================

Helper functions and utility classes.
"""

from mobile_backend.utils.helpers import (
    format_datetime,
    from_epoch_ms,
    is_uuid,
    parse_date,
    redact_id,
    utc_now,
)

__all__ = [
    "format_datetime",
    "from_epoch_ms",
    "is_uuid",
    "parse_date",
    "redact_id",
    "utc_now",
]
