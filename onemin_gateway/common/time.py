"""
Time Utilities

Backend policy:
- Store/query KV expirations in the database as UTC (naive) timestamps.
- Surface protocols use integer unix seconds; the model cache uses epoch milliseconds.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc


def utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def utc_now_naive() -> datetime:
    """Return current UTC time without tzinfo, for database columns."""
    return utc_now().replace(tzinfo=None)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is UTC-aware.

    - If `dt` is naive, treat it as UTC.
    - If `dt` is timezone-aware, convert it to UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def unix_seconds() -> int:
    """Current time as integer unix seconds (`created` fields)."""
    return int(time.time())


def epoch_millis() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)
