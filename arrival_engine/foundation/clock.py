"""Timezone-aware clock utilities.

All timestamps in arrival-engine MUST be UTC-aware.  Detector state stores
epoch milliseconds; both views of "now" come from this module so tests can
monkey-patch them trivially.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Return the current time as integer epoch milliseconds."""
    return int(utc_now().timestamp() * 1000)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
