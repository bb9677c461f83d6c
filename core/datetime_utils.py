from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

__all__ = ["ensure_utc", "from_unix_seconds", "isoformat_or_none", "utcnow"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_unix_seconds(value: Any) -> Optional[datetime]:
    """Convert a Stripe unix timestamp (seconds) into an aware UTC datetime."""

    if value is None or value == "" or isinstance(value, bool):
        return None

    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None

    if seconds <= 0:
        return None

    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite round-trips) as UTC."""

    if value is None:
        return None

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)

    return value.astimezone(timezone.utc)


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    aware = ensure_utc(value)
    return aware.isoformat() if aware else None
