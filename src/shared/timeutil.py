"""Time helpers: ISO-8601 parsing, timezone resolution, business hours."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

log = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_ts(iso: str) -> datetime:
    """Parse ISO-8601 timestamp; naive values are taken as UTC."""
    dt = datetime.fromisoformat(iso.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def format_ts(dt: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def resolve_tz(tz_name: str | None) -> tzinfo | None:
    """Return tzinfo for *tz_name*; ``None``/``"local"`` means host local time.

    Unknown zone names fall back to local time.
    """
    if not tz_name or tz_name.lower() == "local":
        return None
    if tz_name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("Unknown timezone '%s' — using local time", tz_name)
        return None


def to_local(dt: datetime, tz: tzinfo | None) -> datetime:
    """Convert *dt* to *tz* (host local time when tz is None)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(tz)


def is_business_hours(
    dt: datetime,
    tz: tzinfo | None = None,
    weekdays: frozenset[int] = frozenset({0, 1, 2, 3, 4}),
    start_hour: int = 9,
    end_hour: int = 17,
) -> bool:
    """True for Monday–Friday, hour in [start_hour, end_hour] (inclusive)."""
    local = to_local(dt, tz)
    return local.weekday() in weekdays and start_hour <= local.hour <= end_hour
