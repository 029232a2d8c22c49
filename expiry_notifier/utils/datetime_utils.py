from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to UTC timezone-aware datetime.

    Naive datetimes are assumed to already be in UTC, which is how the SQL
    store keeps expiry timestamps.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC for comparison against DateTime columns."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(dt: datetime) -> str:
    """Stable ISO-8601 rendering of an instant, used in notification bucket keys."""
    return to_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_for_display(dt: datetime, zone: str = "UTC") -> str:
    """
    Render an expiry timestamp for people reading an alert.

    Args:
        dt: Instant to render (naive values are treated as UTC)
        zone: IANA time zone name for the reader

    Returns:
        str: e.g. "2026-10-19 09:30 (UTC)"
    """
    local = to_utc(dt).astimezone(ZoneInfo(zone))
    return f"{local.strftime('%Y-%m-%d %H:%M')} ({zone})"
