"""Timestamp parsing and relative-time helpers."""

from datetime import datetime, timezone

UNKNOWN_ACTIVITY = "unknown"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_iso_timestamp(value: object) -> datetime | None:
    """Parse an ISO 8601 timestamp into an aware datetime.

    Args:
        value: Timestamp string (e.g., "2026-01-26T00:38:34.590Z")

    Returns:
        Aware datetime (naive inputs are assumed UTC), or None when the value
        is missing, empty, or unparseable
    """
    if not isinstance(value, str):
        return None

    token = value.strip()
    if not token:
        return None

    if token.endswith("Z"):
        token = token[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(token)
    except ValueError:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def relative_time_label(ms_ago: int) -> str:
    """Render elapsed milliseconds as a short human label."""
    total_seconds = max(0, ms_ago // 1000)
    if total_seconds < 60:
        return "just now"
    if total_seconds < 3600:
        return f"{total_seconds // 60}m ago"
    if total_seconds < 86400:
        return f"{total_seconds // 3600}h ago"
    return f"{total_seconds // 86400}d ago"


def activity_since(moment: datetime | None, now: datetime | None = None) -> tuple[str, int]:
    """Compute the (label, ms_ago) pair for a last-activity moment.

    A missing moment yields ("unknown", 0); it is never replaced by the
    current time. Moments in the future (clock skew) clamp to 0.
    """
    if moment is None:
        return UNKNOWN_ACTIVITY, 0

    if now is None:
        now = utc_now()

    ms_ago = max(0, int((now - moment).total_seconds() * 1000))
    return relative_time_label(ms_ago), ms_ago
