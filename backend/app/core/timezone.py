"""
Centralized timezone utilities for consistent timestamp handling.

All timestamps are stored in UTC. API responses carry a 'Z' suffix so the
frontend converts them to the user's local timezone for display.
"""

from datetime import datetime, date
import pytz

UTC = pytz.UTC


def now_utc() -> datetime:
    """Get current time in UTC (timezone-aware)."""
    return datetime.now(UTC)


def today_utc() -> date:
    """Get the current calendar date in UTC."""
    return now_utc().date()


def format_datetime_for_api(dt: datetime | None) -> str | None:
    """
    Convert a datetime to UTC ISO string for API responses.

    Naive datetimes are assumed to already be UTC (SQLite drops tzinfo on
    the way back out). Returns format: "2026-01-06T20:43:50.245704Z"
    """
    if dt is None:
        return None

    if dt.tzinfo is not None:
        return dt.astimezone(UTC).isoformat().replace('+00:00', 'Z')

    return dt.isoformat() + 'Z'


def parse_date_input(value: str) -> date:
    """
    Parse an ISO date or datetime string into a UTC calendar date.

    Accepts "2024-01-31", "2024-01-31T10:00:00" and "2024-01-31T10:00:00Z".
    Raises ValueError when the string is not ISO formatted.
    """
    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)

    parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC)
    return parsed.date()
