"""Shared utility functions for the service layer and request parsing.

parse_date_input:  strict date parsing (raises ValueError) for request fields
utcnow / today:    single source of "now" so tests can patch one place
"""
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    """Current calendar date (UTC)."""
    return utcnow().date()


def parse_date_input(value):
    """Parse a date value, raising ValueError on bad input.

    Supports: YYYY-MM-DD, full ISO-8601 datetimes (date part is kept),
    date objects. Empty input returns None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("Invalid date. Use ISO-8601 (YYYY-MM-DD).")
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ValueError("Invalid date. Use ISO-8601 (YYYY-MM-DD).") from exc
