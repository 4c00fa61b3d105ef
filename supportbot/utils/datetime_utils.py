"""Datetime utilities for consistent UTC handling."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Get current UTC time as a naive datetime.

    Columns are stored without tzinfo (SQLite drops it), so every timestamp the
    app writes or compares against goes through this helper.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
