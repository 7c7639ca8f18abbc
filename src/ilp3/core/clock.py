"""UTC clock and ISO-8601 timestamp helpers.

Timestamps on the wire use millisecond precision and a ``Z`` suffix,
e.g. ``2017-12-23T01:21:40.549Z``.  Parsing accepts any ISO-8601 form
understood by :meth:`datetime.fromisoformat`; values without an offset
are taken to be UTC.
"""
from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """Render *value* as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    text = value.astimezone(UTC).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Raises
    ------
    ValueError
        If *text* is not a valid ISO-8601 timestamp.
    """
    value = datetime.fromisoformat(text.strip())
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
