"""Datetime helpers shared across the application."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

__all__ = [
    "EPOCH",
    "display_datetime",
    "ensure_utc",
    "parse_timestamp",
]

LOGGER = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` in UTC, treating naive values as already UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: object, *, default: datetime = EPOCH) -> datetime:
    """Parse an ISO 8601 timestamp into an aware UTC ``datetime``.

    Backend payloads mix offsets, ``Z`` suffixes and bare local strings with
    micro- or millisecond precision. Bare strings are read as UTC. Values that
    cannot be parsed fall back to ``default`` so the result stays deterministic
    for a given input.
    """
    if isinstance(value, datetime):
        return ensure_utc(value) or default
    if not isinstance(value, str) or not value.strip():
        return default

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        LOGGER.warning("Invalid timestamp format: %r", value)
        return default
    return ensure_utc(parsed) or default


def display_datetime(value: datetime | None) -> str:
    """Return a compact local-time representation for terminal output."""
    if value is None:
        return "-"
    return value.astimezone().strftime("%b %d, %Y %I:%M %p")
