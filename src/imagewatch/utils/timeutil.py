"""Timestamp helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_naive(value: datetime | None) -> datetime | None:
    """Normalize a timestamp to naive UTC so stored and fetched values compare equal."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: str) -> datetime | None:
    """Parse an RFC 3339 timestamp, returning None when it cannot be read.

    Registry timestamps carry nanoseconds, which ``datetime`` cannot hold,
    so the fraction is cut to microseconds first.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits += rest[0]
            rest = rest[1:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"

    try:
        return utc_naive(datetime.fromisoformat(text))
    except ValueError:
        return None
