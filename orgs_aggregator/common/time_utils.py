"""UTC-focused helpers for run metadata and source timestamps."""

from __future__ import annotations

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_timestamp_iso() -> str:
    return utc_now().isoformat(timespec="milliseconds")


def normalise_timestamp(value: str | datetime | date) -> str:
    """Render a fetch timestamp as a UTC ISO datetime with millisecond precision.

    Naive values are assumed to already be UTC. Plain dates become midnight.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def timestamp_sort_key(value: str) -> datetime:
    return datetime.fromisoformat(value)
