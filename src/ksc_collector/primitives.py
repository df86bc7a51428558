"""Date helpers shared across the collector."""

import re
from datetime import datetime, timezone
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ISO_RE = re.compile(r"^\s*(\d{4}-\d{2}-\d{2})[T ](\d{2}:\d{2}:\d{2})")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def epoch_seconds(value: datetime) -> float:
    """Total seconds between the Unix epoch and *value*."""
    return (as_utc(value) - EPOCH).total_seconds()


def parse_iso_datetime(raw: Any) -> datetime | None:
    """
    Parse an ISO-ish timestamp string into an aware UTC datetime.
    Supports YYYY-MM-DDTHH:MM:SS, a space separator, fractions, offsets and a
    trailing Z. Returns None if unparseable.
    """
    if not isinstance(raw, str):
        return None

    clean = raw.strip().replace(" ", "T")
    if clean.endswith("Z"):
        clean = clean[:-1] + "+00:00"

    try:
        return as_utc(datetime.fromisoformat(clean))
    except ValueError:
        match = _ISO_RE.match(raw)
        if not match:
            return None
        try:
            dt = datetime.strptime(f"{match.group(1)} {match.group(2)}", "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return None
        return dt.replace(tzinfo=timezone.utc)


def ksc_datetime_literal(value: datetime) -> str:
    """Render *value* as a KSC search-filter datetime literal (UTC)."""
    return 'T"' + as_utc(value).strftime("%Y-%m-%d %H:%M:%S") + '"'
