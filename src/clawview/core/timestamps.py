"""
Timestamp helpers.

Facts are ordered and windowed by integer epoch milliseconds; records also
carry the ISO-8601 UTC form for humans and the dashboard. Upstream sources
are inconsistent (ISO strings, epoch seconds with a fraction, epoch ms), so
everything goes through ``to_ms`` first.

STDLIB ONLY - NO PYDANTIC.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

# Anything below this is epoch seconds (1e12 ms is September 2001).
_SECONDS_CUTOFF = 1e12


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def to_ms(value: Any) -> int | None:
    """Parse a timestamp into epoch milliseconds.

    Accepts epoch milliseconds, epoch seconds (int or float, anything below
    1e12), numeric strings, ISO-8601 strings (``Z`` suffix allowed) and
    ``datetime`` objects. Returns ``None`` for anything unparseable.

    >>> to_ms(1772276268409)
    1772276268409
    >>> to_ms(1772276268.409)
    1772276268409
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=UTC)
        return int(dt.timestamp() * 1000)
    if isinstance(value, (int, float)):
        if value != value or value <= 0:  # NaN or non-positive
            return None
        if value < _SECONDS_CUTOFF:
            return int(round(value * 1000))
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return to_ms(float(text))
    except ValueError:
        pass
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    return to_ms(dt)


def iso_from_ms(ms: int) -> str:
    """Render epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    dt = datetime.fromtimestamp(ms / 1000, tz=UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms % 1000:03d}Z"


def day_tag(ms: int) -> str:
    """UTC calendar date of ``ms`` as ``YYYY-MM-DD`` (snapshot partition key)."""
    return datetime.fromtimestamp(ms / 1000, tz=UTC).strftime("%Y-%m-%d")


def local_day_range_ms(reference_ms: int, tz: str) -> tuple[int, int]:
    """Start (inclusive) and end (exclusive) of the local calendar day.

    The bounds are computed in ``tz`` and converted back to epoch ms, so a
    day that spans a DST change is 23 or 25 hours long.
    """
    zone = ZoneInfo(tz)
    local = datetime.fromtimestamp(reference_ms / 1000, tz=zone)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000)


__all__ = [
    "MINUTE_MS",
    "HOUR_MS",
    "DAY_MS",
    "now_ms",
    "to_ms",
    "iso_from_ms",
    "day_tag",
    "local_day_range_ms",
]
