# envcache/core/clock.py
# -----------------------------------------------------------------------------
# Time helpers
# - services take a Clock callable so tests can pin "now"
# - all timestamps are timezone-aware UTC
# -----------------------------------------------------------------------------
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware UTC now; the default clock for every service."""
    return datetime.now(timezone.utc)


def iso_utc(ts: datetime | None) -> str | None:
    """ISO-8601 with 'Z' suffix, millisecond precision."""
    if ts is None:
        return None
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def hour_bucket(ts: datetime) -> datetime:
    return ts.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
