from __future__ import annotations

import calendar
import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def epoch_seconds(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def month_bounds(dt: datetime) -> tuple[datetime, datetime]:
    """First instant and last second of the calendar month containing `dt` (UTC)."""
    dt = ensure_utc(dt)
    last_day = calendar.monthrange(dt.year, dt.month)[1]
    start = datetime(dt.year, dt.month, 1, tzinfo=timezone.utc)
    end = datetime(dt.year, dt.month, last_day, 23, 59, 59, tzinfo=timezone.utc)
    return start, end


def dt_to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")
