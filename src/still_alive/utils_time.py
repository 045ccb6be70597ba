from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_hours(dt: datetime, hours: int) -> datetime:
    return dt + timedelta(hours=hours)


def same_utc_day(a: datetime, b: datetime) -> bool:
    return ensure_utc(a).date() == ensure_utc(b).date()


def fmt_datetime(dt: datetime) -> str:
    """Render like ``Mar 04, 2026 - 9:05 PM`` (UTC)."""
    dt = ensure_utc(dt)
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{dt.strftime('%b %d, %Y')} - {hour}:{dt.minute:02d} {suffix}"
