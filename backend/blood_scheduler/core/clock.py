from __future__ import annotations

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_start(day: date, start_hour: int, zone: ZoneInfo) -> datetime:
    if start_hour >= 24:
        return datetime.combine(day, time.max, tzinfo=zone)
    return datetime.combine(day, time(start_hour, 0), tzinfo=zone)


def day_of_week_for(day: date) -> int:
    """Sunday-based weekday (0=Sunday ... 6=Saturday)."""
    return (day.weekday() + 1) % 7


def local_date(now: datetime, zone: ZoneInfo) -> date:
    """Calendar date at the facility; a naive ``now`` is already facility time."""
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(zone).date()
