"""Week grid projection of the capacity catalog.

Every caller (staff scheduling view, emergency and regular assignment, donor
self-service) builds its day/time-slot/hour view from ``resolve_grid``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, NamedTuple
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from blood_scheduler.core.clock import day_of_week_for, local_start, utcnow
from blood_scheduler.core.settings import settings
from blood_scheduler.models.capacity import CapacitySlot, TimeSlot
from blood_scheduler.services.capacity import (
    STANDARD_HOUR_WINDOWS,
    HourWindow,
    list_slots_for_week,
)


class GridKey(NamedTuple):
    day: date
    time_slot: TimeSlot
    hour_window: HourWindow


@dataclass(frozen=True)
class GridCell:
    capacity: CapacitySlot | None
    is_past: bool
    is_available: bool


def week_start_for(day: date) -> date:
    """Sunday on or before ``day``, matching the Sunday-based day_of_week."""
    return day - timedelta(days=day_of_week_for(day))


def previous_week(week_start: date) -> date:
    return week_start - timedelta(days=7)


def next_week(week_start: date) -> date:
    return week_start + timedelta(days=7)


def is_slot_past(day: date, start_hour: int, now: datetime, zone: ZoneInfo) -> bool:
    if now.tzinfo is None:
        now = now.replace(tzinfo=zone)
    return local_start(day, start_hour, zone) < now


def slot_applies_on(slot: CapacitySlot, day: date) -> bool:
    return slot.day_of_week == day_of_week_for(day) and slot.covers(day)


def _grid_windows(
    slots: Iterable[CapacitySlot],
    hour_windows: Mapping[TimeSlot, Iterable[HourWindow]],
) -> dict[TimeSlot, list[HourWindow]]:
    windows = {period: list(hour_windows.get(period, ())) for period in TimeSlot}
    for slot in slots:
        window = HourWindow(slot.start_hour, slot.end_hour)
        if window not in windows[slot.time_slot]:
            windows[slot.time_slot].append(window)
    for period in windows:
        windows[period].sort()
    return windows


def resolve_grid(
    slots: Iterable[CapacitySlot],
    week_start: date,
    now: datetime,
    zone: ZoneInfo,
    hour_windows: Mapping[TimeSlot, Iterable[HourWindow]] = STANDARD_HOUR_WINDOWS,
) -> dict[GridKey, GridCell]:
    slots = list(slots)
    windows = _grid_windows(slots, hour_windows)

    index: dict[tuple[int, TimeSlot, HourWindow], list[CapacitySlot]] = {}
    for slot in slots:
        key = (slot.day_of_week, slot.time_slot, HourWindow(slot.start_hour, slot.end_hour))
        index.setdefault(key, []).append(slot)

    grid: dict[GridKey, GridCell] = {}
    for offset in range(7):
        day = week_start + timedelta(days=offset)
        dow = day_of_week_for(day)
        for period in TimeSlot:
            for window in windows[period]:
                candidates = [
                    slot for slot in index.get((dow, period, window), []) if slot.covers(day)
                ]
                # An active rule wins over a deactivated one for the same cell.
                candidates.sort(key=lambda item: (not item.is_active, -item.id))
                capacity = candidates[0] if candidates else None
                is_past = is_slot_past(day, window.start_hour, now, zone)
                grid[GridKey(day, period, window)] = GridCell(
                    capacity=capacity,
                    is_past=is_past,
                    is_available=capacity is not None and capacity.is_active and not is_past,
                )
    return grid


def load_week_grid(
    db: Session,
    location_id: int,
    week_start: date,
    now: datetime | None = None,
    zone: ZoneInfo | None = None,
) -> dict[GridKey, GridCell]:
    slots = list_slots_for_week(db, location_id, week_start)
    return resolve_grid(slots, week_start, now or utcnow(), zone or settings.zone)
