from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable, NamedTuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from blood_scheduler.core.errors import ConflictError, NotFoundError, ValidationError
from blood_scheduler.db.session import transaction
from blood_scheduler.models.capacity import CapacitySlot, TimeSlot
from blood_scheduler.services.audit import log_event, snapshot_model

logger = logging.getLogger("blood_scheduler.capacity")


class HourWindow(NamedTuple):
    start_hour: int
    end_hour: int

    @property
    def key(self) -> str:
        return f"{self.start_hour}-{self.end_hour}"

    @property
    def label(self) -> str:
        return f"{_format_hour(self.start_hour)} - {_format_hour(self.end_hour)}"


def _format_hour(hour: int) -> str:
    if hour in (0, 24):
        return "12AM"
    if hour == 12:
        return "12PM"
    return f"{hour % 12}{'AM' if hour < 12 else 'PM'}"


TIME_SLOT_BOUNDS: dict[TimeSlot, tuple[int, int]] = {
    TimeSlot.morning: (6, 12),
    TimeSlot.afternoon: (12, 18),
    TimeSlot.evening: (18, 22),
}

STANDARD_HOUR_WINDOWS: dict[TimeSlot, list[HourWindow]] = {
    TimeSlot.morning: [HourWindow(7, 8), HourWindow(8, 9), HourWindow(9, 10), HourWindow(10, 11)],
    TimeSlot.afternoon: [
        HourWindow(13, 14),
        HourWindow(14, 15),
        HourWindow(15, 16),
        HourWindow(16, 17),
        HourWindow(17, 18),
    ],
    TimeSlot.evening: [HourWindow(18, 19)],
}


def _validate_definition(
    day_of_week: int,
    time_slot: TimeSlot,
    window: HourWindow,
    total_capacity: int,
    effective_date: date,
    expiry_date: date,
) -> None:
    if not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be 0-6 (0=Sunday)")
    if total_capacity < 0:
        raise ValidationError("total_capacity must not be negative")
    if expiry_date < effective_date:
        raise ValidationError("expiry_date must not be before effective_date")
    if not 0 <= window.start_hour < window.end_hour <= 24:
        raise ValidationError("Hour window must satisfy 0 <= start_hour < end_hour <= 24")
    low, high = TIME_SLOT_BOUNDS[time_slot]
    if window.start_hour < low or window.end_hour > high:
        raise ValidationError(
            f"Hour window {window.key} falls outside the {time_slot.value} period ({low}-{high})"
        )


def definition_lock_key(location_id: int, day_of_week: int, time_slot: TimeSlot) -> int:
    return (location_id << 8) | (day_of_week << 4) | list(TimeSlot).index(time_slot)


def _lock_definition(db: Session, location_id: int, day_of_week: int, time_slot: TimeSlot) -> None:
    """Serialise conflict check and insert for one location, weekday and period.

    PostgreSQL only; SQLite already queues writers behind BEGIN IMMEDIATE.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    key = definition_lock_key(location_id, day_of_week, time_slot)
    db.execute(select(func.pg_advisory_xact_lock(key)))


def find_conflict(
    db: Session,
    *,
    location_id: int,
    day_of_week: int,
    time_slot: TimeSlot,
    window: HourWindow,
    effective_date: date,
    expiry_date: date,
    exclude_id: int | None = None,
) -> CapacitySlot | None:
    stmt = select(CapacitySlot).where(
        CapacitySlot.location_id == location_id,
        CapacitySlot.day_of_week == day_of_week,
        CapacitySlot.time_slot == time_slot,
        CapacitySlot.is_active.is_(True),
        CapacitySlot.start_hour < window.end_hour,
        CapacitySlot.end_hour > window.start_hour,
        CapacitySlot.effective_date <= expiry_date,
        CapacitySlot.expiry_date >= effective_date,
    )
    if exclude_id is not None:
        stmt = stmt.where(CapacitySlot.id != exclude_id)
    return db.scalars(stmt.limit(1)).first()


def _build_slot(
    db: Session,
    *,
    location_id: int,
    day_of_week: int,
    time_slot: TimeSlot,
    window: HourWindow,
    total_capacity: int,
    effective_date: date,
    expiry_date: date,
    notes: str | None,
    actor_user_id: int | None,
) -> CapacitySlot:
    _validate_definition(day_of_week, time_slot, window, total_capacity, effective_date, expiry_date)
    _lock_definition(db, location_id, day_of_week, time_slot)
    existing = find_conflict(
        db,
        location_id=location_id,
        day_of_week=day_of_week,
        time_slot=time_slot,
        window=window,
        effective_date=effective_date,
        expiry_date=expiry_date,
    )
    if existing:
        raise ConflictError(
            f"Active capacity slot {existing.id} already covers day {day_of_week} "
            f"{time_slot.value} {existing.hour_key} between "
            f"{existing.effective_date.isoformat()} and {existing.expiry_date.isoformat()}"
        )
    slot = CapacitySlot(
        location_id=location_id,
        day_of_week=day_of_week,
        time_slot=time_slot,
        start_hour=window.start_hour,
        end_hour=window.end_hour,
        total_capacity=total_capacity,
        effective_date=effective_date,
        expiry_date=expiry_date,
        is_active=True,
        notes=notes,
        created_by_user_id=actor_user_id,
        updated_by_user_id=actor_user_id,
    )
    db.add(slot)
    db.flush()
    log_event(
        db,
        actor_user_id=actor_user_id,
        action="capacity_slot.created",
        entity_type="capacity_slot",
        entity_id=slot.id,
        after_obj=slot,
    )
    return slot


def define_slot(
    db: Session,
    *,
    location_id: int,
    day_of_week: int,
    time_slot: TimeSlot,
    hour_window: HourWindow | tuple[int, int],
    total_capacity: int,
    effective_date: date,
    expiry_date: date,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> CapacitySlot:
    with transaction(db):
        slot = _build_slot(
            db,
            location_id=location_id,
            day_of_week=day_of_week,
            time_slot=time_slot,
            window=HourWindow(*hour_window),
            total_capacity=total_capacity,
            effective_date=effective_date,
            expiry_date=expiry_date,
            notes=notes,
            actor_user_id=actor_user_id,
        )
    logger.info(
        "Capacity slot %s defined: location=%s day=%s %s %s capacity=%s",
        slot.id,
        location_id,
        day_of_week,
        time_slot.value,
        slot.hour_key,
        total_capacity,
    )
    return slot


def define_weekly_slots(
    db: Session,
    *,
    location_id: int,
    days_of_week: Iterable[int],
    time_slots: Iterable[TimeSlot],
    total_capacity: int,
    effective_date: date,
    expiry_date: date,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> list[CapacitySlot]:
    """Define every standard hour window of ``time_slots`` on each day. All or nothing."""
    days = sorted(set(days_of_week))
    periods = list(dict.fromkeys(time_slots))
    if not days or not periods:
        raise ValidationError("At least one day and one time slot are required")
    created: list[CapacitySlot] = []
    with transaction(db):
        for day in days:
            for period in periods:
                for window in STANDARD_HOUR_WINDOWS[period]:
                    created.append(
                        _build_slot(
                            db,
                            location_id=location_id,
                            day_of_week=day,
                            time_slot=period,
                            window=window,
                            total_capacity=total_capacity,
                            effective_date=effective_date,
                            expiry_date=expiry_date,
                            notes=notes,
                            actor_user_id=actor_user_id,
                        )
                    )
    logger.info("Defined %s weekly capacity slots for location %s", len(created), location_id)
    return created


def get_slot(db: Session, slot_id: int) -> CapacitySlot:
    slot = db.get(CapacitySlot, slot_id)
    if not slot:
        raise NotFoundError(f"Capacity slot {slot_id} not found")
    return slot


def get_slot_for_location(db: Session, location_id: int, slot_id: int) -> CapacitySlot:
    slot = get_slot(db, slot_id)
    if slot.location_id != location_id:
        raise NotFoundError(f"Capacity slot {slot_id} not found at location {location_id}")
    return slot


def update_slot(
    db: Session,
    slot_id: int,
    *,
    total_capacity: int | None = None,
    notes: str | None = None,
    is_active: bool | None = None,
    actor_user_id: int | None = None,
) -> CapacitySlot:
    if total_capacity is not None and total_capacity < 0:
        raise ValidationError("total_capacity must not be negative")
    with transaction(db):
        slot = get_slot(db, slot_id)
        if is_active and not slot.is_active:
            _lock_definition(db, slot.location_id, slot.day_of_week, slot.time_slot)
            existing = find_conflict(
                db,
                location_id=slot.location_id,
                day_of_week=slot.day_of_week,
                time_slot=slot.time_slot,
                window=HourWindow(slot.start_hour, slot.end_hour),
                effective_date=slot.effective_date,
                expiry_date=slot.expiry_date,
                exclude_id=slot.id,
            )
            if existing:
                raise ConflictError(f"Cannot reactivate: active capacity slot {existing.id} overlaps")
        before_data = snapshot_model(slot)
        if total_capacity is not None:
            slot.total_capacity = total_capacity
        if notes is not None:
            slot.notes = notes
        if is_active is not None:
            slot.is_active = is_active
        slot.updated_by_user_id = actor_user_id
        db.add(slot)
        log_event(
            db,
            actor_user_id=actor_user_id,
            action="capacity_slot.updated",
            entity_type="capacity_slot",
            entity_id=slot.id,
            before_data=before_data,
            after_obj=slot,
        )
    return slot


def deactivate(db: Session, slot_id: int, *, actor_user_id: int | None = None) -> CapacitySlot:
    with transaction(db):
        slot = get_slot(db, slot_id)
        if not slot.is_active:
            return slot
        before_data = snapshot_model(slot)
        slot.is_active = False
        slot.updated_by_user_id = actor_user_id
        db.add(slot)
        log_event(
            db,
            actor_user_id=actor_user_id,
            action="capacity_slot.deactivated",
            entity_type="capacity_slot",
            entity_id=slot.id,
            before_data=before_data,
            after_obj=slot,
        )
    logger.info("Capacity slot %s deactivated", slot_id)
    return slot


def list_slots_for_week(db: Session, location_id: int, week_start: date) -> list[CapacitySlot]:
    week_end = week_start + timedelta(days=6)
    stmt = (
        select(CapacitySlot)
        .where(
            CapacitySlot.location_id == location_id,
            CapacitySlot.effective_date <= week_end,
            CapacitySlot.expiry_date >= week_start,
        )
        .order_by(CapacitySlot.day_of_week, CapacitySlot.start_hour, CapacitySlot.id)
    )
    return list(db.scalars(stmt))
