"""Per-slot reservation counters.

``reserve`` is a single conditional UPDATE (``reserved < capacity``), so two
writers can never both take the last place regardless of isolation level.
The only retried step is creating the counter row when two writers race to
insert it first.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blood_scheduler.core.errors import CapacityExhausted
from blood_scheduler.core.settings import settings
from blood_scheduler.models.capacity import CapacitySlot, SlotReservation

logger = logging.getLogger("blood_scheduler.capacity")


def _key_filter(location_id: int, slot_date: date, time_slot: str, start_hour: int, end_hour: int):
    return (
        SlotReservation.location_id == location_id,
        SlotReservation.slot_date == slot_date,
        SlotReservation.time_slot == time_slot,
        SlotReservation.start_hour == start_hour,
        SlotReservation.end_hour == end_hour,
    )


def _counter_id(db: Session, slot: CapacitySlot, slot_date: date, max_retries: int) -> int:
    key = _key_filter(slot.location_id, slot_date, slot.time_slot.value, slot.start_hour, slot.end_hour)
    for attempt in range(1, max_retries + 1):
        counter_id = db.scalar(select(SlotReservation.id).where(*key))
        if counter_id is not None:
            return counter_id
        try:
            with db.begin_nested():
                row = SlotReservation(
                    location_id=slot.location_id,
                    slot_date=slot_date,
                    time_slot=slot.time_slot.value,
                    start_hour=slot.start_hour,
                    end_hour=slot.end_hour,
                    reserved=0,
                )
                db.add(row)
            return row.id
        except IntegrityError:
            logger.info(
                "Reservation counter insert raced for slot %s on %s (attempt %s)",
                slot.id,
                slot_date,
                attempt,
            )
    raise CapacityExhausted(
        f"Could not secure a reservation for slot {slot.id} on {slot_date.isoformat()}"
    )


def reserve(db: Session, slot: CapacitySlot, slot_date: date, max_retries: int | None = None) -> None:
    counter_id = _counter_id(db, slot, slot_date, max_retries or settings.reservation_max_retries)
    result = db.execute(
        update(SlotReservation)
        .where(SlotReservation.id == counter_id, SlotReservation.reserved < slot.total_capacity)
        .values(reserved=SlotReservation.reserved + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise CapacityExhausted(
            f"No capacity left for {slot.time_slot.value} {slot.hour_key} "
            f"on {slot_date.isoformat()} (capacity {slot.total_capacity})"
        )


def release(
    db: Session,
    *,
    location_id: int,
    slot_date: date,
    time_slot: str,
    start_hour: int,
    end_hour: int,
) -> None:
    result = db.execute(
        update(SlotReservation)
        .where(
            *_key_filter(location_id, slot_date, time_slot, start_hour, end_hour),
            SlotReservation.reserved > 0,
        )
        .values(reserved=SlotReservation.reserved - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "No reservation to release for location %s %s %s %s-%s",
            location_id,
            slot_date,
            time_slot,
            start_hour,
            end_hour,
        )


def reserved_count(db: Session, slot: CapacitySlot, slot_date: date) -> int:
    key = _key_filter(slot.location_id, slot_date, slot.time_slot.value, slot.start_hour, slot.end_hour)
    return db.scalar(select(SlotReservation.reserved).where(*key)) or 0
