from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest
from sqlalchemy import func, select

from blood_scheduler.core.errors import ConflictError, NotFoundError, ValidationError
from blood_scheduler.models import CapacitySlot, TimeSlot
from blood_scheduler.services import capacity
from blood_scheduler.services.audit import list_events


def _slot_count(db) -> int:
    return db.scalar(select(func.count()).select_from(CapacitySlot))


def test_define_slot_persists_and_audits(db, make_slot):
    slot = make_slot(total_capacity=4, notes="Main hall")

    stored = db.get(CapacitySlot, slot.id)
    assert stored.is_active is True
    assert stored.hour_key == "7-8"
    assert stored.total_capacity == 4
    assert stored.created_by_user_id == 1

    events = list_events(db, "capacity_slot", slot.id)
    assert [event.action for event in events] == ["capacity_slot.created"]
    assert events[0].after_json["time_slot"] == "morning"


def test_overlapping_active_slot_is_rejected(db, make_slot):
    make_slot()
    with pytest.raises(ConflictError):
        make_slot(hour_window=(7, 9), effective_date=date(2024, 6, 1), expiry_date=date(2025, 6, 1))
    assert _slot_count(db) == 1


def test_adjacent_windows_and_disjoint_dates_do_not_conflict(db, make_slot):
    make_slot()
    make_slot(hour_window=(8, 9))
    make_slot(effective_date=date(2025, 1, 1), expiry_date=date(2025, 12, 31))
    make_slot(day_of_week=3)
    assert _slot_count(db) == 4


def test_deactivated_slot_frees_the_definition(db, make_slot):
    first = make_slot()
    capacity.deactivate(db, first.id, actor_user_id=2)
    replacement = make_slot(total_capacity=3)

    assert replacement.id != first.id
    with pytest.raises(ConflictError):
        capacity.update_slot(db, first.id, is_active=True, actor_user_id=2)
    assert db.get(CapacitySlot, first.id).is_active is False


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"time_slot": TimeSlot.afternoon, "hour_window": (11, 13)}, "outside the afternoon"),
        ({"hour_window": (9, 8)}, "start_hour < end_hour"),
        ({"expiry_date": date(2023, 12, 31)}, "expiry_date"),
        ({"total_capacity": -1}, "negative"),
        ({"day_of_week": 7}, "day_of_week"),
    ],
)
def test_invalid_definitions_are_rejected(db, make_slot, overrides, message):
    with pytest.raises(ValidationError) as excinfo:
        make_slot(**overrides)
    assert message in excinfo.value.message
    assert _slot_count(db) == 0


def test_define_weekly_slots_uses_standard_windows(db):
    created = capacity.define_weekly_slots(
        db,
        location_id=10,
        days_of_week=[2, 1, 2],
        time_slots=[TimeSlot.morning, TimeSlot.evening],
        total_capacity=5,
        effective_date=date(2024, 1, 1),
        expiry_date=date(2024, 12, 31),
        actor_user_id=1,
    )

    assert len(created) == 2 * (4 + 1)
    keys = {(slot.day_of_week, slot.time_slot, slot.hour_key) for slot in created}
    assert (1, TimeSlot.morning, "7-8") in keys
    assert (2, TimeSlot.morning, "10-11") in keys
    assert (2, TimeSlot.evening, "18-19") in keys


def test_define_weekly_slots_is_all_or_nothing(db, make_slot):
    make_slot(hour_window=(9, 10))
    with pytest.raises(ConflictError):
        capacity.define_weekly_slots(
            db,
            location_id=10,
            days_of_week=[1, 2],
            time_slots=[TimeSlot.morning],
            total_capacity=5,
            effective_date=date(2024, 1, 1),
            expiry_date=date(2024, 12, 31),
        )
    assert _slot_count(db) == 1


def test_update_slot_changes_capacity_and_records_before_state(db, make_slot):
    slot = make_slot(total_capacity=2)
    updated = capacity.update_slot(db, slot.id, total_capacity=6, notes="Extra nurse", actor_user_id=3)

    assert updated.total_capacity == 6
    assert updated.notes == "Extra nurse"
    assert updated.updated_by_user_id == 3
    latest = list_events(db, "capacity_slot", slot.id)[0]
    assert latest.action == "capacity_slot.updated"
    assert latest.before_json["total_capacity"] == 2
    assert latest.after_json["total_capacity"] == 6


def test_update_unknown_slot_is_not_found(db):
    with pytest.raises(NotFoundError):
        capacity.update_slot(db, 999, total_capacity=1)


def test_list_slots_for_week_includes_deactivated_slots(db, make_slot):
    active = make_slot()
    inactive = make_slot(day_of_week=4)
    capacity.deactivate(db, inactive.id)
    make_slot(day_of_week=5, effective_date=date(2025, 1, 1), expiry_date=date(2025, 2, 1))

    listed = capacity.list_slots_for_week(db, 10, date(2024, 6, 2))

    assert [slot.id for slot in listed] == [active.id, inactive.id]
    assert capacity.list_slots_for_week(db, 11, date(2024, 6, 2)) == []


def test_parallel_definitions_of_one_window_create_a_single_slot(db, session_factory):
    # Worker sessions need the write lock this session would hold.
    db.rollback()

    def define(actor_id):
        session = session_factory()
        try:
            slot = capacity.define_slot(
                session,
                location_id=10,
                day_of_week=2,
                time_slot=TimeSlot.morning,
                hour_window=(7, 8),
                total_capacity=3,
                effective_date=date(2024, 1, 1),
                expiry_date=date(2024, 12, 31),
                actor_user_id=actor_id,
            )
            return slot.id
        except ConflictError:
            return None
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(define, range(1, 7)))

    assert len([result for result in results if result is not None]) == 1
    assert results.count(None) == 5
    db.expire_all()
    assert _slot_count(db) == 1


def test_definition_lock_keys_are_distinct_per_period():
    keys = {
        capacity.definition_lock_key(location_id, day, period)
        for location_id in (1, 2, 300)
        for day in range(7)
        for period in TimeSlot
    }
    assert len(keys) == 3 * 7 * len(TimeSlot)
