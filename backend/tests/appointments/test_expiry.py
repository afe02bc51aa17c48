from datetime import date, datetime, timedelta, timezone

import pytest

from blood_scheduler.core.errors import InvalidStateTransition
from blood_scheduler.models import AppointmentStatus, RequestType
from blood_scheduler.services import appointments
from blood_scheduler.services.appointments import AppointmentFilters
from blood_scheduler.services.audit import list_events
from blood_scheduler.services.reservations import reserved_count

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
TUESDAY = date(2024, 6, 4)


def _assign(db, slot, donor_id, hours=24):
    return appointments.create_request(
        db,
        donor_id=donor_id,
        capacity_slot_id=slot.id,
        slot_date=TUESDAY,
        request_type=RequestType.staff_assignment,
        initiated_by_user_id=50,
        auto_expire_hours=hours,
        now=NOW,
    )


def test_request_is_live_until_its_deadline(db, make_slot):
    slot = make_slot()
    appt = _assign(db, slot, donor_id=1)

    just_before = NOW + timedelta(hours=23, minutes=59)
    assert appointments.get_request(db, appt.id, now=just_before).status == AppointmentStatus.pending
    assert reserved_count(db, slot, TUESDAY) == 1


def test_reading_a_stale_request_expires_it(db, make_slot):
    slot = make_slot()
    appt = _assign(db, slot, donor_id=1)

    expired = appointments.get_request(db, appt.id, now=NOW + timedelta(hours=25))

    assert expired.status == AppointmentStatus.expired
    assert expired.cancelled_time is not None
    assert reserved_count(db, slot, TUESDAY) == 0
    assert list_events(db, "appointment", appt.id)[0].action == "appointment.expired"


def test_refused_action_does_not_undo_expiry(db, make_slot):
    slot = make_slot()
    appt = _assign(db, slot, donor_id=1)
    later = NOW + timedelta(hours=30)

    with pytest.raises(InvalidStateTransition) as excinfo:
        appointments.donor_respond(db, appt.id, accepted=True, now=later)
    assert excinfo.value.current == "expired"

    db.expire_all()
    assert appointments.get_request(db, appt.id, now=later).status == AppointmentStatus.expired
    assert reserved_count(db, slot, TUESDAY) == 0


def test_accepted_assignment_never_expires(db, make_slot):
    slot = make_slot()
    appt = _assign(db, slot, donor_id=1)
    appointments.donor_respond(db, appt.id, accepted=True, now=NOW)

    later = appointments.get_request(db, appt.id, now=NOW + timedelta(days=3))

    assert later.status == AppointmentStatus.pending
    assert later.expires_at is None


def test_sweep_expires_only_stale_pending_requests(db, make_slot):
    slot = make_slot(total_capacity=4)
    first = _assign(db, slot, donor_id=1, hours=2)
    second = _assign(db, slot, donor_id=2, hours=2)
    long_lived = _assign(db, slot, donor_id=3, hours=72)
    accepted = _assign(db, slot, donor_id=4, hours=2)
    appointments.donor_respond(db, accepted.id, accepted=True, now=NOW)

    expired = appointments.expire_stale_requests(db, now=NOW + timedelta(hours=3))

    assert expired == 2
    assert reserved_count(db, slot, TUESDAY) == 2
    statuses = {
        appt.id: appt.status
        for appt in appointments.list_requests(db, AppointmentFilters(), now=NOW + timedelta(hours=3))
    }
    assert statuses[first.id] == AppointmentStatus.expired
    assert statuses[second.id] == AppointmentStatus.expired
    assert statuses[long_lived.id] == AppointmentStatus.pending
    assert statuses[accepted.id] == AppointmentStatus.pending
    assert appointments.expire_stale_requests(db, now=NOW + timedelta(hours=3)) == 0


def test_listing_expires_stale_requests_first(db, make_slot):
    slot = make_slot()
    appt = _assign(db, slot, donor_id=1)

    pending = appointments.list_requests(
        db, AppointmentFilters(status=AppointmentStatus.pending), now=NOW + timedelta(days=2)
    )

    assert pending == []
    assert appointments.get_request(db, appt.id, now=NOW).status == AppointmentStatus.expired
