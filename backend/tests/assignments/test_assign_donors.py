from datetime import date, datetime, timezone

import pytest

from blood_scheduler.core.errors import (
    AssignmentFailed,
    CapacityExhausted,
    ConflictError,
    InvalidStateTransition,
    ValidationError,
)
from blood_scheduler.core.settings import settings
from blood_scheduler.models import (
    AppointmentStatus,
    BloodRequestStatus,
    RequestType,
    UrgencyLevel,
)
from blood_scheduler.services import appointments, outbound
from blood_scheduler.services.assignment import assign_donors, get_blood_request
from blood_scheduler.services.audit import list_events
from blood_scheduler.services.reservations import reserved_count

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
TUESDAY = date(2024, 6, 4)


@pytest.fixture
def notices():
    received = []
    outbound.subscribe_notifications(received.append)
    return received


def _assign(db, blood_request, slot, donor_ids, **kwargs):
    return assign_donors(
        db,
        blood_request_id=blood_request.id,
        donor_ids=donor_ids,
        capacity_slot_id=slot.id,
        slot_date=TUESDAY,
        initiated_by_user_id=50,
        now=NOW,
        **kwargs,
    )


def test_partial_assignment_reports_each_failure(db, make_slot, make_blood_request, notices):
    slot = make_slot(total_capacity=2)
    blood_request = make_blood_request(urgency_level=UrgencyLevel.critical)

    outcome = _assign(db, blood_request, slot, [101, 102, 103])

    assert [appt.donor_id for appt in outcome.successes] == [101, 102]
    assert len(outcome.failures) == 1
    donor_id, error = outcome.failures[0]
    assert donor_id == 103
    assert isinstance(error, CapacityExhausted)
    assert reserved_count(db, slot, TUESDAY) == 2

    for appt in outcome.successes:
        assert appt.request_type == RequestType.staff_assignment
        assert appt.status == AppointmentStatus.pending
        assert appt.related_blood_request_id == blood_request.id
        assert appt.is_urgent is True
        assert appt.auto_expire_hours == settings.regular_auto_expire_hours
        assert appt.initiated_by_user_id == 50

    refreshed = get_blood_request(db, blood_request.id)
    assert refreshed.status == BloodRequestStatus.processing
    assert refreshed.status_note == "2 donor(s) assigned"
    assert list_events(db, "blood_request", blood_request.id)[0].action == "blood_request.donors_assigned"

    urgent = [n for n in notices if isinstance(n, outbound.UrgentAppointmentCreated)]
    status_changes = [n for n in notices if isinstance(n, outbound.BloodRequestStatusChanged)]
    assert len(urgent) == 2
    assert status_changes == [
        outbound.BloodRequestStatusChanged(
            blood_request_id=blood_request.id,
            previous_status="pending",
            status="processing",
            note="2 donor(s) assigned",
        )
    ]


def test_emergency_requests_use_the_short_response_window(db, make_slot, make_blood_request):
    slot = make_slot(total_capacity=1)
    blood_request = make_blood_request(is_emergency=True)

    outcome = _assign(db, blood_request, slot, [7])

    assert outcome.successes[0].auto_expire_hours == settings.emergency_auto_expire_hours
    assert outcome.successes[0].is_urgent is True


def test_routine_request_assignments_are_not_urgent(db, make_slot, make_blood_request):
    slot = make_slot(total_capacity=1)
    blood_request = make_blood_request(urgency_level=UrgencyLevel.low)

    outcome = _assign(db, blood_request, slot, [7], priority=2)

    assert outcome.successes[0].is_urgent is False
    assert outcome.successes[0].priority == 2


def test_all_failures_raise_and_leave_request_pending(db, make_slot, make_blood_request):
    slot = make_slot(total_capacity=0)
    blood_request = make_blood_request()

    with pytest.raises(AssignmentFailed) as excinfo:
        _assign(db, blood_request, slot, [1, 2])

    detail = excinfo.value.to_detail()
    assert [failure["donor_id"] for failure in detail["failures"]] == [1, 2]
    assert {failure["error"] for failure in detail["failures"]} == {"CapacityExhausted"}
    assert get_blood_request(db, blood_request.id).status == BloodRequestStatus.pending


def test_existing_booking_fails_only_that_donor(db, make_slot, make_blood_request):
    slot = make_slot(total_capacity=3)
    blood_request = make_blood_request()
    appointments.create_request(db, donor_id=5, capacity_slot_id=slot.id, slot_date=TUESDAY, now=NOW)

    outcome = _assign(db, blood_request, slot, [5, 6])

    assert [appt.donor_id for appt in outcome.successes] == [6]
    assert outcome.failures[0][0] == 5
    assert isinstance(outcome.failures[0][1], ConflictError)


def test_duplicate_donor_ids_are_assigned_once(db, make_slot, make_blood_request):
    slot = make_slot(total_capacity=3)
    blood_request = make_blood_request()

    outcome = _assign(db, blood_request, slot, [4, 4, 4])

    assert len(outcome.successes) == 1
    assert outcome.failures == []
    assert reserved_count(db, slot, TUESDAY) == 1


def test_processing_request_accepts_more_donors(db, make_slot, make_blood_request, notices):
    slot = make_slot(total_capacity=3)
    blood_request = make_blood_request()
    _assign(db, blood_request, slot, [1])

    outcome = _assign(db, blood_request, slot, [2])

    assert len(outcome.successes) == 1
    refreshed = get_blood_request(db, blood_request.id)
    assert refreshed.status == BloodRequestStatus.processing
    assert refreshed.status_note == "1 donor(s) assigned"
    actions = [event.action for event in list_events(db, "blood_request", blood_request.id)]
    assert actions == ["blood_request.donors_assigned", "blood_request.donors_assigned"]
    # Only the first assignment changed the status.
    status_changes = [n for n in notices if isinstance(n, outbound.BloodRequestStatusChanged)]
    assert [n.previous_status for n in status_changes] == ["pending"]


def test_closed_or_empty_requests_are_refused(db, make_slot, make_blood_request):
    slot = make_slot(total_capacity=3)
    fulfilled = make_blood_request(status=BloodRequestStatus.fulfilled)
    open_request = make_blood_request()

    with pytest.raises(InvalidStateTransition):
        _assign(db, fulfilled, slot, [1])
    with pytest.raises(ValidationError):
        _assign(db, open_request, slot, [])
    assert reserved_count(db, slot, TUESDAY) == 0
