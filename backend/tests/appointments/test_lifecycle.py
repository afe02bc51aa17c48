from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from blood_scheduler.core.errors import (
    CapacityExhausted,
    ConflictError,
    InvalidStateTransition,
    NotFoundError,
    SlotUnavailable,
    ValidationError,
)
from blood_scheduler.models import AppointmentStatus, DonationEventStatus, RequestType, TimeSlot
from blood_scheduler.services import appointments, capacity, outbound
from blood_scheduler.services.appointments import AppointmentFilters
from blood_scheduler.services.audit import list_events
from blood_scheduler.services.reservations import reserved_count

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
TUESDAY = date(2024, 6, 4)
# 07:30 in the facility zone, inside the 7-8 window.
DURING_WINDOW = datetime(2024, 6, 4, 0, 30, tzinfo=timezone.utc)


def _book(db, slot, donor_id=1, **kwargs):
    kwargs.setdefault("now", NOW)
    return appointments.create_request(
        db, donor_id=donor_id, capacity_slot_id=slot.id, slot_date=TUESDAY, **kwargs
    )


def _assign(db, slot, donor_id=1, **kwargs):
    return _book(
        db,
        slot,
        donor_id=donor_id,
        request_type=RequestType.staff_assignment,
        initiated_by_user_id=50,
        auto_expire_hours=24,
        **kwargs,
    )


def test_donor_request_reserves_capacity(db, make_slot):
    slot = make_slot(total_capacity=2)
    appt = _book(db, slot, blood_group_id=3)

    assert appt.status == AppointmentStatus.pending
    assert appt.request_type == RequestType.donor_initiated
    assert appt.preferred_time_slot == TimeSlot.morning
    assert (appt.start_hour, appt.end_hour) == (7, 8)
    assert appt.location_id == slot.location_id
    assert appt.priority == 3
    assert appt.expires_at is None
    assert reserved_count(db, slot, TUESDAY) == 1
    assert [event.action for event in list_events(db, "appointment", appt.id)] == ["appointment.created"]


def test_full_slot_raises_capacity_exhausted(db, make_slot):
    slot = make_slot(total_capacity=1)
    _book(db, slot, donor_id=1)

    with pytest.raises(CapacityExhausted):
        _book(db, slot, donor_id=2)
    assert reserved_count(db, slot, TUESDAY) == 1


def test_zero_capacity_slot_accepts_nobody(db, make_slot):
    slot = make_slot(total_capacity=0)
    with pytest.raises(CapacityExhausted):
        _book(db, slot)


def test_donor_cannot_hold_two_open_requests_on_one_day(db, make_slot):
    slot = make_slot(total_capacity=5)
    other = make_slot(hour_window=(9, 10), total_capacity=5)
    _book(db, slot, donor_id=7)

    with pytest.raises(ConflictError):
        _book(db, other, donor_id=7)
    assert reserved_count(db, other, TUESDAY) == 0


@pytest.mark.parametrize(
    "slot_date, now",
    [
        (date(2024, 6, 5), NOW),
        (date(2025, 6, 3), NOW),
        (TUESDAY, DURING_WINDOW),
        (date(2024, 5, 28), NOW),
    ],
)
def test_unbookable_dates_raise_slot_unavailable(db, make_slot, slot_date, now):
    slot = make_slot()
    with pytest.raises(SlotUnavailable):
        appointments.create_request(
            db, donor_id=1, capacity_slot_id=slot.id, slot_date=slot_date, now=now
        )


def test_past_check_uses_the_given_zone(db, make_slot):
    slot = make_slot()
    # 03:00 UTC is 10:00 at the facility, after the 7-8 window has started.
    ten_local = datetime(2024, 6, 4, 3, tzinfo=timezone.utc)
    with pytest.raises(SlotUnavailable):
        _book(db, slot, now=ten_local)

    appt = _book(db, slot, now=ten_local, zone=ZoneInfo("UTC"))
    assert appt.status == AppointmentStatus.pending
    assert reserved_count(db, slot, TUESDAY) == 1


def test_deactivated_slot_cannot_be_booked(db, make_slot):
    slot = make_slot()
    capacity.deactivate(db, slot.id)
    with pytest.raises(SlotUnavailable):
        _book(db, slot)


def test_unknown_slot_is_not_found(db):
    with pytest.raises(NotFoundError):
        appointments.create_request(db, donor_id=1, capacity_slot_id=404, slot_date=TUESDAY, now=NOW)


def test_request_validation(db, make_slot):
    slot = make_slot(total_capacity=3)
    with pytest.raises(ValidationError):
        _book(db, slot, priority=6)
    with pytest.raises(ValidationError):
        _book(db, slot, request_type=RequestType.walk_in)
    with pytest.raises(ValidationError):
        _book(db, slot, auto_expire_hours=0)
    assert reserved_count(db, slot, TUESDAY) == 0


def test_approve_confirms_the_booking(db, make_slot):
    slot = make_slot()
    appt = _book(db, slot)
    approved = appointments.approve(db, appt.id, reviewer_id=9, note="See you", now=NOW)

    assert approved.status == AppointmentStatus.approved
    assert approved.reviewed_by_user_id == 9
    assert approved.review_notes == "See you"
    assert approved.confirmed_date == TUESDAY
    assert approved.confirmed_time_slot == TimeSlot.morning
    assert approved.confirmed_location_id == slot.location_id
    assert reserved_count(db, slot, TUESDAY) == 1


def test_reject_releases_capacity(db, make_slot):
    slot = make_slot(total_capacity=1)
    appt = _book(db, slot, donor_id=1)

    with pytest.raises(ValidationError):
        appointments.reject(db, appt.id, reviewer_id=9, reason="  ", now=NOW)
    rejected = appointments.reject(db, appt.id, reviewer_id=9, reason="Low iron last visit", now=NOW)

    assert rejected.status == AppointmentStatus.rejected
    assert rejected.rejection_reason == "Low iron last visit"
    assert reserved_count(db, slot, TUESDAY) == 0
    assert _book(db, slot, donor_id=2).status == AppointmentStatus.pending


def test_cancel_approved_request_releases_capacity(db, make_slot):
    slot = make_slot()
    appt = _book(db, slot)
    appointments.approve(db, appt.id, reviewer_id=9, now=NOW)
    cancelled = appointments.cancel(db, appt.id, reason="Travelling", actor_user_id=1, now=NOW)

    assert cancelled.status == AppointmentStatus.cancelled
    assert cancelled.cancellation_reason == "Travelling"
    assert cancelled.cancelled_time is not None
    assert reserved_count(db, slot, TUESDAY) == 0


def test_terminal_requests_refuse_further_transitions(db, make_slot):
    slot = make_slot()
    appt = _book(db, slot)
    appointments.reject(db, appt.id, reviewer_id=9, reason="Duplicate", now=NOW)

    with pytest.raises(InvalidStateTransition) as excinfo:
        appointments.approve(db, appt.id, reviewer_id=9, now=NOW)
    assert excinfo.value.current == "rejected"
    assert excinfo.value.target == "approved"
    with pytest.raises(InvalidStateTransition):
        appointments.cancel(db, appt.id, now=NOW)
    assert appointments.get_request(db, appt.id, now=NOW).status == AppointmentStatus.rejected
    assert reserved_count(db, slot, TUESDAY) == 0


def test_check_in_opens_a_donation_event(db, make_slot):
    slot = make_slot()
    appt = _book(db, slot)

    with pytest.raises(InvalidStateTransition):
        appointments.check_in(db, appt.id, staff_id=5, now=NOW)

    appointments.approve(db, appt.id, reviewer_id=9, now=NOW)
    checked_in = appointments.check_in(db, appt.id, staff_id=5, notes="Arrived early", now=DURING_WINDOW)

    assert checked_in.status == AppointmentStatus.checked_in
    assert checked_in.check_in_time is not None
    event = checked_in.donation_event
    assert event.status == DonationEventStatus.pending
    assert event.staff_id == 5
    assert event.donor_id == appt.donor_id
    assert event.notes == "Arrived early"


def test_fail_after_check_in_keeps_capacity_consumed(db, make_slot):
    slot = make_slot()
    appt = _book(db, slot)
    appointments.approve(db, appt.id, reviewer_id=9, now=NOW)
    appointments.check_in(db, appt.id, staff_id=5, now=NOW)

    failed = appointments.fail(db, appt.id, reason="Donor left", actor_user_id=5, now=NOW)

    assert failed.status == AppointmentStatus.failed
    assert failed.rejection_reason == "Donor left"
    assert failed.completed_time is not None
    assert failed.donation_event.status == DonationEventStatus.failed
    assert reserved_count(db, slot, TUESDAY) == 1


def test_staff_assignment_needs_donor_acceptance_before_approval(db, make_slot):
    slot = make_slot()
    appt = _assign(db, slot)
    assert appt.expires_at is not None
    assert appt.awaiting_donor_response is True

    with pytest.raises(InvalidStateTransition) as excinfo:
        appointments.approve(db, appt.id, reviewer_id=9, now=NOW)
    assert "donor has not accepted" in excinfo.value.message

    accepted = appointments.donor_respond(db, appt.id, accepted=True, notes="Happy to help", now=NOW)
    assert accepted.status == AppointmentStatus.pending
    assert accepted.donor_accepted is True
    assert accepted.expires_at is None

    with pytest.raises(InvalidStateTransition):
        appointments.donor_respond(db, appt.id, accepted=False, now=NOW)

    approved = appointments.approve(db, appt.id, reviewer_id=9, now=NOW)
    assert approved.status == AppointmentStatus.approved


def test_declined_assignment_is_rejected_and_releases_capacity(db, make_slot):
    slot = make_slot()
    appt = _assign(db, slot)
    declined = appointments.donor_respond(db, appt.id, accepted=False, notes="Away", now=NOW)

    assert declined.status == AppointmentStatus.rejected
    assert declined.donor_accepted is False
    assert declined.rejection_reason == "Donor declined"
    assert reserved_count(db, slot, TUESDAY) == 0


def test_donor_response_is_only_for_staff_assignments(db, make_slot):
    slot = make_slot(total_capacity=2)
    own_request = _book(db, slot, donor_id=1)
    assignment = _assign(db, slot, donor_id=2)

    with pytest.raises(ValidationError):
        appointments.donor_respond(db, own_request.id, accepted=True, now=NOW)
    with pytest.raises(ValidationError):
        appointments.donor_respond(db, assignment.id, accepted=True, donor_id=3, now=NOW)


def test_walk_in_is_checked_in_immediately(db, make_slot):
    slot = make_slot()
    appt = appointments.register_walk_in(
        db,
        donor_id=4,
        capacity_slot_id=slot.id,
        slot_date=TUESDAY,
        staff_id=5,
        now=DURING_WINDOW,
    )

    assert appt.request_type == RequestType.walk_in
    assert appt.status == AppointmentStatus.checked_in
    assert appt.donor_accepted is True
    assert appt.confirmed_date == TUESDAY
    assert appt.donation_event.status == DonationEventStatus.checked_in
    assert reserved_count(db, slot, TUESDAY) == 1


def test_walk_in_after_the_window_is_refused(db, make_slot):
    slot = make_slot()
    with pytest.raises(SlotUnavailable):
        appointments.register_walk_in(
            db,
            donor_id=4,
            capacity_slot_id=slot.id,
            slot_date=TUESDAY,
            staff_id=5,
            now=datetime(2024, 6, 4, 1, 30, tzinfo=timezone.utc),
        )


def test_urgent_request_notifies_subscribers(db, make_slot):
    notices = []
    outbound.subscribe_notifications(notices.append)
    slot = make_slot(total_capacity=2)

    _book(db, slot, donor_id=1)
    urgent = _book(db, slot, donor_id=2, is_urgent=True, priority=5)

    assert len(notices) == 1
    assert isinstance(notices[0], outbound.UrgentAppointmentCreated)
    assert notices[0].appointment_request_id == urgent.id
    assert notices[0].priority == 5


def test_list_requests_filters_and_orders_by_priority(db, make_slot):
    slot = make_slot(total_capacity=5)
    low = _book(db, slot, donor_id=1, priority=1)
    high = _book(db, slot, donor_id=2, priority=5)
    rejected = _book(db, slot, donor_id=3)
    appointments.reject(db, rejected.id, reviewer_id=9, reason="Ineligible", now=NOW)

    pending = appointments.list_requests(db, AppointmentFilters(status=AppointmentStatus.pending), now=NOW)
    assert [appt.id for appt in pending] == [high.id, low.id]

    by_donor = appointments.list_requests(db, AppointmentFilters(donor_id=3), now=NOW)
    assert [appt.id for appt in by_donor] == [rejected.id]

    out_of_range = appointments.list_requests(
        db, AppointmentFilters(start_date=date(2024, 7, 1)), now=NOW
    )
    assert out_of_range == []
