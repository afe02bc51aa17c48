from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.orm import Session

from blood_scheduler.core.clock import utcnow
from blood_scheduler.core.errors import (
    AssignmentFailed,
    InvalidStateTransition,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from blood_scheduler.core.settings import settings
from blood_scheduler.db.session import transaction
from blood_scheduler.models.appointment import AppointmentRequest, RequestType
from blood_scheduler.models.blood_request import BloodRequest, BloodRequestStatus
from blood_scheduler.services.appointments import create_request
from blood_scheduler.services.audit import log_event, snapshot_model
from blood_scheduler.services.outbound import BloodRequestStatusChanged, emit_notice

logger = logging.getLogger("blood_scheduler.assignment")

ASSIGNABLE_STATUSES = (BloodRequestStatus.pending, BloodRequestStatus.processing)


@dataclass
class AssignmentOutcome:
    successes: list[AppointmentRequest] = field(default_factory=list)
    failures: list[tuple[int, SchedulingError]] = field(default_factory=list)


def auto_expire_hours_for(blood_request: BloodRequest) -> int:
    if blood_request.is_emergency:
        return settings.emergency_auto_expire_hours
    return settings.regular_auto_expire_hours


def get_blood_request(db: Session, blood_request_id: int) -> BloodRequest:
    blood_request = db.get(BloodRequest, blood_request_id)
    if not blood_request:
        raise NotFoundError(f"Blood request {blood_request_id} not found")
    return blood_request


def assign_donors(
    db: Session,
    *,
    blood_request_id: int,
    donor_ids: list[int],
    capacity_slot_id: int,
    slot_date: date,
    priority: int | None = None,
    initiated_by_user_id: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> AssignmentOutcome:
    """Create one staff assignment per donor against a single slot.

    Donors are handled independently; a failure for one never stops the
    rest. Raises ``AssignmentFailed`` when nobody could be assigned.
    """
    donors = list(dict.fromkeys(donor_ids))
    if not donors:
        raise ValidationError("At least one donor is required")
    now = now or utcnow()

    blood_request = get_blood_request(db, blood_request_id)
    if blood_request.status not in ASSIGNABLE_STATUSES:
        raise InvalidStateTransition(
            blood_request.status, BloodRequestStatus.processing, "blood request is closed"
        )
    is_urgent = blood_request.is_urgent
    expire_hours = auto_expire_hours_for(blood_request)
    blood_group_id = blood_request.blood_group_id
    component_type_id = blood_request.component_type_id

    outcome = AssignmentOutcome()
    for donor_id in donors:
        try:
            appt = create_request(
                db,
                donor_id=donor_id,
                capacity_slot_id=capacity_slot_id,
                slot_date=slot_date,
                request_type=RequestType.staff_assignment,
                initiated_by_user_id=initiated_by_user_id,
                blood_group_id=blood_group_id,
                component_type_id=component_type_id,
                is_urgent=is_urgent,
                priority=priority,
                related_blood_request_id=blood_request_id,
                auto_expire_hours=expire_hours,
                notes=notes,
                now=now,
            )
        except SchedulingError as exc:
            logger.info(
                "Donor %s not assigned to blood request %s: %s", donor_id, blood_request_id, exc.message
            )
            outcome.failures.append((donor_id, exc))
            continue
        outcome.successes.append(appt)

    if not outcome.successes:
        logger.warning(
            "No donors assigned to blood request %s (%s failure(s))",
            blood_request_id,
            len(outcome.failures),
        )
        raise AssignmentFailed(outcome.failures)

    _mark_processing(db, blood_request_id, len(outcome.successes), initiated_by_user_id)
    return outcome


def _mark_processing(
    db: Session, blood_request_id: int, assigned: int, actor_user_id: int | None
) -> None:
    note = f"{assigned} donor(s) assigned"
    with transaction(db):
        blood_request = get_blood_request(db, blood_request_id)
        previous = blood_request.status
        before_data = snapshot_model(blood_request)
        blood_request.status = BloodRequestStatus.processing
        blood_request.status_note = note
        db.add(blood_request)
        log_event(
            db,
            actor_user_id=actor_user_id,
            action="blood_request.donors_assigned",
            entity_type="blood_request",
            entity_id=blood_request.id,
            before_data=before_data,
            after_obj=blood_request,
        )
    logger.info("Blood request %s now processing: %s", blood_request_id, note)
    if previous == BloodRequestStatus.processing:
        return
    emit_notice(
        BloodRequestStatusChanged(
            blood_request_id=blood_request_id,
            previous_status=previous.value,
            status=BloodRequestStatus.processing.value,
            note=note,
        )
    )
