from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy.orm import Session

from blood_scheduler.core.clock import utcnow
from blood_scheduler.core.errors import InvalidStateTransition, NotFoundError, ValidationError
from blood_scheduler.db.session import transaction
from blood_scheduler.models.appointment import AppointmentStatus
from blood_scheduler.models.donation_event import DonationEvent, DonationEventStatus
from blood_scheduler.services.appointments import transition as transition_appointment
from blood_scheduler.services.audit import log_event, snapshot_model
from blood_scheduler.services.outbound import UnitsCollected, emit_units_collected

logger = logging.getLogger("blood_scheduler.workflow")

# Exactly one operation is legal from each non-terminal state.
NEXT_STEP: dict[DonationEventStatus, str] = {
    DonationEventStatus.pending: "record_health_check",
    DonationEventStatus.checked_in: "record_health_check",
    DonationEventStatus.health_check_passed: "start_donation",
    DonationEventStatus.in_progress: "complete_donation|record_complication",
}

# A partial collection offered to inventory counts as a single bag.
PARTIAL_COLLECTION_UNITS = 1


def _append_note(existing: str | None, note: str | None) -> str | None:
    if not note or not note.strip():
        return existing
    if not existing:
        return note.strip()
    return f"{existing}\n{note.strip()}"


def _require(event: DonationEvent, allowed: tuple[DonationEventStatus, ...], target: DonationEventStatus) -> None:
    if event.status not in allowed:
        next_step = NEXT_STEP.get(event.status)
        raise InvalidStateTransition(
            event.status,
            target,
            f"expected {next_step}" if next_step else "donation event is closed",
        )


def _log(db: Session, event: DonationEvent, action: str, actor_user_id: int | None, before_data: dict) -> None:
    log_event(
        db,
        actor_user_id=actor_user_id,
        action=f"donation_event.{action}",
        entity_type="donation_event",
        entity_id=event.id,
        before_data=before_data,
        after_obj=event,
    )


def get_event(db: Session, event_id: int) -> DonationEvent:
    event = db.get(DonationEvent, event_id)
    if not event:
        raise NotFoundError(f"Donation event {event_id} not found")
    return event


def record_health_check(
    db: Session,
    event_id: int,
    *,
    blood_pressure: str | None,
    temperature: float | None,
    hemoglobin_level: float | None,
    weight: float | None,
    height: float | None,
    verified_blood_group_id: int | None,
    is_eligible: bool,
    rejection_reason: str | None = None,
    medical_notes: str | None = None,
    staff_id: int | None = None,
    now: datetime | None = None,
) -> DonationEvent:
    """Record vitals and the eligibility decision.

    An ineligible donor ends both the event (rejected) and its appointment
    (failed) in the same commit.
    """
    if verified_blood_group_id is None:
        raise ValidationError("verified_blood_group_id is required")
    if not is_eligible and not (rejection_reason and rejection_reason.strip()):
        raise ValidationError("rejection_reason is required when the donor is not eligible")
    now = now or utcnow()
    target = DonationEventStatus.health_check_passed if is_eligible else DonationEventStatus.rejected

    with transaction(db):
        event = get_event(db, event_id)
        _require(event, (DonationEventStatus.pending, DonationEventStatus.checked_in), target)
        appt = event.appointment
        if appt.status != AppointmentStatus.checked_in:
            raise InvalidStateTransition(appt.status, target, "appointment is not checked in")
        before_data = snapshot_model(event)

        event.blood_pressure = blood_pressure
        event.temperature = temperature
        event.hemoglobin_level = hemoglobin_level
        event.weight = weight
        event.height = height
        event.verified_blood_group_id = verified_blood_group_id
        event.blood_group_id = verified_blood_group_id
        event.is_eligible = is_eligible
        event.medical_notes = medical_notes
        event.health_check_time = now
        event.staff_id = event.staff_id or staff_id
        event.status = target
        if not is_eligible:
            reason = rejection_reason.strip()
            event.rejection_reason = reason
            event.completed_time = now
            appt_before = snapshot_model(appt)
            transition_appointment(db, appt, AppointmentStatus.failed, now=now)
            appt.rejection_reason = reason
            log_event(
                db,
                actor_user_id=staff_id,
                action="appointment.failed",
                entity_type="appointment",
                entity_id=appt.id,
                before_data=appt_before,
                after_obj=appt,
            )
        db.add(event)
        _log(db, event, "health_check_recorded", staff_id, before_data)

    logger.info(
        "Health check for donation event %s: eligible=%s verified_blood_group=%s",
        event_id,
        is_eligible,
        verified_blood_group_id,
    )
    return event


def start_donation(
    db: Session,
    event_id: int,
    *,
    notes: str | None = None,
    staff_id: int | None = None,
    now: datetime | None = None,
) -> DonationEvent:
    now = now or utcnow()
    with transaction(db):
        event = get_event(db, event_id)
        _require(event, (DonationEventStatus.health_check_passed,), DonationEventStatus.in_progress)
        before_data = snapshot_model(event)
        event.status = DonationEventStatus.in_progress
        event.donation_start_time = now
        event.notes = _append_note(event.notes, notes)
        db.add(event)
        _log(db, event, "started", staff_id, before_data)
    logger.info("Donation event %s started", event_id)
    return event


def complete_donation(
    db: Session,
    event_id: int,
    *,
    donation_date: date,
    quantity_donated: float,
    quantity_units: int,
    notes: str | None = None,
    staff_id: int | None = None,
    now: datetime | None = None,
) -> DonationEvent:
    # Volume and unit count are both staff-entered; neither is derived from the other.
    if quantity_donated is None or quantity_donated <= 0:
        raise ValidationError("quantity_donated must be a positive volume in mL")
    if quantity_units is None or quantity_units < 1:
        raise ValidationError("quantity_units must be at least 1")
    now = now or utcnow()

    with transaction(db):
        event = get_event(db, event_id)
        _require(event, (DonationEventStatus.in_progress,), DonationEventStatus.completed)
        before_data = snapshot_model(event)
        event.status = DonationEventStatus.completed
        event.donation_date = donation_date
        event.quantity_donated = quantity_donated
        event.quantity_units = quantity_units
        event.notes = _append_note(event.notes, notes)
        event.completed_time = now
        appt = event.appointment
        appt_before = snapshot_model(appt)
        transition_appointment(db, appt, AppointmentStatus.completed, now=now)
        db.add(event)
        _log(db, event, "completed", staff_id, before_data)
        log_event(
            db,
            actor_user_id=staff_id,
            action="appointment.completed",
            entity_type="appointment",
            entity_id=appt.id,
            before_data=appt_before,
            after_obj=appt,
        )

    logger.info(
        "Donation event %s completed: %s mL, %s unit(s)", event_id, quantity_donated, quantity_units
    )
    emit_units_collected(
        UnitsCollected(
            donation_event_id=event.id,
            blood_group_id=event.blood_group_id,
            component_type_id=event.component_type_id,
            quantity_units=quantity_units,
            volume_ml=quantity_donated,
        )
    )
    return event


def record_complication(
    db: Session,
    event_id: int,
    *,
    complication_type: str,
    description: str,
    collected_amount: float | None,
    is_usable: bool,
    action_taken: str,
    staff_id: int | None = None,
    now: datetime | None = None,
) -> DonationEvent:
    if not complication_type or not complication_type.strip():
        raise ValidationError("complication_type is required")
    if not description or not description.strip():
        raise ValidationError("description is required")
    if not action_taken or not action_taken.strip():
        raise ValidationError("action_taken is required")
    if collected_amount is not None and collected_amount < 0:
        raise ValidationError("collected_amount must not be negative")
    now = now or utcnow()

    with transaction(db):
        event = get_event(db, event_id)
        _require(event, (DonationEventStatus.in_progress,), DonationEventStatus.failed)
        before_data = snapshot_model(event)
        event.status = DonationEventStatus.failed
        event.complication_type = complication_type.strip()
        event.complication_details = description.strip()
        event.collected_amount = collected_amount
        event.is_usable = is_usable
        event.action_taken = action_taken.strip()
        event.completed_time = now
        appt = event.appointment
        appt_before = snapshot_model(appt)
        transition_appointment(db, appt, AppointmentStatus.failed, now=now)
        appt.rejection_reason = f"Complication: {event.complication_type}"
        db.add(event)
        _log(db, event, "complication_recorded", staff_id, before_data)
        log_event(
            db,
            actor_user_id=staff_id,
            action="appointment.failed",
            entity_type="appointment",
            entity_id=appt.id,
            before_data=appt_before,
            after_obj=appt,
        )

    logger.warning(
        "Complication on donation event %s: %s (usable=%s, collected=%s)",
        event_id,
        complication_type,
        is_usable,
        collected_amount,
    )
    if is_usable and collected_amount:
        emit_units_collected(
            UnitsCollected(
                donation_event_id=event.id,
                blood_group_id=event.blood_group_id,
                component_type_id=event.component_type_id,
                quantity_units=PARTIAL_COLLECTION_UNITS,
                volume_ml=collected_amount,
                partial=True,
            )
        )
    return event
