from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from blood_scheduler.core.clock import ensure_utc, utcnow
from blood_scheduler.core.errors import (
    ConflictError,
    InvalidStateTransition,
    NotFoundError,
    SlotUnavailable,
    ValidationError,
)
from blood_scheduler.core.settings import settings
from blood_scheduler.db.session import transaction
from blood_scheduler.models.appointment import (
    RELEASING_STATUSES,
    TERMINAL_APPOINTMENT_STATUSES,
    AppointmentRequest,
    AppointmentStatus,
    RequestType,
)
from blood_scheduler.models.capacity import CapacitySlot
from blood_scheduler.models.donation_event import DonationEvent, DonationEventStatus
from blood_scheduler.services import reservations
from blood_scheduler.services.audit import log_event, snapshot_model
from blood_scheduler.services.outbound import UrgentAppointmentCreated, emit_notice
from blood_scheduler.services.slot_selector import is_slot_past, slot_applies_on

logger = logging.getLogger("blood_scheduler.appointments")

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.pending: frozenset(
        {
            AppointmentStatus.approved,
            AppointmentStatus.rejected,
            AppointmentStatus.cancelled,
            AppointmentStatus.expired,
        }
    ),
    AppointmentStatus.approved: frozenset(
        {AppointmentStatus.checked_in, AppointmentStatus.cancelled}
    ),
    AppointmentStatus.checked_in: frozenset(
        {AppointmentStatus.completed, AppointmentStatus.failed}
    ),
}

DONOR_DECLINED_REASON = "Donor declined"


@dataclass
class AppointmentFilters:
    status: AppointmentStatus | None = None
    donor_id: int | None = None
    location_id: int | None = None
    related_blood_request_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_urgent: bool | None = None


def _log(
    db: Session,
    appt: AppointmentRequest,
    action: str,
    actor_user_id: int | None,
    before_data: dict | None = None,
) -> None:
    log_event(
        db,
        actor_user_id=actor_user_id,
        action=f"appointment.{action}",
        entity_type="appointment",
        entity_id=appt.id,
        before_data=before_data,
        after_obj=appt,
    )


def _release(db: Session, appt: AppointmentRequest) -> None:
    reservations.release(
        db,
        location_id=appt.location_id,
        slot_date=appt.preferred_date,
        time_slot=appt.preferred_time_slot.value,
        start_hour=appt.start_hour,
        end_hour=appt.end_hour,
    )


def transition(
    db: Session,
    appt: AppointmentRequest,
    target: AppointmentStatus,
    *,
    now: datetime,
) -> None:
    """Move ``appt`` to ``target`` inside the caller's transaction."""
    allowed = ALLOWED_TRANSITIONS.get(appt.status, frozenset())
    if target not in allowed:
        raise InvalidStateTransition(appt.status, target)
    appt.status = target
    if target in RELEASING_STATUSES:
        _release(db, appt)
    if target in (AppointmentStatus.cancelled, AppointmentStatus.expired):
        appt.cancelled_time = now
    if target in (AppointmentStatus.completed, AppointmentStatus.failed):
        appt.completed_time = now
    db.add(appt)


def _is_stale(appt: AppointmentRequest, now: datetime) -> bool:
    return (
        appt.status == AppointmentStatus.pending
        and appt.expires_at is not None
        and ensure_utc(appt.expires_at) <= now
    )


def _expire(db: Session, appt: AppointmentRequest, now: datetime) -> None:
    before_data = snapshot_model(appt)
    transition(db, appt, AppointmentStatus.expired, now=now)
    _log(db, appt, "expired", None, before_data)
    logger.info("Appointment request %s expired (expires_at=%s)", appt.id, appt.expires_at)


def _refresh_expiry(db: Session, appointment_id: int, now: datetime) -> None:
    # Committed on its own so a refused action never rolls the expiry back.
    with transaction(db):
        appt = db.get(AppointmentRequest, appointment_id)
        if appt is not None and _is_stale(appt, now):
            _expire(db, appt, now)


def _load(db: Session, appointment_id: int, now: datetime) -> AppointmentRequest:
    _refresh_expiry(db, appointment_id, now)
    appt = db.get(AppointmentRequest, appointment_id)
    if not appt:
        raise NotFoundError(f"Appointment request {appointment_id} not found")
    return appt


def _validate_slot(
    slot: CapacitySlot | None,
    slot_date: date,
    now: datetime,
    zone: ZoneInfo,
    *,
    allow_started: bool = False,
) -> CapacitySlot:
    if slot is None:
        raise NotFoundError("Capacity slot not found")
    if not slot.is_active:
        raise SlotUnavailable(f"Capacity slot {slot.id} has been deactivated")
    if not slot_applies_on(slot, slot_date):
        raise SlotUnavailable(
            f"Capacity slot {slot.id} does not apply on {slot_date.isoformat()}"
        )
    # Walk-ins may join a window that is under way but not one that has ended.
    cutoff_hour = slot.end_hour if allow_started else slot.start_hour
    if is_slot_past(slot_date, cutoff_hour, now, zone):
        raise SlotUnavailable(
            f"Slot {slot.hour_key} on {slot_date.isoformat()} is in the past"
        )
    return slot


def _ensure_no_open_booking(db: Session, donor_id: int, slot_date: date) -> None:
    stmt = select(AppointmentRequest.id).where(
        AppointmentRequest.donor_id == donor_id,
        AppointmentRequest.preferred_date == slot_date,
        AppointmentRequest.status.notin_(TERMINAL_APPOINTMENT_STATUSES),
    )
    existing = db.scalar(stmt.limit(1))
    if existing is not None:
        raise ConflictError(
            f"Donor {donor_id} already has open appointment request {existing} on {slot_date.isoformat()}"
        )


def _book(
    db: Session,
    *,
    donor_id: int,
    capacity_slot_id: int,
    slot_date: date,
    request_type: RequestType,
    initiated_by_user_id: int | None,
    blood_group_id: int | None,
    component_type_id: int | None,
    is_urgent: bool,
    priority: int,
    related_blood_request_id: int | None,
    auto_expire_hours: int | None,
    notes: str | None,
    now: datetime,
    zone: ZoneInfo,
) -> AppointmentRequest:
    if not 1 <= priority <= 5:
        raise ValidationError("priority must be between 1 and 5")
    if auto_expire_hours is not None and auto_expire_hours <= 0:
        raise ValidationError("auto_expire_hours must be positive")

    slot = _validate_slot(
        db.get(CapacitySlot, capacity_slot_id),
        slot_date,
        now,
        zone,
        allow_started=request_type == RequestType.walk_in,
    )
    _ensure_no_open_booking(db, donor_id, slot_date)
    reservations.reserve(db, slot, slot_date)

    appt = AppointmentRequest(
        donor_id=donor_id,
        location_id=slot.location_id,
        capacity_slot_id=slot.id,
        blood_group_id=blood_group_id,
        component_type_id=component_type_id,
        preferred_date=slot_date,
        preferred_time_slot=slot.time_slot,
        start_hour=slot.start_hour,
        end_hour=slot.end_hour,
        request_type=request_type,
        initiated_by_user_id=initiated_by_user_id,
        status=AppointmentStatus.pending,
        is_urgent=is_urgent,
        priority=priority,
        related_blood_request_id=related_blood_request_id,
        auto_expire_hours=auto_expire_hours,
        expires_at=now + timedelta(hours=auto_expire_hours) if auto_expire_hours else None,
        notes=notes,
    )
    db.add(appt)
    db.flush()
    return appt


def create_request(
    db: Session,
    *,
    donor_id: int,
    capacity_slot_id: int,
    slot_date: date,
    request_type: RequestType = RequestType.donor_initiated,
    initiated_by_user_id: int | None = None,
    blood_group_id: int | None = None,
    component_type_id: int | None = None,
    is_urgent: bool = False,
    priority: int | None = None,
    related_blood_request_id: int | None = None,
    auto_expire_hours: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
    zone: ZoneInfo | None = None,
) -> AppointmentRequest:
    if request_type == RequestType.walk_in:
        raise ValidationError("Walk-in donations are registered with register_walk_in")
    now = now or utcnow()
    with transaction(db):
        appt = _book(
            db,
            donor_id=donor_id,
            capacity_slot_id=capacity_slot_id,
            slot_date=slot_date,
            request_type=request_type,
            initiated_by_user_id=initiated_by_user_id,
            blood_group_id=blood_group_id,
            component_type_id=component_type_id,
            is_urgent=is_urgent,
            priority=priority if priority is not None else settings.default_priority,
            related_blood_request_id=related_blood_request_id,
            auto_expire_hours=auto_expire_hours,
            notes=notes,
            now=now,
            zone=zone or settings.zone,
        )
        _log(db, appt, "created", initiated_by_user_id)

    logger.info(
        "Appointment request %s created: donor=%s slot=%s date=%s type=%s",
        appt.id,
        donor_id,
        capacity_slot_id,
        slot_date,
        request_type.value,
    )
    if appt.is_urgent:
        emit_notice(
            UrgentAppointmentCreated(
                appointment_request_id=appt.id,
                donor_id=appt.donor_id,
                location_id=appt.location_id,
                priority=appt.priority,
                related_blood_request_id=appt.related_blood_request_id,
            )
        )
    return appt


def register_walk_in(
    db: Session,
    *,
    donor_id: int,
    capacity_slot_id: int,
    slot_date: date,
    staff_id: int,
    blood_group_id: int | None = None,
    component_type_id: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
    zone: ZoneInfo | None = None,
) -> AppointmentRequest:
    """Book and check in a donor who arrived without an appointment."""
    now = now or utcnow()
    with transaction(db):
        appt = _book(
            db,
            donor_id=donor_id,
            capacity_slot_id=capacity_slot_id,
            slot_date=slot_date,
            request_type=RequestType.walk_in,
            initiated_by_user_id=staff_id,
            blood_group_id=blood_group_id,
            component_type_id=component_type_id,
            is_urgent=False,
            priority=settings.default_priority,
            related_blood_request_id=None,
            auto_expire_hours=None,
            notes=notes,
            now=now,
            zone=zone or settings.zone,
        )
        appt.donor_accepted = True
        appt.reviewed_by_user_id = staff_id
        appt.reviewed_at = now
        _confirm(appt)
        transition(db, appt, AppointmentStatus.approved, now=now)
        transition(db, appt, AppointmentStatus.checked_in, now=now)
        appt.check_in_time = now
        db.add(
            DonationEvent(
                appointment_request_id=appt.id,
                donor_id=appt.donor_id,
                location_id=appt.location_id,
                blood_group_id=appt.blood_group_id,
                component_type_id=appt.component_type_id,
                staff_id=staff_id,
                status=DonationEventStatus.checked_in,
                check_in_time=now,
                notes=notes,
            )
        )
        db.flush()
        _log(db, appt, "walk_in_registered", staff_id)
    logger.info("Walk-in donor %s checked in as appointment %s", donor_id, appt.id)
    return appt


def get_request(db: Session, appointment_id: int, now: datetime | None = None) -> AppointmentRequest:
    now = now or utcnow()
    with transaction(db):
        appt = _load(db, appointment_id, now)
    return appt


def list_requests(
    db: Session,
    filters: AppointmentFilters | None = None,
    now: datetime | None = None,
    limit: int = 200,
) -> list[AppointmentRequest]:
    filters = filters or AppointmentFilters()
    now = now or utcnow()
    stmt = select(AppointmentRequest)
    if filters.status is not None:
        stmt = stmt.where(AppointmentRequest.status == filters.status)
    if filters.donor_id is not None:
        stmt = stmt.where(AppointmentRequest.donor_id == filters.donor_id)
    if filters.location_id is not None:
        stmt = stmt.where(AppointmentRequest.location_id == filters.location_id)
    if filters.related_blood_request_id is not None:
        stmt = stmt.where(
            AppointmentRequest.related_blood_request_id == filters.related_blood_request_id
        )
    if filters.start_date is not None:
        stmt = stmt.where(AppointmentRequest.preferred_date >= filters.start_date)
    if filters.end_date is not None:
        stmt = stmt.where(AppointmentRequest.preferred_date <= filters.end_date)
    if filters.is_urgent is not None:
        stmt = stmt.where(AppointmentRequest.is_urgent == filters.is_urgent)
    stmt = stmt.order_by(
        AppointmentRequest.priority.desc(),
        AppointmentRequest.preferred_date.asc(),
        AppointmentRequest.id.asc(),
    ).limit(limit)

    expire_stale_requests(db, now)
    return list(db.scalars(stmt).unique())


def expire_stale_requests(db: Session, now: datetime | None = None) -> int:
    now = now or utcnow()
    stmt = select(AppointmentRequest).where(
        AppointmentRequest.status == AppointmentStatus.pending,
        AppointmentRequest.expires_at.is_not(None),
        AppointmentRequest.expires_at <= now,
    )
    with transaction(db):
        stale = [appt for appt in db.scalars(stmt).unique() if _is_stale(appt, now)]
        for appt in stale:
            _expire(db, appt, now)
    if stale:
        logger.info("Expired %s stale appointment request(s)", len(stale))
    return len(stale)


def _confirm(appt: AppointmentRequest) -> None:
    appt.confirmed_date = appt.preferred_date
    appt.confirmed_time_slot = appt.preferred_time_slot
    appt.confirmed_location_id = appt.location_id


def approve(
    db: Session,
    appointment_id: int,
    *,
    reviewer_id: int,
    note: str | None = None,
    now: datetime | None = None,
) -> AppointmentRequest:
    now = now or utcnow()
    with transaction(db):
        appt = _load(db, appointment_id, now)
        if appt.request_type == RequestType.staff_assignment and appt.status == AppointmentStatus.pending:
            if appt.donor_accepted is not True:
                raise InvalidStateTransition(
                    appt.status, AppointmentStatus.approved, "donor has not accepted the assignment"
                )
        before_data = snapshot_model(appt)
        transition(db, appt, AppointmentStatus.approved, now=now)
        appt.reviewed_by_user_id = reviewer_id
        appt.reviewed_at = now
        appt.review_notes = note
        appt.expires_at = None
        _confirm(appt)
        _log(db, appt, "approved", reviewer_id, before_data)
    logger.info("Appointment request %s approved by %s", appointment_id, reviewer_id)
    return appt


def reject(
    db: Session,
    appointment_id: int,
    *,
    reviewer_id: int | None,
    reason: str,
    now: datetime | None = None,
) -> AppointmentRequest:
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")
    now = now or utcnow()
    with transaction(db):
        appt = _load(db, appointment_id, now)
        before_data = snapshot_model(appt)
        transition(db, appt, AppointmentStatus.rejected, now=now)
        appt.reviewed_by_user_id = reviewer_id
        appt.reviewed_at = now
        appt.rejection_reason = reason.strip()
        _log(db, appt, "rejected", reviewer_id, before_data)
    logger.info("Appointment request %s rejected: %s", appointment_id, reason)
    return appt


def cancel(
    db: Session,
    appointment_id: int,
    *,
    reason: str | None = None,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> AppointmentRequest:
    now = now or utcnow()
    with transaction(db):
        appt = _load(db, appointment_id, now)
        before_data = snapshot_model(appt)
        transition(db, appt, AppointmentStatus.cancelled, now=now)
        appt.cancellation_reason = reason.strip() if reason else None
        _log(db, appt, "cancelled", actor_user_id, before_data)
    logger.info("Appointment request %s cancelled", appointment_id)
    return appt


def check_in(
    db: Session,
    appointment_id: int,
    *,
    timestamp: datetime | None = None,
    staff_id: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> AppointmentRequest:
    now = now or utcnow()
    checked_in_at = timestamp or now
    with transaction(db):
        appt = _load(db, appointment_id, now)
        if appt.donation_event is not None:
            raise ConflictError(f"Appointment request {appt.id} already has a donation event")
        before_data = snapshot_model(appt)
        transition(db, appt, AppointmentStatus.checked_in, now=now)
        appt.check_in_time = checked_in_at
        db.add(
            DonationEvent(
                appointment_request_id=appt.id,
                donor_id=appt.donor_id,
                location_id=appt.location_id,
                blood_group_id=appt.blood_group_id,
                component_type_id=appt.component_type_id,
                staff_id=staff_id,
                status=DonationEventStatus.pending,
                check_in_time=checked_in_at,
                notes=notes,
            )
        )
        db.flush()
        _log(db, appt, "checked_in", staff_id, before_data)
    logger.info("Appointment request %s checked in", appointment_id)
    return appt


def donor_respond(
    db: Session,
    appointment_id: int,
    *,
    accepted: bool,
    notes: str | None = None,
    donor_id: int | None = None,
    now: datetime | None = None,
) -> AppointmentRequest:
    now = now or utcnow()
    with transaction(db):
        appt = _load(db, appointment_id, now)
        if appt.request_type != RequestType.staff_assignment:
            raise ValidationError("Only staff assignments take a donor response")
        if donor_id is not None and donor_id != appt.donor_id:
            raise ValidationError("Appointment request belongs to a different donor")
        if not appt.awaiting_donor_response:
            raise InvalidStateTransition(
                appt.status,
                "donor_accepted" if accepted else "donor_declined",
                "no donor response is awaited",
            )
        before_data = snapshot_model(appt)
        appt.donor_accepted = accepted
        appt.donor_response_at = now
        appt.donor_response_notes = notes
        if accepted:
            appt.expires_at = None
            action = "donor_accepted"
        else:
            transition(db, appt, AppointmentStatus.rejected, now=now)
            appt.rejection_reason = DONOR_DECLINED_REASON
            action = "donor_declined"
        db.add(appt)
        _log(db, appt, action, donor_id or appt.donor_id, before_data)
    logger.info("Donor responded to appointment request %s: accepted=%s", appointment_id, accepted)
    return appt


def fail(
    db: Session,
    appointment_id: int,
    *,
    reason: str,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> AppointmentRequest:
    if not reason or not reason.strip():
        raise ValidationError("A failure reason is required")
    now = now or utcnow()
    with transaction(db):
        appt = _load(db, appointment_id, now)
        before_data = snapshot_model(appt)
        transition(db, appt, AppointmentStatus.failed, now=now)
        appt.rejection_reason = reason.strip()
        event = appt.donation_event
        if event is not None and not event.status.is_terminal:
            event.status = DonationEventStatus.failed
            event.rejection_reason = event.rejection_reason or reason.strip()
            event.completed_time = now
            db.add(event)
        _log(db, appt, "failed", actor_user_id, before_data)
    logger.info("Appointment request %s failed: %s", appointment_id, reason)
    return appt
