from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from blood_scheduler.db.session import get_db
from blood_scheduler.deps import get_actor_id, require_actor
from blood_scheduler.models.appointment import AppointmentStatus, RequestType
from blood_scheduler.schemas.appointment import (
    AppointmentOut,
    ApproveIn,
    CancelIn,
    CheckInIn,
    DonorRequestCreate,
    DonorResponseIn,
    FailIn,
    RejectIn,
    StaffAssignmentCreate,
    WalkInCreate,
)
from blood_scheduler.schemas.donation_event import DonationEventOut
from blood_scheduler.services import appointments as appointment_service
from blood_scheduler.services.appointments import AppointmentFilters

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("", response_model=list[AppointmentOut])
def list_appointments(
    db: Session = Depends(get_db),
    _actor: int | None = Depends(get_actor_id),
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    donor_id: int | None = Query(default=None),
    location_id: int | None = Query(default=None),
    blood_request_id: int | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    is_urgent: bool | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
):
    filters = AppointmentFilters(
        status=status_filter,
        donor_id=donor_id,
        location_id=location_id,
        related_blood_request_id=blood_request_id,
        start_date=start_date,
        end_date=end_date,
        is_urgent=is_urgent,
    )
    return appointment_service.list_requests(db, filters, limit=limit)


@router.post("/donor-request", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def create_donor_request(
    payload: DonorRequestCreate,
    db: Session = Depends(get_db),
    actor_id: int | None = Depends(get_actor_id),
):
    return appointment_service.create_request(
        db,
        donor_id=payload.donor_id,
        capacity_slot_id=payload.capacity_slot_id,
        slot_date=payload.slot_date,
        request_type=RequestType.donor_initiated,
        initiated_by_user_id=actor_id,
        blood_group_id=payload.blood_group_id,
        component_type_id=payload.component_type_id,
        is_urgent=payload.is_urgent,
        notes=payload.notes,
    )


@router.post("/staff-assignment", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def create_staff_assignment(
    payload: StaffAssignmentCreate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return appointment_service.create_request(
        db,
        donor_id=payload.donor_id,
        capacity_slot_id=payload.capacity_slot_id,
        slot_date=payload.slot_date,
        request_type=RequestType.staff_assignment,
        initiated_by_user_id=actor_id,
        blood_group_id=payload.blood_group_id,
        component_type_id=payload.component_type_id,
        is_urgent=payload.is_urgent,
        priority=payload.priority,
        related_blood_request_id=payload.related_blood_request_id,
        auto_expire_hours=payload.auto_expire_hours,
        notes=payload.notes,
    )


@router.post("/walk-in", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def register_walk_in(
    payload: WalkInCreate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return appointment_service.register_walk_in(
        db,
        donor_id=payload.donor_id,
        capacity_slot_id=payload.capacity_slot_id,
        slot_date=payload.slot_date,
        staff_id=actor_id,
        blood_group_id=payload.blood_group_id,
        component_type_id=payload.component_type_id,
        notes=payload.notes,
    )


@router.get("/{appointment_id}", response_model=AppointmentOut)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    _actor: int | None = Depends(get_actor_id),
):
    return appointment_service.get_request(db, appointment_id)


@router.get("/{appointment_id}/donation-event", response_model=DonationEventOut | None)
def get_appointment_donation_event(
    appointment_id: int,
    db: Session = Depends(get_db),
    _actor: int | None = Depends(get_actor_id),
):
    return appointment_service.get_request(db, appointment_id).donation_event


@router.post("/{appointment_id}/approve", response_model=AppointmentOut)
def approve_appointment(
    appointment_id: int,
    payload: ApproveIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return appointment_service.approve(db, appointment_id, reviewer_id=actor_id, note=payload.note)


@router.post("/{appointment_id}/reject", response_model=AppointmentOut)
def reject_appointment(
    appointment_id: int,
    payload: RejectIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return appointment_service.reject(db, appointment_id, reviewer_id=actor_id, reason=payload.reason)


@router.post("/{appointment_id}/cancel", response_model=AppointmentOut)
def cancel_appointment(
    appointment_id: int,
    payload: CancelIn,
    db: Session = Depends(get_db),
    actor_id: int | None = Depends(get_actor_id),
):
    return appointment_service.cancel(
        db, appointment_id, reason=payload.reason, actor_user_id=actor_id
    )


@router.post("/{appointment_id}/check-in", response_model=AppointmentOut)
def check_in_appointment(
    appointment_id: int,
    payload: CheckInIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return appointment_service.check_in(
        db,
        appointment_id,
        timestamp=payload.check_in_time,
        staff_id=actor_id,
        notes=payload.notes,
    )


@router.post("/{appointment_id}/donor-response", response_model=AppointmentOut)
def respond_to_assignment(
    appointment_id: int,
    payload: DonorResponseIn,
    db: Session = Depends(get_db),
    _actor: int | None = Depends(get_actor_id),
):
    return appointment_service.donor_respond(
        db, appointment_id, accepted=payload.accepted, notes=payload.notes
    )


@router.post("/{appointment_id}/fail", response_model=AppointmentOut)
def fail_appointment(
    appointment_id: int,
    payload: FailIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return appointment_service.fail(db, appointment_id, reason=payload.reason, actor_user_id=actor_id)
