from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from blood_scheduler.db.session import get_db
from blood_scheduler.deps import get_actor_id, require_actor
from blood_scheduler.schemas.donation_event import (
    CompleteDonationIn,
    ComplicationIn,
    DonationEventOut,
    HealthCheckIn,
    StartDonationIn,
)
from blood_scheduler.services import donation_workflow

router = APIRouter(prefix="/donation-events", tags=["donation-events"])


@router.get("/{event_id}", response_model=DonationEventOut)
def get_donation_event(
    event_id: int,
    db: Session = Depends(get_db),
    _actor: int | None = Depends(get_actor_id),
):
    return donation_workflow.get_event(db, event_id)


@router.post("/{event_id}/health-check", response_model=DonationEventOut)
def record_health_check(
    event_id: int,
    payload: HealthCheckIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return donation_workflow.record_health_check(
        db,
        event_id,
        blood_pressure=payload.blood_pressure,
        temperature=payload.temperature,
        hemoglobin_level=payload.hemoglobin_level,
        weight=payload.weight,
        height=payload.height,
        verified_blood_group_id=payload.verified_blood_group_id,
        is_eligible=payload.is_eligible,
        rejection_reason=payload.rejection_reason,
        medical_notes=payload.medical_notes,
        staff_id=actor_id,
    )


@router.post("/{event_id}/start", response_model=DonationEventOut)
def start_donation(
    event_id: int,
    payload: StartDonationIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return donation_workflow.start_donation(db, event_id, notes=payload.notes, staff_id=actor_id)


@router.post("/{event_id}/complete", response_model=DonationEventOut)
def complete_donation(
    event_id: int,
    payload: CompleteDonationIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return donation_workflow.complete_donation(
        db,
        event_id,
        donation_date=payload.donation_date,
        quantity_donated=payload.quantity_donated,
        quantity_units=payload.quantity_units,
        notes=payload.notes,
        staff_id=actor_id,
    )


@router.post("/{event_id}/complication", response_model=DonationEventOut)
def record_complication(
    event_id: int,
    payload: ComplicationIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return donation_workflow.record_complication(
        db,
        event_id,
        complication_type=payload.complication_type,
        description=payload.description,
        collected_amount=payload.collected_amount,
        is_usable=payload.is_usable,
        action_taken=payload.action_taken,
        staff_id=actor_id,
    )
