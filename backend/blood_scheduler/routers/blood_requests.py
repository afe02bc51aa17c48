from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from blood_scheduler.db.session import get_db
from blood_scheduler.deps import require_actor
from blood_scheduler.schemas.appointment import AppointmentOut
from blood_scheduler.schemas.assignment import AssignmentFailureOut, AssignmentIn, AssignmentOut
from blood_scheduler.services.assignment import assign_donors, get_blood_request

router = APIRouter(prefix="/blood-requests", tags=["blood-requests"])


@router.post("/{blood_request_id}/assignments", response_model=AssignmentOut)
def assign_donors_to_request(
    blood_request_id: int,
    payload: AssignmentIn,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    outcome = assign_donors(
        db,
        blood_request_id=blood_request_id,
        donor_ids=payload.donor_ids,
        capacity_slot_id=payload.capacity_slot_id,
        slot_date=payload.slot_date,
        priority=payload.priority,
        initiated_by_user_id=actor_id,
        notes=payload.notes,
    )
    blood_request = get_blood_request(db, blood_request_id)
    return AssignmentOut(
        blood_request_id=blood_request_id,
        blood_request_status=blood_request.status,
        successes=[AppointmentOut.model_validate(appt) for appt in outcome.successes],
        failures=[
            AssignmentFailureOut(donor_id=donor_id, error=type(exc).__name__, detail=exc.message)
            for donor_id, exc in outcome.failures
        ],
    )
