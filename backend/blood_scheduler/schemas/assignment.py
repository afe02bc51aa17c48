from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from blood_scheduler.models.blood_request import BloodRequestStatus
from blood_scheduler.schemas.appointment import AppointmentOut


class AssignmentIn(BaseModel):
    donor_ids: list[int]
    capacity_slot_id: int
    slot_date: date
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = None


class AssignmentFailureOut(BaseModel):
    donor_id: int
    error: str
    detail: str


class AssignmentOut(BaseModel):
    blood_request_id: int
    blood_request_status: BloodRequestStatus
    successes: list[AppointmentOut]
    failures: list[AssignmentFailureOut]
