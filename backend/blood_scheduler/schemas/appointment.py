from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from blood_scheduler.models.appointment import AppointmentStatus, RequestType
from blood_scheduler.models.capacity import TimeSlot


class DonorRequestCreate(BaseModel):
    donor_id: int
    capacity_slot_id: int
    slot_date: date
    blood_group_id: Optional[int] = None
    component_type_id: Optional[int] = None
    is_urgent: bool = False
    notes: Optional[str] = None


class StaffAssignmentCreate(BaseModel):
    donor_id: int
    capacity_slot_id: int
    slot_date: date
    blood_group_id: Optional[int] = None
    component_type_id: Optional[int] = None
    is_urgent: bool = False
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    related_blood_request_id: Optional[int] = None
    auto_expire_hours: Optional[int] = None
    notes: Optional[str] = None


class WalkInCreate(BaseModel):
    donor_id: int
    capacity_slot_id: int
    slot_date: date
    blood_group_id: Optional[int] = None
    component_type_id: Optional[int] = None
    notes: Optional[str] = None


class ApproveIn(BaseModel):
    note: Optional[str] = None


class RejectIn(BaseModel):
    reason: str


class CancelIn(BaseModel):
    reason: Optional[str] = None


class CheckInIn(BaseModel):
    check_in_time: Optional[datetime] = None
    notes: Optional[str] = None


class DonorResponseIn(BaseModel):
    accepted: bool
    notes: Optional[str] = None


class FailIn(BaseModel):
    reason: str


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    donor_id: int
    location_id: int
    capacity_slot_id: int
    blood_group_id: Optional[int] = None
    component_type_id: Optional[int] = None
    preferred_date: date
    preferred_time_slot: TimeSlot
    start_hour: int
    end_hour: int
    request_type: RequestType
    initiated_by_user_id: Optional[int] = None
    status: AppointmentStatus
    is_urgent: bool
    priority: int
    related_blood_request_id: Optional[int] = None
    auto_expire_hours: Optional[int] = None
    expires_at: Optional[datetime] = None
    donor_accepted: Optional[bool] = None
    donor_response_at: Optional[datetime] = None
    donor_response_notes: Optional[str] = None
    reviewed_by_user_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    confirmed_date: Optional[date] = None
    confirmed_time_slot: Optional[TimeSlot] = None
    confirmed_location_id: Optional[int] = None
    check_in_time: Optional[datetime] = None
    completed_time: Optional[datetime] = None
    cancelled_time: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
