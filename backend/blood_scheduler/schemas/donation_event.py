from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from blood_scheduler.models.donation_event import DonationEventStatus


class HealthCheckIn(BaseModel):
    blood_pressure: Optional[str] = None
    temperature: Optional[float] = None
    hemoglobin_level: Optional[float] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    verified_blood_group_id: Optional[int] = None
    is_eligible: bool
    rejection_reason: Optional[str] = None
    medical_notes: Optional[str] = None


class StartDonationIn(BaseModel):
    notes: Optional[str] = None


class CompleteDonationIn(BaseModel):
    donation_date: date
    quantity_donated: float
    quantity_units: int
    notes: Optional[str] = None


class ComplicationIn(BaseModel):
    complication_type: str
    description: str
    collected_amount: Optional[float] = None
    is_usable: bool
    action_taken: str


class DonationEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_request_id: int
    donor_id: int
    location_id: int
    blood_group_id: Optional[int] = None
    component_type_id: Optional[int] = None
    staff_id: Optional[int] = None
    status: DonationEventStatus
    check_in_time: Optional[datetime] = None
    blood_pressure: Optional[str] = None
    temperature: Optional[float] = None
    hemoglobin_level: Optional[float] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    verified_blood_group_id: Optional[int] = None
    is_eligible: Optional[bool] = None
    medical_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    health_check_time: Optional[datetime] = None
    donation_start_time: Optional[datetime] = None
    donation_date: Optional[date] = None
    quantity_donated: Optional[float] = None
    quantity_units: Optional[int] = None
    complication_type: Optional[str] = None
    complication_details: Optional[str] = None
    collected_amount: Optional[float] = None
    is_usable: Optional[bool] = None
    action_taken: Optional[str] = None
    notes: Optional[str] = None
    completed_time: Optional[datetime] = None
