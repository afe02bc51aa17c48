from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from blood_scheduler.models.capacity import TimeSlot


class CapacitySlotCreate(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    time_slot: TimeSlot
    start_hour: int
    end_hour: int
    total_capacity: int
    effective_date: date
    expiry_date: date
    notes: Optional[str] = None


class CapacityWeeklyCreate(BaseModel):
    days_of_week: list[int]
    time_slots: list[TimeSlot]
    total_capacity: int
    effective_date: date
    expiry_date: date
    notes: Optional[str] = None


class CapacitySlotUpdate(BaseModel):
    total_capacity: Optional[int] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class CapacitySlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    location_id: int
    day_of_week: int
    time_slot: TimeSlot
    start_hour: int
    end_hour: int
    hour_key: str
    total_capacity: int
    effective_date: date
    expiry_date: date
    is_active: bool
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class GridCellOut(BaseModel):
    day: date
    time_slot: TimeSlot
    hour_key: str
    label: str
    capacity: Optional[CapacitySlotOut] = None
    is_past: bool
    is_available: bool


class WeekGridOut(BaseModel):
    location_id: int
    week_start: date
    previous_week: date
    next_week: date
    cells: list[GridCellOut]
