from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from blood_scheduler.core.clock import local_date, utcnow
from blood_scheduler.core.settings import settings
from blood_scheduler.db.session import get_db
from blood_scheduler.deps import get_actor_id, require_actor
from blood_scheduler.schemas.capacity import (
    CapacitySlotCreate,
    CapacitySlotOut,
    CapacitySlotUpdate,
    CapacityWeeklyCreate,
    GridCellOut,
    WeekGridOut,
)
from blood_scheduler.services import capacity as capacity_service
from blood_scheduler.services.capacity import HourWindow
from blood_scheduler.services.slot_selector import (
    load_week_grid,
    next_week,
    previous_week,
    week_start_for,
)

router = APIRouter(prefix="/locations/{location_id}/capacities", tags=["capacity"])


@router.get("", response_model=list[CapacitySlotOut])
def list_week_capacities(
    location_id: int,
    week_start: date = Query(...),
    db: Session = Depends(get_db),
    _actor: int | None = Depends(get_actor_id),
):
    return capacity_service.list_slots_for_week(db, location_id, week_start)


@router.get("/grid", response_model=WeekGridOut)
def get_week_grid(
    location_id: int,
    week_of: date | None = Query(default=None),
    now: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    _actor: int | None = Depends(get_actor_id),
):
    current = now or utcnow()
    start = week_start_for(week_of or local_date(current, settings.zone))
    grid = load_week_grid(db, location_id, start, now=current)
    cells = [
        GridCellOut(
            day=key.day,
            time_slot=key.time_slot,
            hour_key=key.hour_window.key,
            label=key.hour_window.label,
            capacity=CapacitySlotOut.model_validate(cell.capacity) if cell.capacity else None,
            is_past=cell.is_past,
            is_available=cell.is_available,
        )
        for key, cell in grid.items()
    ]
    return WeekGridOut(
        location_id=location_id,
        week_start=start,
        previous_week=previous_week(start),
        next_week=next_week(start),
        cells=cells,
    )


@router.post("", response_model=CapacitySlotOut, status_code=status.HTTP_201_CREATED)
def define_capacity(
    location_id: int,
    payload: CapacitySlotCreate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return capacity_service.define_slot(
        db,
        location_id=location_id,
        day_of_week=payload.day_of_week,
        time_slot=payload.time_slot,
        hour_window=HourWindow(payload.start_hour, payload.end_hour),
        total_capacity=payload.total_capacity,
        effective_date=payload.effective_date,
        expiry_date=payload.expiry_date,
        notes=payload.notes,
        actor_user_id=actor_id,
    )


@router.post("/bulk", response_model=list[CapacitySlotOut], status_code=status.HTTP_201_CREATED)
def define_weekly_capacities(
    location_id: int,
    payload: CapacityWeeklyCreate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    return capacity_service.define_weekly_slots(
        db,
        location_id=location_id,
        days_of_week=payload.days_of_week,
        time_slots=payload.time_slots,
        total_capacity=payload.total_capacity,
        effective_date=payload.effective_date,
        expiry_date=payload.expiry_date,
        notes=payload.notes,
        actor_user_id=actor_id,
    )


@router.patch("/{slot_id}", response_model=CapacitySlotOut)
def update_capacity(
    location_id: int,
    slot_id: int,
    payload: CapacitySlotUpdate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    capacity_service.get_slot_for_location(db, location_id, slot_id)
    return capacity_service.update_slot(
        db,
        slot_id,
        total_capacity=payload.total_capacity,
        notes=payload.notes,
        is_active=payload.is_active,
        actor_user_id=actor_id,
    )


@router.post("/{slot_id}/deactivate", response_model=CapacitySlotOut)
def deactivate_capacity(
    location_id: int,
    slot_id: int,
    db: Session = Depends(get_db),
    actor_id: int = Depends(require_actor),
):
    capacity_service.get_slot_for_location(db, location_id, slot_id)
    return capacity_service.deactivate(db, slot_id, actor_user_id=actor_id)
