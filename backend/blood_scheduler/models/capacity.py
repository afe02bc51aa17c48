from __future__ import annotations

import enum
from datetime import date

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from blood_scheduler.models.base import ActorMixin, Base, TimestampMixin


class TimeSlot(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"
    evening = "evening"


class CapacitySlot(Base, TimestampMixin, ActorMixin):
    __tablename__ = "capacity_slots"
    __table_args__ = (
        CheckConstraint("total_capacity >= 0", name="ck_capacity_slots_total_capacity"),
        CheckConstraint("expiry_date >= effective_date", name="ck_capacity_slots_date_range"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_capacity_slots_day_of_week"),
        Index("ix_capacity_slots_location_day", "location_id", "day_of_week"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    time_slot: Mapped[TimeSlot] = mapped_column(
        Enum(TimeSlot, name="time_slot"), nullable=False
    )
    start_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    end_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    total_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def hour_key(self) -> str:
        return f"{self.start_hour}-{self.end_hour}"

    def covers(self, target: date) -> bool:
        return self.effective_date <= target <= self.expiry_date


class SlotReservation(Base):
    """Reservation counter for one concrete (location, date, slot, hour window)."""

    __tablename__ = "slot_reservations"
    __table_args__ = (
        UniqueConstraint(
            "location_id",
            "slot_date",
            "time_slot",
            "start_hour",
            "end_hour",
            name="uq_slot_reservations_slot",
        ),
        CheckConstraint("reserved >= 0", name="ck_slot_reservations_reserved"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(20), nullable=False)
    start_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    end_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    reserved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
