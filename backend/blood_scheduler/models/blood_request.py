from __future__ import annotations

import enum
from datetime import date

from sqlalchemy import Boolean, Date, Enum, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blood_scheduler.models.base import Base, TimestampMixin


class UrgencyLevel(str, enum.Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class BloodRequestStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    fulfilled = "fulfilled"
    cancelled = "cancelled"


class BloodRequest(Base, TimestampMixin):
    __tablename__ = "blood_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    blood_group_id: Mapped[int] = mapped_column(Integer, nullable=False)
    component_type_id: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_units: Mapped[int] = mapped_column(Integer, nullable=False)
    urgency_level: Mapped[UrgencyLevel] = mapped_column(
        Enum(UrgencyLevel, name="blood_request_urgency"),
        default=UrgencyLevel.medium,
        nullable=False,
    )
    is_emergency: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[BloodRequestStatus] = mapped_column(
        Enum(BloodRequestStatus, name="blood_request_status"),
        default=BloodRequestStatus.pending,
        nullable=False,
    )
    status_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    needed_by_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    appointments = relationship("AppointmentRequest", back_populates="blood_request")

    @property
    def is_urgent(self) -> bool:
        return self.is_emergency or self.urgency_level in (
            UrgencyLevel.critical,
            UrgencyLevel.high,
        )
