from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blood_scheduler.models.base import Base, TimestampMixin


class DonationEventStatus(str, enum.Enum):
    pending = "pending"
    checked_in = "checked_in"
    health_check_passed = "health_check_passed"
    rejected = "rejected"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            DonationEventStatus.rejected,
            DonationEventStatus.completed,
            DonationEventStatus.failed,
        )


class DonationEvent(Base, TimestampMixin):
    __tablename__ = "donation_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    appointment_request_id: Mapped[int] = mapped_column(
        ForeignKey("appointment_requests.id"), nullable=False, unique=True
    )
    donor_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(Integer, nullable=False)
    blood_group_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    component_type_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    staff_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[DonationEventStatus] = mapped_column(
        Enum(DonationEventStatus, name="donation_event_status"),
        default=DonationEventStatus.pending,
        nullable=False,
        index=True,
    )
    check_in_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # health check
    blood_pressure: Mapped[str | None] = mapped_column(String(20), nullable=True)
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    hemoglobin_level: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    height: Mapped[float | None] = mapped_column(Float, nullable=True)
    verified_blood_group_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_eligible: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    medical_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    health_check_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # collection
    donation_start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    donation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    quantity_donated: Mapped[float | None] = mapped_column(Float, nullable=True)
    quantity_units: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # complication
    complication_type: Mapped[str | None] = mapped_column(String(120), nullable=True)
    complication_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    collected_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_usable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    action_taken: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    appointment = relationship("AppointmentRequest", back_populates="donation_event")
