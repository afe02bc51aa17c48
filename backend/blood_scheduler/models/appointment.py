from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blood_scheduler.models.base import Base, TimestampMixin
from blood_scheduler.models.capacity import TimeSlot


class RequestType(str, enum.Enum):
    donor_initiated = "donor_initiated"
    staff_assignment = "staff_assignment"
    walk_in = "walk_in"


class AppointmentStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    expired = "expired"
    checked_in = "checked_in"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_APPOINTMENT_STATUSES


TERMINAL_APPOINTMENT_STATUSES = frozenset(
    {
        AppointmentStatus.rejected,
        AppointmentStatus.cancelled,
        AppointmentStatus.expired,
        AppointmentStatus.completed,
        AppointmentStatus.failed,
    }
)

# Statuses that hand the slot back when entered.
RELEASING_STATUSES = frozenset(
    {AppointmentStatus.rejected, AppointmentStatus.cancelled, AppointmentStatus.expired}
)


class AppointmentRequest(Base, TimestampMixin):
    __tablename__ = "appointment_requests"
    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 5", name="ck_appointment_requests_priority"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    donor_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    capacity_slot_id: Mapped[int] = mapped_column(
        ForeignKey("capacity_slots.id"), nullable=False
    )
    blood_group_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    component_type_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    preferred_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    preferred_time_slot: Mapped[TimeSlot] = mapped_column(
        Enum(TimeSlot, name="time_slot"), nullable=False
    )
    start_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    end_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    request_type: Mapped[RequestType] = mapped_column(
        Enum(RequestType, name="appointment_request_type"), nullable=False
    )
    initiated_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_request_status"),
        default=AppointmentStatus.pending,
        nullable=False,
        index=True,
    )
    is_urgent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    related_blood_request_id: Mapped[int | None] = mapped_column(
        ForeignKey("blood_requests.id"), nullable=True, index=True
    )
    auto_expire_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    donor_accepted: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    donor_response_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    donor_response_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    reviewed_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    confirmed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    confirmed_time_slot: Mapped[TimeSlot | None] = mapped_column(
        Enum(TimeSlot, name="time_slot"), nullable=True
    )
    confirmed_location_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    check_in_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    capacity_slot = relationship("CapacitySlot", lazy="joined")
    blood_request = relationship("BloodRequest", back_populates="appointments")
    donation_event = relationship(
        "DonationEvent", back_populates="appointment", uselist=False
    )

    @property
    def awaiting_donor_response(self) -> bool:
        return (
            self.request_type == RequestType.staff_assignment
            and self.status == AppointmentStatus.pending
            and self.donor_accepted is None
        )
