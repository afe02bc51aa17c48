from blood_scheduler.models.base import Base
from blood_scheduler.models.audit_log import AuditLog
from blood_scheduler.models.capacity import CapacitySlot, SlotReservation, TimeSlot
from blood_scheduler.models.blood_request import BloodRequest, BloodRequestStatus, UrgencyLevel
from blood_scheduler.models.appointment import (
    AppointmentRequest,
    AppointmentStatus,
    RequestType,
)
from blood_scheduler.models.donation_event import DonationEvent, DonationEventStatus

__all__ = [
    "Base",
    "AuditLog",
    "CapacitySlot",
    "SlotReservation",
    "TimeSlot",
    "BloodRequest",
    "BloodRequestStatus",
    "UrgencyLevel",
    "AppointmentRequest",
    "AppointmentStatus",
    "RequestType",
    "DonationEvent",
    "DonationEventStatus",
]
