"""Facts handed to the inventory and notification collaborators.

Dispatch happens after the engine has committed; a failing handler is logged
and never affects engine state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Union

logger = logging.getLogger("blood_scheduler.outbound")


@dataclass(frozen=True)
class UnitsCollected:
    donation_event_id: int
    blood_group_id: int | None
    component_type_id: int | None
    quantity_units: int
    volume_ml: float | None = None
    partial: bool = False


@dataclass(frozen=True)
class UrgentAppointmentCreated:
    appointment_request_id: int
    donor_id: int
    location_id: int
    priority: int
    related_blood_request_id: int | None = None


@dataclass(frozen=True)
class BloodRequestStatusChanged:
    blood_request_id: int
    previous_status: str
    status: str
    note: str | None = None


Notice = Union[UrgentAppointmentCreated, BloodRequestStatusChanged]

InventoryHandler = Callable[[UnitsCollected], None]
NotificationHandler = Callable[[Notice], None]

_inventory_handlers: list[InventoryHandler] = []
_notification_handlers: list[NotificationHandler] = []


def subscribe_inventory(handler: InventoryHandler) -> None:
    _inventory_handlers.append(handler)


def subscribe_notifications(handler: NotificationHandler) -> None:
    _notification_handlers.append(handler)


def unsubscribe_all() -> None:
    _inventory_handlers.clear()
    _notification_handlers.clear()


def _dispatch(handlers, fact) -> None:
    for handler in list(handlers):
        try:
            handler(fact)
        except Exception:
            logger.exception("Outbound handler %r failed for %s", handler, type(fact).__name__)


def emit_units_collected(fact: UnitsCollected) -> None:
    logger.info(
        "Units collected: event=%s units=%s blood_group=%s partial=%s",
        fact.donation_event_id,
        fact.quantity_units,
        fact.blood_group_id,
        fact.partial,
    )
    _dispatch(_inventory_handlers, fact)


def emit_notice(notice: Notice) -> None:
    logger.info("Notice: %s", notice)
    _dispatch(_notification_handlers, notice)
