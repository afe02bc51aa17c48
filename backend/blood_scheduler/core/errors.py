"""Error taxonomy shared by every engine operation.

None of these are retried by the engine itself; the HTTP layer turns them
into JSON responses using ``status_code``.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> Any:
        return self.message


class ValidationError(SchedulingError):
    """Malformed or missing input. Surfaced verbatim."""

    status_code = 422


class NotFoundError(SchedulingError):
    status_code = 404


class ConflictError(SchedulingError):
    """Overlapping capacity definitions or duplicate bookings."""

    status_code = 409


class CapacityExhausted(SchedulingError):
    status_code = 409


class SlotUnavailable(SchedulingError):
    """Slot deactivated, expired or already started between selection and booking."""

    status_code = 409


class InvalidStateTransition(SchedulingError):
    status_code = 409

    def __init__(self, current: Any, target: Any, reason: str | None = None):
        self.current = getattr(current, "value", current)
        self.target = getattr(target, "value", target)
        message = f"Cannot move from {self.current} to {self.target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AssignmentFailed(SchedulingError):
    """Every donor in a bulk assignment failed."""

    status_code = 409

    def __init__(self, failures: list[tuple[int, SchedulingError]]):
        self.failures = failures
        super().__init__(f"All {len(failures)} donor assignment(s) failed")

    def to_detail(self) -> Any:
        return {
            "message": self.message,
            "failures": [
                {"donor_id": donor_id, "error": type(exc).__name__, "detail": exc.message}
                for donor_id, exc in self.failures
            ],
        }
