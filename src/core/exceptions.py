"""
Domain exceptions for the scheduling core.

Services raise these; the API layer turns them into JSON error responses
through the handler registered in ``src.main``.
"""
from typing import Any

from fastapi import status


class SchedulingError(Exception):
    """Base exception for all scheduling errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "SCHEDULING_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(SchedulingError):
    """Malformed or out-of-range input that reached the core."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"


class NotFoundError(SchedulingError):
    """Slot, session, availability or notification does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class AuthorizationError(SchedulingError):
    """Actor lacks rights over the targeted resource."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class CapacityExceededError(SchedulingError):
    """Time slot is fully booked."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "CAPACITY_EXCEEDED"

    def __init__(self, time_slot_id: Any, max_bookings: int | None = None):
        super().__init__(
            message="Time slot is fully booked",
            details={
                "time_slot_id": str(time_slot_id),
                "max_bookings": max_bookings,
            },
        )


class ConflictError(SchedulingError):
    """Requested interval overlaps an existing session."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "SCHEDULE_CONFLICT"


class InvalidStateTransitionError(SchedulingError):
    """Transition is not permitted from the session's current state."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "INVALID_STATE_TRANSITION"

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Cannot move session from {current} to {target}",
            details={"current_status": current, "target_status": target},
        )


class BulkBookingError(SchedulingError):
    """One or more entries of a bulk booking failed; nothing was committed."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "BULK_BOOKING_REJECTED"

    def __init__(self, failures: list[dict[str, Any]]):
        super().__init__(
            message=f"{len(failures)} of the requested sessions cannot be booked",
            details={"failures": failures},
        )
        self.failures = failures
