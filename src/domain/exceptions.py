"""
Dispatch error taxonomy.

Every error raised by the domain and service layers derives from
``DispatchError`` and carries a machine-checkable ``kind`` plus the HTTP
status the API layer renders it with.
"""

from __future__ import annotations

from typing import Any, Optional


class DispatchError(Exception):
    kind = "dispatch_error"
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "kind": self.kind, **self.extra}


class ValidationFailed(DispatchError):
    """Structurally valid request whose values make no sense for the booking."""

    kind = "validation_error"
    status_code = 400


class NotFound(DispatchError):
    kind = "not_found"
    status_code = 404


class BookingNotFound(NotFound):
    def __init__(self, booking_id: str):
        super().__init__(f"Booking with ID {booking_id} not found.", booking_id=booking_id)


class DriverNotFound(NotFound):
    def __init__(self, driver_id: str):
        super().__init__(f"Driver with ID {driver_id} not found.", driver_id=driver_id)


class OfferNotFound(NotFound):
    def __init__(self, offer_id: str):
        super().__init__(f"Ride offer with ID {offer_id} not found.", offer_id=offer_id)


class NotBookingOwner(DispatchError):
    """A passenger acted on a booking that belongs to someone else."""

    kind = "forbidden"
    status_code = 403

    def __init__(self, booking_id: str):
        super().__init__(
            f"You are not authorized to change booking {booking_id}.",
            booking_id=booking_id,
        )


class InvalidStateTransition(DispatchError):
    """Raised when an action is not legal from the booking's current status."""

    kind = "precondition_violation"
    status_code = 409

    def __init__(self, action: str, current_status: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot apply {action} to a booking in status {current_status}",
            action=action,
            current_status=current_status,
        )
        self.action = action
        self.current_status = current_status


class OfferNotPending(DispatchError):
    kind = "precondition_violation"
    status_code = 409

    def __init__(self, offer_id: str, current_status: str):
        super().__init__(
            f"Ride offer {offer_id} is already {current_status}",
            offer_id=offer_id,
            current_status=current_status,
        )


class OfferExpired(DispatchError):
    kind = "precondition_violation"
    status_code = 409

    def __init__(self, offer_id: str):
        super().__init__(
            f"Ride offer {offer_id} has expired",
            offer_id=offer_id,
            current_status="expired",
        )


class NoDriverAvailable(DispatchError):
    kind = "no_driver_available"
    status_code = 409

    def __init__(self, operator_code: Optional[str] = None):
        msg = "No driver available near the pickup location"
        if operator_code:
            msg += f" for operator {operator_code}"
        super().__init__(msg, operator_code=operator_code)


class ConcurrentModification(DispatchError):
    """The booking changed between our read and our write."""

    kind = "concurrent_modification"
    status_code = 409


class CounterCorrupted(DispatchError):
    kind = "collaborator_failure"
    status_code = 500

    def __init__(self, counter_id: str, value: Any):
        super().__init__(
            f"Counter {counter_id} holds an invalid value: {value!r}",
            counter_id=counter_id,
        )
