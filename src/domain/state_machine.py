"""
Booking State Machine
=====================

Validates a command against the booking's current status and applies the
status change plus its side-effect fields in place.  Works on anything that
exposes the booking row attributes (the ORM model, or a plain dataclass in
unit tests).

Rules
-----
* The valid-from sets live in ``ACTION_VALID_FROM``; any other
  (status, action) pair raises ``InvalidStateTransition`` and leaves the
  booking untouched.
* ``driver_current_leg_index`` never decreases.  Leg 0 is the approach to the
  pickup, legs 1..N end at the intermediate stops, leg N+1 ends at the
  drop-off.
* Passenger commands name the passenger; anyone else gets ``NotBookingOwner``.
* Every successful command stamps the audit trio and a strictly increasing
  ``updated_at``.

Collaborator work (matching, offers, credit accounts) stays in the service
layer; the machine only needs the resolved driver for assignment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from .clock import utcnow
from .entities import Actor, DriverCandidate
from .enums import ACTION_VALID_FROM, BookingAction, BookingStatus, DispatchMethod
from .exceptions import InvalidStateTransition, NotBookingOwner, ValidationFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    action: BookingAction
    previous_status: BookingStatus
    new_status: BookingStatus


def stamp_audit(booking: Any, actor: Actor, now: Optional[datetime] = None) -> None:
    """Record who changed the booking; ``updated_at`` only moves forward."""
    now = now or utcnow()
    previous = booking.updated_at
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    booking.last_updated_by = actor.id
    booking.last_updated_role = actor.role
    booking.update_channel = actor.channel
    booking.updated_at = now


class BookingStateMachine:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._handlers: dict[BookingAction, Callable[..., None]] = {
            BookingAction.ASSIGN_DRIVER: self._assign_driver,
            BookingAction.AUTO_ASSIGN_DRIVER: self._assign_driver,
            BookingAction.NOTIFY_ARRIVAL: self._notify_arrival,
            BookingAction.START_RIDE: self._start_ride,
            BookingAction.PROCEED_TO_NEXT_LEG: self._proceed_to_next_leg,
            BookingAction.REQUEST_WAIT_AND_RETURN: self._request_wait_and_return,
            BookingAction.ACCEPT_WAIT_AND_RETURN: self._accept_wait_and_return,
            BookingAction.DECLINE_WAIT_AND_RETURN: self._decline_wait_and_return,
            BookingAction.COMPLETE_RIDE: self._complete_ride,
            BookingAction.CANCEL_ACTIVE: self._cancel_active,
            BookingAction.REPORT_NO_SHOW: self._report_no_show,
            BookingAction.OPERATOR_CANCEL_PENDING: self._operator_cancel_pending,
            BookingAction.ACKNOWLEDGE_ARRIVAL: self._acknowledge_arrival,
            BookingAction.PASSENGER_CANCEL_PENDING: self._passenger_cancel_pending,
            BookingAction.RESCHEDULE_PICKUP: self._reschedule_pickup,
            BookingAction.EXPIRE_UNASSIGNED: self._expire_unassigned,
        }

    # ── Validation ────────────────────────────────────────────────

    @staticmethod
    def can_apply(status: BookingStatus, action: BookingAction) -> bool:
        return BookingStatus(status) in ACTION_VALID_FROM.get(action, frozenset())

    def check(
        self,
        booking: Any,
        action: BookingAction,
        expected_status: Optional[BookingStatus] = None,
    ) -> None:
        """Raise unless *action* may be applied to *booking* right now."""
        current = BookingStatus(booking.status)
        if expected_status is not None and BookingStatus(expected_status) != current:
            raise InvalidStateTransition(
                action.value,
                current.value,
                message=(
                    f"Booking is {current.value}, "
                    f"caller expected {BookingStatus(expected_status).value}"
                ),
            )
        if not self.can_apply(current, action):
            raise InvalidStateTransition(action.value, current.value)

    # ── Apply ─────────────────────────────────────────────────────

    def apply(
        self,
        booking: Any,
        command: Any,
        actor: Actor,
        *,
        driver: Optional[DriverCandidate] = None,
    ) -> TransitionResult:
        action = BookingAction(command.action)
        self.check(booking, action, getattr(command, "expected_status", None))

        previous = BookingStatus(booking.status)
        now = self._clock()
        self._handlers[action](booking, command, now, driver=driver)
        stamp_audit(booking, actor, now)

        result = TransitionResult(action, previous, BookingStatus(booking.status))
        logger.info(
            "Booking %s: %s %s -> %s by %s/%s",
            booking.id,
            action.value,
            previous.value,
            result.new_status.value,
            actor.role,
            actor.id,
        )
        return result

    # ── Handlers ──────────────────────────────────────────────────

    def _assign_driver(self, booking, command, now, *, driver=None):
        if driver is None:
            raise ValidationFailed("A driver is required to assign this booking")
        if command.action == BookingAction.AUTO_ASSIGN_DRIVER.value:
            method = DispatchMethod.AUTO_SYSTEM
        elif command.priority_override:
            method = DispatchMethod.PRIORITY_OVERRIDE
        else:
            method = DispatchMethod.MANUAL_OPERATOR

        booking.driver_id = driver.id
        booking.driver_name = driver.name
        booking.driver_vehicle_details = dict(driver.vehicle_details) or None
        booking.dispatch_method = method
        booking.timeout_at = None
        booking.status = BookingStatus.DRIVER_ASSIGNED

    def _notify_arrival(self, booking, command, now, **_):
        booking.notified_passenger_arrival_at = now
        booking.status = BookingStatus.ARRIVED_AT_PICKUP

    def _start_ride(self, booking, command, now, **_):
        current = booking.driver_current_leg_index or 0
        final_leg = len(booking.stops or []) + 1
        leg = command.leg_index if command.leg_index is not None else max(current, 1)

        if leg < current:
            raise ValidationFailed(
                f"Leg index cannot go back from {current} to {leg}",
                current_leg_index=current,
            )
        if leg > final_leg:
            raise ValidationFailed(
                f"Leg index {leg} is beyond the final leg {final_leg}",
                current_leg_index=current,
            )

        if leg != current or booking.current_leg_entry_at is None:
            booking.current_leg_entry_at = now
        booking.driver_current_leg_index = leg
        if booking.ride_started_at is None:
            booking.ride_started_at = now
        if booking.wait_and_return:
            booking.status = BookingStatus.IN_PROGRESS_WAIT_AND_RETURN
        else:
            if booking.status == BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL:
                # the unanswered wait-and-return request lapses
                booking.estimated_additional_wait_time_minutes = None
            booking.status = BookingStatus.IN_PROGRESS

    def _proceed_to_next_leg(self, booking, command, now, **_):
        current = booking.driver_current_leg_index or 0
        stop_count = len(booking.stops or [])
        nxt = command.next_leg_index

        if nxt <= current:
            raise ValidationFailed(
                f"Next leg {nxt} must be after the current leg {current}",
                current_leg_index=current,
            )
        if nxt > stop_count + 1:
            raise ValidationFailed(
                f"Leg index {nxt} is beyond the final leg {stop_count + 1}",
                current_leg_index=current,
            )

        if command.previous_stop_wait_charge is not None:
            if not 1 <= current <= stop_count:
                raise ValidationFailed(
                    "There is no intermediate stop to charge waiting time for",
                    current_leg_index=current,
                )
            # reassign so the JSON column sees the change
            charges = dict(booking.completed_stop_wait_charges or {})
            charges[str(current - 1)] = round(command.previous_stop_wait_charge, 2)
            booking.completed_stop_wait_charges = charges

        booking.driver_current_leg_index = nxt
        booking.current_leg_entry_at = now

    def _request_wait_and_return(self, booking, command, now, **_):
        booking.estimated_additional_wait_time_minutes = command.estimated_wait_minutes
        booking.status = BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL

    def _accept_wait_and_return(self, booking, command, now, **_):
        booking.wait_and_return = True
        if command.fare_estimate is not None:
            booking.fare_estimate = round(command.fare_estimate, 2)
        booking.status = BookingStatus.IN_PROGRESS_WAIT_AND_RETURN

    def _decline_wait_and_return(self, booking, command, now, **_):
        booking.wait_and_return = False
        booking.estimated_additional_wait_time_minutes = None
        booking.status = BookingStatus.IN_PROGRESS

    def _complete_ride(self, booking, command, now, **_):
        fare = round(command.final_fare, 2)
        booking.fare_estimate = fare
        booking.final_calculated_fare = fare
        if command.waiting_charge_at_pickup is not None:
            booking.waiting_charge_at_pickup = round(command.waiting_charge_at_pickup, 2)
        booking.current_leg_entry_at = None
        booking.completed_at = now
        booking.status = BookingStatus.COMPLETED

    def _cancel_active(self, booking, command, now, **_):
        booking.cancelled_at = now
        booking.cancellation_reason = command.reason
        booking.current_leg_entry_at = None
        booking.status = BookingStatus.CANCELLED_BY_DRIVER

    def _report_no_show(self, booking, command, now, **_):
        booking.no_show_fee_applicable = True
        booking.cancelled_at = now
        booking.current_leg_entry_at = None
        booking.status = BookingStatus.CANCELLED_NO_SHOW

    def _operator_cancel_pending(self, booking, command, now, **_):
        booking.cancelled_at = now
        booking.cancellation_reason = command.reason
        booking.timeout_at = None
        booking.status = BookingStatus.CANCELLED_BY_OPERATOR

    def _acknowledge_arrival(self, booking, command, now, **_):
        if booking.passenger_acknowledged_arrival_at is not None:
            raise InvalidStateTransition(
                command.action,
                BookingStatus(booking.status).value,
                message="Passenger has already acknowledged the driver's arrival",
            )
        booking.passenger_acknowledged_arrival_at = now

    def _expire_unassigned(self, booking, command, now, **_):
        booking.cancelled_at = now
        booking.cancellation_reason = "No driver found before the booking timed out"
        booking.timeout_at = None
        booking.status = BookingStatus.CANCELLED_NO_DRIVER

    def _passenger_cancel_pending(self, booking, command, now, **_):
        _require_owner(booking, command.passenger_id)
        booking.cancelled_at = now
        booking.cancellation_reason = command.reason
        booking.timeout_at = None
        booking.status = BookingStatus.CANCELLED_BY_PASSENGER

    def _reschedule_pickup(self, booking, command, now, **_):
        _require_owner(booking, command.passenger_id)
        if command.scheduled_pickup_at is not None and command.scheduled_pickup_at < now:
            raise ValidationFailed("Pickup cannot be rescheduled into the past")
        booking.scheduled_pickup_at = command.scheduled_pickup_at


def _require_owner(booking: Any, passenger_id: str) -> None:
    if booking.passenger_id != passenger_id:
        raise NotBookingOwner(booking.id)
