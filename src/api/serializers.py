"""
Transport-safe projections of ORM rows.

Timestamps leave the service as ``{"seconds": ..., "nanoseconds": ...}``
since the Unix epoch (UTC).  Every booking projection carries a
``display_booking_id``; rows created before sequential numbering get one
derived from their operator prefix and internal id.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from src.domain.identifiers import legacy_display_id

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

BOOKING_TIMESTAMP_FIELDS = (
    "booked_at",
    "scheduled_pickup_at",
    "notified_passenger_arrival_at",
    "passenger_acknowledged_arrival_at",
    "ride_started_at",
    "completed_at",
    "cancelled_at",
    "current_leg_entry_at",
    "timeout_at",
    "updated_at",
)

BOOKING_FIELDS = (
    "id",
    "passenger_id",
    "passenger_name",
    "passenger_phone",
    "driver_id",
    "driver_name",
    "driver_vehicle_details",
    "pickup_location",
    "dropoff_location",
    "stops",
    "fare_estimate",
    "final_calculated_fare",
    "payment_method",
    "account_job_pin",
    "is_priority_pickup",
    "priority_fee_amount",
    "wait_and_return",
    "estimated_additional_wait_time_minutes",
    "waiting_charge_at_pickup",
    "no_show_fee_applicable",
    "status",
    "driver_current_leg_index",
    "completed_stop_wait_charges",
    "cancellation_reason",
    "originating_operator_id",
    "required_operator_id",
    "dispatch_method",
    "vehicle_type",
    "passenger_count",
    "driver_notes",
    "distance_miles",
    "last_updated_by",
    "last_updated_role",
    "update_channel",
)


def serialize_timestamp(value: Optional[datetime]) -> Optional[dict[str, int]]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return {
        "seconds": delta.days * 86_400 + delta.seconds,
        "nanoseconds": delta.microseconds * 1_000,
    }


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def serialize_booking(booking: Any) -> dict[str, Any]:
    data = {name: _plain(getattr(booking, name)) for name in BOOKING_FIELDS}
    for name in BOOKING_TIMESTAMP_FIELDS:
        data[name] = serialize_timestamp(getattr(booking, name))
    data["display_booking_id"] = booking.display_booking_id or legacy_display_id(
        booking.originating_operator_id, booking.id
    )
    data["stops"] = list(data["stops"] or [])
    data["completed_stop_wait_charges"] = dict(data["completed_stop_wait_charges"] or {})
    return data


def serialize_offer(offer: Any, status: Optional[str] = None) -> dict[str, Any]:
    return {
        "id": offer.id,
        "booking_id": offer.booking_id,
        "driver_id": offer.driver_id,
        "status": status or _plain(offer.status),
        "snapshot": offer.snapshot,
        "created_at": serialize_timestamp(offer.created_at),
        "expires_at": serialize_timestamp(offer.expires_at),
        "responded_at": serialize_timestamp(offer.responded_at),
    }


def serialize_outcome(outcome: Any) -> dict[str, Any]:
    return {
        "booking": serialize_booking(outcome.booking),
        "action": _plain(outcome.action),
        "previous_status": _plain(outcome.previous_status),
        "changed": outcome.changed,
        "message": outcome.message,
        "manual_assignment_required": outcome.manual_assignment_required,
        "offer_id": outcome.offer_id,
        "offer_issued": outcome.offer_issued,
        "driver_distance_m": outcome.driver_distance_m,
        "credit_account_balance": outcome.credit_account_balance,
    }
