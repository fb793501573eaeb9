"""Ride-offer snapshot and expiry rules."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from .enums import OfferStatus


def build_offer_snapshot(booking: Any) -> dict[str, Any]:
    """
    Denormalise everything a driver needs to accept or decline without a
    second lookup.  Values are JSON-safe.
    """

    def _enum(value):
        return getattr(value, "value", value)

    return {
        "display_booking_id": booking.display_booking_id,
        "pickup_location": booking.pickup_location,
        "dropoff_location": booking.dropoff_location,
        "stops": list(booking.stops or []),
        "fare_estimate": booking.fare_estimate,
        "passenger_id": booking.passenger_id,
        "passenger_name": booking.passenger_name,
        "passenger_phone": booking.passenger_phone,
        "passenger_count": booking.passenger_count,
        "driver_notes": booking.driver_notes,
        "payment_method": _enum(booking.payment_method),
        "is_priority_pickup": bool(booking.is_priority_pickup),
        "priority_fee_amount": booking.priority_fee_amount,
        "wait_and_return": bool(booking.wait_and_return),
        "distance_miles": booking.distance_miles,
        "vehicle_type": booking.vehicle_type,
        "required_operator_id": booking.required_operator_id,
        "account_job_pin": booking.account_job_pin,
        "scheduled_pickup_at": (
            booking.scheduled_pickup_at.isoformat()
            if booking.scheduled_pickup_at
            else None
        ),
    }


def offer_expiry(created_at: datetime, window_seconds: int) -> datetime:
    return created_at + timedelta(seconds=window_seconds)


def effective_status(status: str, expires_at: datetime, now: datetime) -> OfferStatus:
    """A pending offer past its expiry reads as expired even before the sweep."""
    current = OfferStatus(status)
    if current == OfferStatus.PENDING and now >= expires_at:
        return OfferStatus.EXPIRED
    return current
