"""
Booking commands -- the closed set of actions a caller may request.

Commands form a pydantic discriminated union on ``action``; there is no
"write this status" escape hatch.  Each command may carry
``expected_status``, a compare-and-swap token that makes the action fail if
the booking moved on since the caller last read it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, RootModel, field_validator

from .clock import as_utc
from .enums import BookingStatus, PaymentMethod, VehicleType

OPERATOR_CODE_PATTERN = r"^[A-Za-z0-9_-]{1,24}$"


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class _Command(BaseModel):
    expected_status: Optional[BookingStatus] = Field(
        None,
        description="Reject the action unless the booking is still in this status.",
    )


class AssignDriver(_Command):
    action: Literal["assign_driver"] = "assign_driver"
    driver_id: str = Field(..., min_length=1, max_length=64)
    priority_override: bool = False


class AutoAssignDriver(_Command):
    action: Literal["auto_assign_driver"] = "auto_assign_driver"
    operator_code: Optional[str] = Field(
        None,
        pattern=OPERATOR_CODE_PATTERN,
        description="Only consider drivers of this operator. "
        "Must match the booking's required operator, if it has one.",
    )


class NotifyArrival(_Command):
    action: Literal["notify_arrival"] = "notify_arrival"
    driver_location: Optional[LatLng] = None


class StartRide(_Command):
    action: Literal["start_ride"] = "start_ride"
    leg_index: Optional[int] = Field(None, ge=1)


class ProceedToNextLeg(_Command):
    action: Literal["proceed_to_next_leg"] = "proceed_to_next_leg"
    next_leg_index: int = Field(..., ge=1)
    previous_stop_wait_charge: Optional[float] = Field(None, ge=0)


class RequestWaitAndReturn(_Command):
    action: Literal["request_wait_and_return"] = "request_wait_and_return"
    estimated_wait_minutes: int = Field(..., ge=0, le=24 * 60)


class AcceptWaitAndReturn(_Command):
    action: Literal["accept_wait_and_return"] = "accept_wait_and_return"
    fare_estimate: Optional[float] = Field(None, ge=0)


class DeclineWaitAndReturn(_Command):
    action: Literal["decline_wait_and_return"] = "decline_wait_and_return"


class CompleteRide(_Command):
    action: Literal["complete_ride"] = "complete_ride"
    final_fare: float = Field(..., ge=0)
    waiting_charge_at_pickup: Optional[float] = Field(None, ge=0)


class CancelActive(_Command):
    action: Literal["cancel_active"] = "cancel_active"
    reason: Optional[str] = Field(None, max_length=500)


class ReportNoShow(_Command):
    action: Literal["report_no_show"] = "report_no_show"


class OperatorCancelPending(_Command):
    action: Literal["operator_cancel_pending"] = "operator_cancel_pending"
    reason: Optional[str] = Field(None, max_length=500)


class AcknowledgeArrival(_Command):
    action: Literal["acknowledge_arrival"] = "acknowledge_arrival"


class PassengerCancelPending(_Command):
    """Passenger withdraws a booking no driver has taken yet."""

    action: Literal["passenger_cancel_pending"] = "passenger_cancel_pending"
    passenger_id: str = Field(..., min_length=1, max_length=64)
    reason: Optional[str] = Field(None, max_length=500)


class ReschedulePickup(_Command):
    action: Literal["reschedule_pickup"] = "reschedule_pickup"
    passenger_id: str = Field(..., min_length=1, max_length=64)
    scheduled_pickup_at: Optional[datetime] = Field(
        ..., description="New pickup time; null books the ride for as soon as possible."
    )

    @field_validator("scheduled_pickup_at")
    @classmethod
    def normalise_pickup_time(cls, value):
        return as_utc(value)


class ExpireUnassigned(_Command):
    action: Literal["expire_unassigned"] = "expire_unassigned"


BookingCommand = Annotated[
    Union[
        AssignDriver,
        AutoAssignDriver,
        NotifyArrival,
        StartRide,
        ProceedToNextLeg,
        RequestWaitAndReturn,
        AcceptWaitAndReturn,
        DeclineWaitAndReturn,
        CompleteRide,
        CancelActive,
        ReportNoShow,
        OperatorCancelPending,
        AcknowledgeArrival,
        PassengerCancelPending,
        ReschedulePickup,
    ],
    Field(discriminator="action"),
]


class BookingActionRequest(RootModel[BookingCommand]):
    """Request body wrapper so the union validates as one model."""


# ── Booking creation / detail patches ─────────────────────────────────


class LocationIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=300)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    door_or_flat: Optional[str] = Field(None, max_length=60)


class CreateBooking(BaseModel):
    """Offer details a booking is created from."""

    passenger_id: str = Field(..., min_length=1, max_length=64)
    passenger_name: str = Field(..., min_length=1, max_length=120)
    passenger_phone: Optional[str] = Field(None, max_length=32)
    pickup_location: LocationIn
    dropoff_location: LocationIn
    stops: list[LocationIn] = Field(default_factory=list, max_length=10)
    fare_estimate: Optional[float] = Field(
        None, ge=0, description="Omit to have the server estimate the fare."
    )
    distance_miles: Optional[float] = Field(None, ge=0)
    payment_method: PaymentMethod = PaymentMethod.CARD
    vehicle_type: VehicleType = VehicleType.CAR
    passenger_count: int = Field(1, ge=1, le=16)
    is_priority_pickup: bool = False
    priority_fee_amount: Optional[float] = Field(None, ge=0)
    wait_and_return: bool = False
    estimated_additional_wait_time_minutes: Optional[int] = Field(None, ge=0)
    driver_notes: Optional[str] = Field(None, max_length=1000)
    operator_code: Optional[str] = Field(
        None,
        pattern=OPERATOR_CODE_PATTERN,
        description="Operator whose numbering the booking uses.",
    )
    required_operator_id: Optional[str] = Field(None, pattern=OPERATOR_CODE_PATTERN)
    driver_id: Optional[str] = Field(
        None,
        max_length=64,
        description="Assign this driver immediately (accepted offer).",
    )
    scheduled_pickup_at: Optional[datetime] = Field(
        None, description="Pickup time for advance bookings; omit for as soon as possible."
    )

    @field_validator("scheduled_pickup_at")
    @classmethod
    def normalise_pickup_time(cls, value):
        return as_utc(value)


class BookingDetailsPatch(BaseModel):
    """Fields that may change outside the state machine."""

    passenger_phone: Optional[str] = Field(None, max_length=32)
    driver_notes: Optional[str] = Field(None, max_length=1000)
    driver_vehicle_details: Optional[dict[str, str]] = None
    fare_estimate: Optional[float] = Field(None, ge=0)

    model_config = {"extra": "forbid"}

    @field_validator("fare_estimate")
    @classmethod
    def fare_estimate_not_null(cls, value):
        # omit the field to leave the fare alone
        if value is None:
            raise ValueError("fare_estimate cannot be null")
        return value
