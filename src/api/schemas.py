"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.domain.commands import LocationIn
from src.domain.enums import DispatchMode, VehicleType


# ── Requests ──────────────────────────────────────────────────────────


class QuoteRequest(BaseModel):
    pickup_location: LocationIn
    dropoff_location: LocationIn
    stops: list[LocationIn] = Field(default_factory=list, max_length=10)
    vehicle_type: VehicleType = VehicleType.CAR
    passenger_count: int = Field(1, ge=1, le=16)
    wait_and_return: bool = False
    estimated_wait_minutes: int = Field(0, ge=0)
    is_priority_pickup: bool = False
    priority_fee_amount: Optional[float] = Field(None, ge=0)
    surge: bool = False


class DispatchModeUpdate(BaseModel):
    dispatch_mode: DispatchMode


class OfferResponseRequest(BaseModel):
    driver_id: str = Field(..., min_length=1)


# ── Responses ─────────────────────────────────────────────────────────


class TimestampOut(BaseModel):
    seconds: int
    nanoseconds: int


class LocationOut(BaseModel):
    address: str
    latitude: float
    longitude: float
    door_or_flat: Optional[str] = None


class BookingResponse(BaseModel):
    id: str
    display_booking_id: str
    status: str

    passenger_id: str
    passenger_name: str
    passenger_phone: Optional[str] = None
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    driver_vehicle_details: Optional[dict[str, Any]] = None

    pickup_location: LocationOut
    dropoff_location: LocationOut
    stops: list[LocationOut] = []

    fare_estimate: float
    final_calculated_fare: Optional[float] = None
    payment_method: str
    account_job_pin: Optional[str] = None
    is_priority_pickup: bool = False
    priority_fee_amount: Optional[float] = None
    wait_and_return: bool = False
    estimated_additional_wait_time_minutes: Optional[int] = None
    waiting_charge_at_pickup: Optional[float] = None
    no_show_fee_applicable: bool = False

    driver_current_leg_index: int = 0
    completed_stop_wait_charges: dict[str, float] = {}
    cancellation_reason: Optional[str] = None

    originating_operator_id: str
    required_operator_id: Optional[str] = None
    dispatch_method: Optional[str] = None
    vehicle_type: Optional[str] = None
    passenger_count: int = 1
    driver_notes: Optional[str] = None
    distance_miles: Optional[float] = None

    booked_at: Optional[TimestampOut] = None
    scheduled_pickup_at: Optional[TimestampOut] = None
    notified_passenger_arrival_at: Optional[TimestampOut] = None
    passenger_acknowledged_arrival_at: Optional[TimestampOut] = None
    ride_started_at: Optional[TimestampOut] = None
    completed_at: Optional[TimestampOut] = None
    cancelled_at: Optional[TimestampOut] = None
    current_leg_entry_at: Optional[TimestampOut] = None
    timeout_at: Optional[TimestampOut] = None

    last_updated_by: Optional[str] = None
    last_updated_role: Optional[str] = None
    update_channel: Optional[str] = None
    updated_at: Optional[TimestampOut] = None


class ActionResponse(BaseModel):
    booking: BookingResponse
    action: str
    previous_status: str
    changed: bool = True
    message: Optional[str] = None
    manual_assignment_required: bool = False
    offer_id: Optional[str] = None
    offer_issued: Optional[bool] = None
    driver_distance_m: Optional[float] = None
    credit_account_balance: Optional[float] = None


class CreateBookingResponse(BaseModel):
    booking: BookingResponse
    assignment: Optional[ActionResponse] = None


class RideOfferResponse(BaseModel):
    id: str
    booking_id: str
    driver_id: str
    status: str
    snapshot: dict[str, Any]
    created_at: TimestampOut
    expires_at: TimestampOut
    responded_at: Optional[TimestampOut] = None


class QuoteResponse(BaseModel):
    fare_estimate: float
    distance_miles: float
    duration_minutes: float
    surge_multiplier: float
    breakdown: dict[str, float] = {}


class DispatchModeResponse(BaseModel):
    operator_id: str
    dispatch_mode: DispatchMode


class GeneratedBookingIdResponse(BaseModel):
    success: bool = True
    booking_id: str
    operator_code: str
    sequence_number: int


class SweepResponse(BaseModel):
    offers_expired: int
    bookings_expired: int


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    message: str
    kind: str
