"""
Booking endpoints
=================

POST  /api/v1/bookings                     -- create a booking (201)
POST  /api/v1/bookings/quote               -- fare estimate without booking
GET   /api/v1/bookings/{booking_id}        -- serialized booking
POST  /api/v1/bookings/{booking_id}        -- apply one lifecycle action
PATCH /api/v1/bookings/{booking_id}        -- edit non-status details
GET   /api/v1/bookings/{booking_id}/offers -- ride offers issued for the booking
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_actor, get_booking_service
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    ActionResponse,
    BookingResponse,
    CreateBookingResponse,
    ErrorResponse,
    QuoteRequest,
    QuoteResponse,
    RideOfferResponse,
)
from src.api.serializers import serialize_booking, serialize_offer, serialize_outcome
from src.config import settings
from src.domain.commands import BookingActionRequest, BookingDetailsPatch, CreateBooking
from src.domain.entities import Actor, Coordinates
from src.domain.pricing import PricingEngine
from src.services.bookings import BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])

_ERRORS = {
    404: {"model": ErrorResponse, "description": "Booking not found"},
    409: {"model": ErrorResponse, "description": "Action not valid in the current status"},
}


@router.post(
    "",
    status_code=201,
    response_model=CreateBookingResponse,
    summary="Create a booking from an accepted quote",
    responses={409: _ERRORS[409]},
)
@limiter.limit(RATE_LIMIT)
async def create_booking(
    request: Request,
    body: CreateBooking,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    booking, outcome = await service.create_booking_from_offer(body, actor)
    return {
        "booking": serialize_booking(booking),
        "assignment": serialize_outcome(outcome) if outcome else None,
    }


@router.post("/quote", response_model=QuoteResponse, summary="Estimate a fare")
@limiter.limit(RATE_LIMIT)
async def quote(request: Request, body: QuoteRequest):
    engine = PricingEngine(settings.average_speed_mph)
    result = engine.estimate(
        Coordinates(body.pickup_location.latitude, body.pickup_location.longitude),
        Coordinates(body.dropoff_location.latitude, body.dropoff_location.longitude),
        [Coordinates(s.latitude, s.longitude) for s in body.stops],
        vehicle_type=body.vehicle_type,
        passengers=body.passenger_count,
        wait_and_return=body.wait_and_return,
        wait_minutes=body.estimated_wait_minutes,
        priority_fee=body.priority_fee_amount if body.is_priority_pickup else None,
        surge=body.surge,
    )
    return QuoteResponse(
        fare_estimate=result.fare_estimate,
        distance_miles=result.distance_miles,
        duration_minutes=result.duration_minutes,
        surge_multiplier=result.surge_multiplier,
        breakdown=result.breakdown,
    )


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get a booking",
    responses={404: _ERRORS[404]},
)
@limiter.limit(RATE_LIMIT)
async def get_booking(
    request: Request,
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
):
    return serialize_booking(await service.get_booking(booking_id))


@router.post(
    "/{booking_id}",
    response_model=ActionResponse,
    summary="Apply a lifecycle action",
    description=(
        "The body names exactly one action (``assign_driver``, "
        "``auto_assign_driver``, ``notify_arrival``, ``start_ride`` ...). "
        "Include ``expected_status`` to reject the action if the booking "
        "changed since it was last read."
    ),
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def apply_action(
    request: Request,
    booking_id: str,
    body: BookingActionRequest,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    outcome = await service.apply_action(booking_id, body.root, actor)
    return serialize_outcome(outcome)


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Update booking details",
    description="Edits contact details, notes or the fare estimate; never the status.",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def patch_booking(
    request: Request,
    booking_id: str,
    body: BookingDetailsPatch,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.patch_booking_details(booking_id, body, actor)
    return serialize_booking(booking)


@router.get(
    "/{booking_id}/offers",
    response_model=list[RideOfferResponse],
    summary="List ride offers for a booking",
    responses={404: _ERRORS[404]},
)
@limiter.limit(RATE_LIMIT)
async def list_booking_offers(
    request: Request,
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
):
    return [
        serialize_offer(offer, status)
        for offer, status in await service.list_offers(booking_id)
    ]
