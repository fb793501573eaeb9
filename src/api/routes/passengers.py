"""
Passenger endpoints
===================

GET /api/v1/passengers/{passenger_id}/active-booking -- ride in progress, or null
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_booking_service
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import BookingResponse
from src.api.serializers import serialize_booking
from src.services.bookings import BookingService

router = APIRouter(prefix="/passengers", tags=["passengers"])


@router.get(
    "/{passenger_id}/active-booking",
    response_model=Optional[BookingResponse],
    summary="Get the passenger's active booking",
    description="Returns the most recent booking with a driver attached, or null.",
)
@limiter.limit(RATE_LIMIT)
async def get_active_booking(
    request: Request,
    passenger_id: str,
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.get_active_booking_for_passenger(passenger_id)
    return serialize_booking(booking) if booking else None
