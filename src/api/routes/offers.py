"""
Driver offer endpoints
======================

GET  /api/v1/drivers/{driver_id}/offers -- live pending offers for a driver
POST /api/v1/offers/{offer_id}/accept   -- driver accepts
POST /api/v1/offers/{offer_id}/decline  -- driver declines (booking unchanged)
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_booking_service, get_db, get_notifier
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import ErrorResponse, OfferResponseRequest, RideOfferResponse
from src.api.serializers import serialize_offer
from src.infrastructure.notifications import NotificationSink
from src.services.bookings import BookingService
from src.services.offers import OfferResponder

router = APIRouter(tags=["offers"])

_RESPOND_ERRORS = {
    400: {"model": ErrorResponse, "description": "Offer belongs to another driver"},
    404: {"model": ErrorResponse, "description": "Offer not found"},
    409: {"model": ErrorResponse, "description": "Offer expired or already answered"},
}


@router.get(
    "/drivers/{driver_id}/offers",
    response_model=list[RideOfferResponse],
    summary="List a driver's live ride offers",
)
@limiter.limit(RATE_LIMIT)
async def list_driver_offers(
    request: Request,
    driver_id: str,
    service: BookingService = Depends(get_booking_service),
):
    return [serialize_offer(o) for o in await service.list_driver_offers(driver_id)]


async def _respond(
    offer_id: str,
    body: OfferResponseRequest,
    accept: bool,
    db: AsyncSession,
    notifier: NotificationSink,
) -> dict:
    offer = await OfferResponder(db).respond(offer_id, body.driver_id, accept)
    await notifier.publish(
        f"booking:{offer.booking_id}",
        "offer_accepted" if accept else "offer_declined",
        {"offer_id": offer.id, "driver_id": offer.driver_id},
    )
    return serialize_offer(offer)


@router.post(
    "/offers/{offer_id}/accept",
    response_model=RideOfferResponse,
    summary="Accept a ride offer",
    responses=_RESPOND_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def accept_offer(
    request: Request,
    offer_id: str,
    body: OfferResponseRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    return await _respond(offer_id, body, True, db, notifier)


@router.post(
    "/offers/{offer_id}/decline",
    response_model=RideOfferResponse,
    summary="Decline a ride offer",
    responses=_RESPOND_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def decline_offer(
    request: Request,
    offer_id: str,
    body: OfferResponseRequest,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    return await _respond(offer_id, body, False, db, notifier)
