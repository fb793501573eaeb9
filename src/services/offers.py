"""
Ride-offer issuance and driver responses.

Issuing an offer first expires every pending offer of the booking, then
inserts the new one, all inside the booking's transaction: at most one offer
per booking is pending at any time.

``issue_soft`` wraps issuance in a savepoint.  If the offer cannot be
written, only the savepoint is rolled back; the booking transition that
triggered it still commits and the failure is logged.  Drivers can recover
a missed offer through their offer inbox and the booking itself.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.clock import utcnow
from src.domain.enums import BookingStatus, OfferStatus
from src.domain.exceptions import (
    InvalidStateTransition,
    OfferExpired,
    OfferNotFound,
    OfferNotPending,
    ValidationFailed,
)
from src.domain.offers import build_offer_snapshot, effective_status, offer_expiry
from src.infrastructure.models import RideOfferModel
from src.infrastructure.repositories import BookingRepository, RideOfferRepository

logger = logging.getLogger(__name__)


class RideOfferIssuer:
    def __init__(
        self,
        session: AsyncSession,
        window_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.offers = RideOfferRepository(session)
        self.window_seconds = window_seconds or settings.offer_window_seconds
        self._clock = clock

    async def issue(self, booking: Any, driver_id: str) -> RideOfferModel:
        superseded = await self.offers.expire_pending_for_booking(booking.id)
        now = self._clock()
        offer = RideOfferModel(
            booking_id=booking.id,
            driver_id=driver_id,
            snapshot=build_offer_snapshot(booking),
            status=OfferStatus.PENDING,
            created_at=now,
            expires_at=offer_expiry(now, self.window_seconds),
        )
        await self.offers.add(offer)
        logger.info(
            "Offer %s for booking %s sent to driver %s (superseded %d)",
            offer.id,
            booking.id,
            driver_id,
            superseded,
        )
        return offer

    async def issue_soft(self, booking: Any, driver_id: str) -> Optional[RideOfferModel]:
        try:
            async with self.session.begin_nested():
                return await self.issue(booking, driver_id)
        except SQLAlchemyError:
            logger.exception(
                "Could not issue ride offer for booking %s to driver %s",
                booking.id,
                driver_id,
            )
            return None


class OfferResponder:
    """Driver-side accept / decline of an offer addressed to them."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.offers = RideOfferRepository(session)
        self.bookings = BookingRepository(session)
        self._clock = clock

    async def respond(self, offer_id: str, driver_id: str, accept: bool) -> RideOfferModel:
        offer = await self.offers.get_for_update(offer_id)
        if offer is None:
            raise OfferNotFound(offer_id)
        if offer.driver_id != driver_id:
            raise ValidationFailed(
                f"Ride offer {offer_id} is not addressed to driver {driver_id}"
            )

        now = self._clock()
        status = effective_status(offer.status, offer.expires_at, now)
        if status == OfferStatus.EXPIRED:
            raise OfferExpired(offer_id)
        if status != OfferStatus.PENDING:
            raise OfferNotPending(offer_id, status.value)

        if accept:
            booking = await self.bookings.get_by_id(offer.booking_id)
            current = BookingStatus(booking.status)
            if current != BookingStatus.DRIVER_ASSIGNED or booking.driver_id != driver_id:
                raise InvalidStateTransition(
                    "accept_offer",
                    current.value,
                    message=f"Booking {booking.id} is no longer waiting for this driver",
                )

        offer.status = OfferStatus.ACCEPTED if accept else OfferStatus.DECLINED
        offer.responded_at = now
        logger.info(
            "Driver %s %s offer %s", driver_id, offer.status.value, offer_id
        )
        return offer
