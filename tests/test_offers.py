"""Tests for ride-offer issuance, expiry and driver responses."""

from datetime import timedelta

import pytest

from src.domain.enums import BookingStatus, OfferStatus
from src.domain.exceptions import (
    InvalidStateTransition,
    OfferExpired,
    OfferNotFound,
    OfferNotPending,
    ValidationFailed,
)
from src.domain.offers import build_offer_snapshot, effective_status, offer_expiry
from src.infrastructure.repositories import RideOfferRepository
from src.services.bookings import BookingService
from src.services.offers import OfferResponder, RideOfferIssuer
from tests.conftest import TEST_ACTOR, add_all, booking_payload, make_driver


async def _assigned_booking(session, clock, driver_id="drv-1"):
    await add_all(
        session,
        make_driver("drv-1", 51.5075, -0.1279),
        make_driver("drv-2", 51.5080, -0.1290),
    )
    service = BookingService(session, clock=clock)
    booking, outcome = await service.create_booking_from_offer(
        booking_payload(driver_id=driver_id), TEST_ACTOR
    )
    return booking, outcome


class TestOfferRules:
    def test_expiry_window(self, clock):
        assert offer_expiry(clock.now, 30) == clock.now + timedelta(seconds=30)

    def test_pending_offer_reads_expired_after_window(self, clock):
        expires = clock.now + timedelta(seconds=30)
        assert effective_status("pending", expires, clock.now) == OfferStatus.PENDING
        assert (
            effective_status("pending", expires, expires) == OfferStatus.EXPIRED
        )

    def test_answered_offer_keeps_status_after_window(self, clock):
        expires = clock.now - timedelta(seconds=1)
        assert effective_status("accepted", expires, clock.now) == OfferStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_snapshot_is_denormalised(self, db_session, clock):
        booking, _ = await _assigned_booking(db_session, clock)
        snapshot = build_offer_snapshot(booking)
        assert snapshot["display_booking_id"] == "OP001/00000001"
        assert snapshot["pickup_location"]["address"] == "1 Pickup Street"
        assert snapshot["payment_method"] == "card"
        assert snapshot["fare_estimate"] == 15.0


class TestRideOfferIssuer:
    @pytest.mark.asyncio
    async def test_assignment_issues_one_pending_offer(self, db_session, clock):
        booking, outcome = await _assigned_booking(db_session, clock)

        assert outcome.offer_issued is True
        offers = await RideOfferRepository(db_session).list_for_booking(booking.id)
        assert len(offers) == 1
        assert offers[0].driver_id == "drv-1"
        assert offers[0].status == OfferStatus.PENDING
        assert offers[0].expires_at == clock.now + timedelta(seconds=30)

    @pytest.mark.asyncio
    async def test_new_offer_supersedes_pending_one(self, db_session, clock):
        booking, outcome = await _assigned_booking(db_session, clock)
        issuer = RideOfferIssuer(db_session, clock=clock)

        clock.advance(seconds=5)
        second = await issuer.issue(booking, "drv-2")

        offers = await RideOfferRepository(db_session).list_for_booking(booking.id)
        by_id = {o.id: o for o in offers}
        assert by_id[outcome.offer_id].status == OfferStatus.EXPIRED
        assert by_id[second.id].status == OfferStatus.PENDING
        assert sum(o.status == OfferStatus.PENDING for o in offers) == 1

    @pytest.mark.asyncio
    async def test_driver_inbox_hides_expired_offers(self, db_session, clock):
        await _assigned_booking(db_session, clock)
        repo = RideOfferRepository(db_session)

        assert len(await repo.list_live_for_driver("drv-1", clock.now)) == 1
        clock.advance(seconds=31)
        assert await repo.list_live_for_driver("drv-1", clock.now) == []

    @pytest.mark.asyncio
    async def test_overdue_offers_are_swept(self, db_session, clock):
        booking, _ = await _assigned_booking(db_session, clock)
        repo = RideOfferRepository(db_session)

        assert await repo.expire_overdue(clock.now) == 0
        clock.advance(seconds=30)
        assert await repo.expire_overdue(clock.now) == 1

        offers = await repo.list_for_booking(booking.id)
        assert offers[0].status == OfferStatus.EXPIRED


class TestOfferResponder:
    @pytest.mark.asyncio
    async def test_accept(self, db_session, clock):
        _, outcome = await _assigned_booking(db_session, clock)
        clock.advance(seconds=10)

        offer = await OfferResponder(db_session, clock=clock).respond(
            outcome.offer_id, "drv-1", accept=True
        )
        assert offer.status == OfferStatus.ACCEPTED
        assert offer.responded_at == clock.now

    @pytest.mark.asyncio
    async def test_decline_leaves_booking_assigned(self, db_session, clock):
        booking, outcome = await _assigned_booking(db_session, clock)

        offer = await OfferResponder(db_session, clock=clock).respond(
            outcome.offer_id, "drv-1", accept=False
        )
        assert offer.status == OfferStatus.DECLINED
        assert booking.status == BookingStatus.DRIVER_ASSIGNED

    @pytest.mark.asyncio
    async def test_expired_offer_cannot_be_accepted(self, db_session, clock):
        _, outcome = await _assigned_booking(db_session, clock)
        clock.advance(seconds=30)

        with pytest.raises(OfferExpired):
            await OfferResponder(db_session, clock=clock).respond(
                outcome.offer_id, "drv-1", accept=True
            )

    @pytest.mark.asyncio
    async def test_answered_offer_cannot_be_answered_again(self, db_session, clock):
        _, outcome = await _assigned_booking(db_session, clock)
        responder = OfferResponder(db_session, clock=clock)
        await responder.respond(outcome.offer_id, "drv-1", accept=False)

        with pytest.raises(OfferNotPending):
            await responder.respond(outcome.offer_id, "drv-1", accept=True)

    @pytest.mark.asyncio
    async def test_other_driver_cannot_answer(self, db_session, clock):
        _, outcome = await _assigned_booking(db_session, clock)

        with pytest.raises(ValidationFailed):
            await OfferResponder(db_session, clock=clock).respond(
                outcome.offer_id, "drv-2", accept=True
            )

    @pytest.mark.asyncio
    async def test_unknown_offer(self, db_session, clock):
        with pytest.raises(OfferNotFound):
            await OfferResponder(db_session, clock=clock).respond(
                "missing", "drv-1", accept=True
            )

    @pytest.mark.asyncio
    async def test_accept_after_booking_moved_on(self, db_session, clock):
        booking, outcome = await _assigned_booking(db_session, clock)
        booking.status = BookingStatus.CANCELLED_BY_DRIVER
        await db_session.flush()

        with pytest.raises(InvalidStateTransition):
            await OfferResponder(db_session, clock=clock).respond(
                outcome.offer_id, "drv-1", accept=True
            )
