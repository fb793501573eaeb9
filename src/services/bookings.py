"""
Booking orchestration
=====================

Glues the pure state machine to its collaborators:

* **create**  -- display id from the sequential generator, account PIN for
  account jobs, server fare estimate when none is supplied, ``timeout_at``
  when the operator dispatches automatically, optional immediate assignment.
* **actions** -- row-locked load, precondition check *before* any collaborator
  work, dispatch gate + nearest-driver matcher for auto assignment, state
  machine, offer issuance (soft), driver location update on arrival, credit
  account deduction on account-paid completion, notification fan-out.

Concurrency safety
------------------
* ``SELECT ... FOR UPDATE`` on the booking row serialises actions on one
  booking.
* ``bookings.version`` (``version_id_col``) turns any write that still races
  into ``ConcurrentModification`` instead of a silent overwrite.
* Offer supersession and the credit deduction share the booking's
  transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.config import settings
from src.domain.clock import utcnow
from src.domain.commands import (
    AssignDriver,
    BookingDetailsPatch,
    CreateBooking,
    ExpireUnassigned,
)
from src.domain.entities import SYSTEM_ACTOR, Actor, Coordinates
from src.domain.enums import (
    ACTIVE_STATUSES,
    BookingAction,
    BookingStatus,
    DriverStatus,
    PaymentMethod,
)
from src.domain.exceptions import (
    BookingNotFound,
    ConcurrentModification,
    DriverNotFound,
    InvalidStateTransition,
    NoDriverAvailable,
    ValidationFailed,
)
from src.domain.identifiers import generate_account_job_pin
from src.domain.matching import find_nearest_driver
from src.domain.offers import effective_status
from src.domain.pricing import PricingEngine
from src.domain.state_machine import BookingStateMachine, stamp_audit
from src.infrastructure.models import BookingModel, RideOfferModel
from src.infrastructure.notifications import NotificationSink, NullNotificationSink
from src.infrastructure.repositories import (
    BookingRepository,
    CreditAccountRepository,
    DriverRepository,
    RideOfferRepository,
    to_candidate,
)
from src.services.booking_ids import SequentialBookingIdGenerator
from src.services.dispatch_policy import DispatchModeGate
from src.services.offers import RideOfferIssuer

logger = logging.getLogger(__name__)

_EDITABLE_STATUSES = {BookingStatus.PENDING_ASSIGNMENT, *ACTIVE_STATUSES}


@dataclass
class ActionOutcome:
    booking: BookingModel
    action: BookingAction
    previous_status: BookingStatus
    changed: bool = True
    message: Optional[str] = None
    manual_assignment_required: bool = False
    offer_id: Optional[str] = None
    offer_issued: Optional[bool] = None
    driver_distance_m: Optional[float] = None
    credit_account_balance: Optional[float] = None


class BookingService:
    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[NotificationSink] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.notifier = notifier or NullNotificationSink()
        self._clock = clock

        self.bookings = BookingRepository(session)
        self.offers = RideOfferRepository(session)
        self.drivers = DriverRepository(session)
        self.credit_accounts = CreditAccountRepository(session)
        self.id_generator = SequentialBookingIdGenerator(session)
        self.gate = DispatchModeGate(session)
        self.issuer = RideOfferIssuer(session, clock=clock)
        self.machine = BookingStateMachine(clock=clock)
        self.pricing = PricingEngine(settings.average_speed_mph)

    # ── Queries ───────────────────────────────────────────────────

    async def get_booking(self, booking_id: str) -> BookingModel:
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def get_active_booking_for_passenger(
        self, passenger_id: str
    ) -> Optional[BookingModel]:
        return await self.bookings.get_active_for_passenger(passenger_id)

    async def list_offers(self, booking_id: str) -> list[tuple[RideOfferModel, str]]:
        """Offers of a booking with their read-time status."""
        await self.get_booking(booking_id)
        now = self._clock()
        return [
            (offer, effective_status(offer.status, offer.expires_at, now).value)
            for offer in await self.offers.list_for_booking(booking_id)
        ]

    async def list_driver_offers(self, driver_id: str) -> list[RideOfferModel]:
        return await self.offers.list_live_for_driver(driver_id, self._clock())

    # ── Create ────────────────────────────────────────────────────

    async def create_booking_from_offer(
        self, payload: CreateBooking, actor: Actor
    ) -> tuple[BookingModel, Optional[ActionOutcome]]:
        operator_code = payload.operator_code or settings.default_operator_code
        generated = await self.id_generator.generate(operator_code)

        fare = payload.fare_estimate
        distance = payload.distance_miles
        if fare is None or distance is None:
            quote = self.pricing.estimate(
                Coordinates(payload.pickup_location.latitude, payload.pickup_location.longitude),
                Coordinates(payload.dropoff_location.latitude, payload.dropoff_location.longitude),
                [Coordinates(s.latitude, s.longitude) for s in payload.stops],
                vehicle_type=payload.vehicle_type,
                passengers=payload.passenger_count,
                wait_and_return=payload.wait_and_return,
                wait_minutes=payload.estimated_additional_wait_time_minutes or 0,
                priority_fee=payload.priority_fee_amount if payload.is_priority_pickup else None,
            )
            fare = quote.fare_estimate if fare is None else fare
            distance = quote.distance_miles if distance is None else distance

        now = self._clock()
        auto_dispatch = await self.gate.can_auto_assign(operator_code)
        booking = BookingModel(
            display_booking_id=generated.booking_id,
            passenger_id=payload.passenger_id,
            passenger_name=payload.passenger_name,
            passenger_phone=payload.passenger_phone,
            pickup_location=payload.pickup_location.model_dump(),
            dropoff_location=payload.dropoff_location.model_dump(),
            stops=[s.model_dump() for s in payload.stops],
            fare_estimate=round(fare, 2),
            distance_miles=distance,
            payment_method=payload.payment_method,
            account_job_pin=(
                generate_account_job_pin()
                if payload.payment_method == PaymentMethod.ACCOUNT
                else None
            ),
            is_priority_pickup=payload.is_priority_pickup,
            priority_fee_amount=payload.priority_fee_amount,
            wait_and_return=payload.wait_and_return,
            estimated_additional_wait_time_minutes=payload.estimated_additional_wait_time_minutes,
            vehicle_type=payload.vehicle_type.value,
            passenger_count=payload.passenger_count,
            driver_notes=payload.driver_notes,
            originating_operator_id=operator_code,
            required_operator_id=payload.required_operator_id,
            status=BookingStatus.PENDING_ASSIGNMENT,
            driver_current_leg_index=0,
            completed_stop_wait_charges={},
            booked_at=now,
            scheduled_pickup_at=payload.scheduled_pickup_at,
            timeout_at=(
                self._no_driver_deadline(now, payload.scheduled_pickup_at)
                if auto_dispatch
                else None
            ),
        )
        stamp_audit(booking, actor, now)
        await self.bookings.add(booking)
        logger.info(
            "Booking %s (%s) created for passenger %s",
            booking.id,
            booking.display_booking_id,
            booking.passenger_id,
        )

        outcome = None
        if payload.driver_id:
            outcome = await self.apply_action(
                booking.id, AssignDriver(driver_id=payload.driver_id), actor
            )
        else:
            await self._notify(booking, "booking_created")
        return booking, outcome

    # ── Detail patch ──────────────────────────────────────────────

    async def patch_booking_details(
        self, booking_id: str, patch: BookingDetailsPatch, actor: Actor
    ) -> BookingModel:
        booking = await self.bookings.get_for_update(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        if BookingStatus(booking.status) not in _EDITABLE_STATUSES:
            raise InvalidStateTransition(
                "update_details",
                BookingStatus(booking.status).value,
                message="Finished bookings can no longer be edited",
            )

        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationFailed("No fields to update")
        if "fare_estimate" in changes:
            changes["fare_estimate"] = round(changes["fare_estimate"], 2)
        for name, value in changes.items():
            setattr(booking, name, value)

        stamp_audit(booking, actor, self._clock())
        await self._flush()
        return booking

    # ── Actions ───────────────────────────────────────────────────

    async def apply_action(
        self, booking_id: str, command: Any, actor: Actor
    ) -> ActionOutcome:
        booking = await self.bookings.get_for_update(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)

        action = BookingAction(command.action)
        previous = BookingStatus(booking.status)
        # fail before touching the matcher, offers or credit accounts
        self.machine.check(booking, action, command.expected_status)

        driver = None
        distance = None
        if action == BookingAction.AUTO_ASSIGN_DRIVER:
            operator_id = booking.originating_operator_id
            if not await self.gate.can_auto_assign(operator_id):
                logger.info(
                    "Auto-assign skipped for booking %s: operator %s dispatches manually",
                    booking.id,
                    operator_id,
                )
                return ActionOutcome(
                    booking=booking,
                    action=action,
                    previous_status=previous,
                    changed=False,
                    manual_assignment_required=True,
                    message=(
                        f"Automatic dispatch is disabled for operator {operator_id}; "
                        "assign a driver manually."
                    ),
                )
            driver, distance = await self._match_driver(booking, command.operator_code)
        elif action == BookingAction.ASSIGN_DRIVER:
            driver = await self._resolve_driver(booking, command.driver_id)

        result = self.machine.apply(booking, command, actor, driver=driver)
        if action == BookingAction.RESCHEDULE_PICKUP and booking.timeout_at is not None:
            booking.timeout_at = self._no_driver_deadline(
                self._clock(), booking.scheduled_pickup_at
            )
        await self._flush()

        outcome = ActionOutcome(
            booking=booking,
            action=action,
            previous_status=result.previous_status,
            driver_distance_m=round(distance, 1) if distance is not None else None,
        )

        if driver is not None:
            offer = await self.issuer.issue_soft(booking, driver.id)
            outcome.offer_issued = offer is not None
            outcome.offer_id = offer.id if offer is not None else None
            if offer is None:
                outcome.message = (
                    "Driver assigned, but the ride offer could not be delivered."
                )
            else:
                await self.notifier.publish(
                    f"driver:{driver.id}",
                    "ride_offer",
                    {"offer_id": offer.id, "booking_id": booking.id, **offer.snapshot},
                )
        elif action == BookingAction.NOTIFY_ARRIVAL and command.driver_location:
            if booking.driver_id:
                await self.drivers.update_location(
                    booking.driver_id,
                    command.driver_location.lat,
                    command.driver_location.lng,
                    self._clock(),
                )
        elif (
            action == BookingAction.COMPLETE_RIDE
            and PaymentMethod(booking.payment_method) == PaymentMethod.ACCOUNT
        ):
            outcome.credit_account_balance = await self._charge_credit_account(booking)

        await self._notify(booking, action.value)
        return outcome

    async def expire_unassigned(self, now: Optional[datetime] = None) -> int:
        """Cancel ``pending_assignment`` bookings whose ``timeout_at`` passed."""
        now = now or self._clock()
        expired = 0
        for booking in await self.bookings.get_timed_out_unassigned(now):
            self.machine.apply(booking, ExpireUnassigned(), SYSTEM_ACTOR)
            await self._notify(booking, BookingAction.EXPIRE_UNASSIGNED.value)
            expired += 1
        await self._flush()
        return expired

    # ── Internals ─────────────────────────────────────────────────

    @staticmethod
    def _no_driver_deadline(
        now: datetime, scheduled_pickup_at: Optional[datetime]
    ) -> datetime:
        """Advance bookings only start timing out at their pickup time."""
        start = max(now, scheduled_pickup_at) if scheduled_pickup_at else now
        return start + timedelta(minutes=settings.no_driver_timeout_minutes)

    async def _match_driver(self, booking: BookingModel, operator_code: Optional[str]):
        required = booking.required_operator_id
        if required and operator_code and operator_code != required:
            raise ValidationFailed(
                f"Booking requires a driver of operator {required}",
                required_operator_id=required,
            )
        operator_filter = required or operator_code
        candidates = [
            to_candidate(d) for d in await self.drivers.get_active(operator_filter)
        ]
        pickup = Coordinates(
            float(booking.pickup_location["latitude"]),
            float(booking.pickup_location["longitude"]),
        )
        match = find_nearest_driver(pickup, candidates, operator_filter)
        if match is None:
            logger.info(
                "No driver for booking %s (%d active candidates, operator=%s)",
                booking.id,
                len(candidates),
                operator_filter,
            )
            raise NoDriverAvailable(operator_filter)
        return match

    async def _resolve_driver(self, booking: BookingModel, driver_id: str):
        model = await self.drivers.get_by_id(driver_id)
        if model is None:
            raise DriverNotFound(driver_id)
        if model.status != DriverStatus.ACTIVE.value:
            raise ValidationFailed(
                f"Driver {driver_id} is {model.status} and cannot take bookings"
            )
        if (
            booking.required_operator_id
            and model.operator_code != booking.required_operator_id
        ):
            raise ValidationFailed(
                f"Booking requires a driver of operator {booking.required_operator_id}"
            )
        return to_candidate(model)

    async def _charge_credit_account(self, booking: BookingModel) -> Optional[float]:
        account = await self.credit_accounts.get_by_passenger_for_update(
            booking.passenger_id
        )
        if account is None:
            logger.warning(
                "Booking %s is account-paid but passenger %s has no credit account",
                booking.id,
                booking.passenger_id,
            )
            return None
        account.balance = round(account.balance - booking.final_calculated_fare, 2)
        if account.balance < 0:
            logger.warning(
                "Credit account of passenger %s is overdrawn (%.2f)",
                booking.passenger_id,
                account.balance,
            )
        await self.session.flush()
        logger.info(
            "Charged %.2f to credit account of passenger %s for booking %s",
            booking.final_calculated_fare,
            booking.passenger_id,
            booking.id,
        )
        return account.balance

    async def _flush(self) -> None:
        try:
            await self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModification(
                "Booking was modified by another request; reload and retry"
            ) from exc

    async def _notify(self, booking: BookingModel, event: str) -> None:
        payload = {
            "booking_id": booking.id,
            "display_booking_id": booking.display_booking_id,
            "status": BookingStatus(booking.status).value,
        }
        await self.notifier.publish(f"booking:{booking.id}", event, payload)
        await self.notifier.publish(f"passenger:{booking.passenger_id}", event, payload)
