"""Unit tests for the booking state machine."""

import dataclasses
import itertools
from datetime import timedelta

import pytest

from src.domain.commands import (
    AcceptWaitAndReturn,
    AcknowledgeArrival,
    AssignDriver,
    AutoAssignDriver,
    CancelActive,
    CompleteRide,
    DeclineWaitAndReturn,
    ExpireUnassigned,
    NotifyArrival,
    OperatorCancelPending,
    PassengerCancelPending,
    ProceedToNextLeg,
    ReportNoShow,
    RequestWaitAndReturn,
    ReschedulePickup,
    StartRide,
)
from src.domain.entities import Actor, Coordinates, DriverCandidate
from src.domain.enums import (
    ACTION_VALID_FROM,
    RIDING_STATUSES,
    BookingAction,
    BookingStatus,
    DispatchMethod,
)
from src.domain.exceptions import (
    InvalidStateTransition,
    NotBookingOwner,
    ValidationFailed,
)
from src.domain.state_machine import BookingStateMachine, stamp_audit
from tests.conftest import Booking, FakeClock

ACTOR = Actor(id="drv-1", role="driver", channel="app")

DRIVER = DriverCandidate(
    id="drv-1",
    name="Sam Driver",
    status="Active",
    operator_code="OP001",
    location=Coordinates(51.5, -0.12),
    vehicle_details={"make": "Toyota", "registration": "LB21 ABC"},
)

STOP = {"address": "Stop", "latitude": 51.51, "longitude": -0.13}

COMMANDS = {
    BookingAction.ASSIGN_DRIVER: lambda: AssignDriver(driver_id="drv-1"),
    BookingAction.AUTO_ASSIGN_DRIVER: AutoAssignDriver,
    BookingAction.NOTIFY_ARRIVAL: NotifyArrival,
    BookingAction.START_RIDE: StartRide,
    BookingAction.PROCEED_TO_NEXT_LEG: lambda: ProceedToNextLeg(next_leg_index=2),
    BookingAction.REQUEST_WAIT_AND_RETURN: lambda: RequestWaitAndReturn(
        estimated_wait_minutes=20
    ),
    BookingAction.ACCEPT_WAIT_AND_RETURN: AcceptWaitAndReturn,
    BookingAction.DECLINE_WAIT_AND_RETURN: DeclineWaitAndReturn,
    BookingAction.COMPLETE_RIDE: lambda: CompleteRide(final_fare=12.5),
    BookingAction.CANCEL_ACTIVE: CancelActive,
    BookingAction.REPORT_NO_SHOW: ReportNoShow,
    BookingAction.OPERATOR_CANCEL_PENDING: OperatorCancelPending,
    BookingAction.ACKNOWLEDGE_ARRIVAL: AcknowledgeArrival,
    BookingAction.PASSENGER_CANCEL_PENDING: lambda: PassengerCancelPending(
        passenger_id="pax-1"
    ),
    BookingAction.RESCHEDULE_PICKUP: lambda: ReschedulePickup(
        passenger_id="pax-1", scheduled_pickup_at=None
    ),
    BookingAction.EXPIRE_UNASSIGNED: ExpireUnassigned,
}

# None: status unchanged
EXPECTED_STATUS = {
    BookingAction.ASSIGN_DRIVER: BookingStatus.DRIVER_ASSIGNED,
    BookingAction.AUTO_ASSIGN_DRIVER: BookingStatus.DRIVER_ASSIGNED,
    BookingAction.NOTIFY_ARRIVAL: BookingStatus.ARRIVED_AT_PICKUP,
    BookingAction.START_RIDE: BookingStatus.IN_PROGRESS,
    BookingAction.PROCEED_TO_NEXT_LEG: None,
    BookingAction.REQUEST_WAIT_AND_RETURN: BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL,
    BookingAction.ACCEPT_WAIT_AND_RETURN: BookingStatus.IN_PROGRESS_WAIT_AND_RETURN,
    BookingAction.DECLINE_WAIT_AND_RETURN: BookingStatus.IN_PROGRESS,
    BookingAction.COMPLETE_RIDE: BookingStatus.COMPLETED,
    BookingAction.CANCEL_ACTIVE: BookingStatus.CANCELLED_BY_DRIVER,
    BookingAction.REPORT_NO_SHOW: BookingStatus.CANCELLED_NO_SHOW,
    BookingAction.OPERATOR_CANCEL_PENDING: BookingStatus.CANCELLED_BY_OPERATOR,
    BookingAction.ACKNOWLEDGE_ARRIVAL: None,
    BookingAction.PASSENGER_CANCEL_PENDING: BookingStatus.CANCELLED_BY_PASSENGER,
    BookingAction.RESCHEDULE_PICKUP: None,
    BookingAction.EXPIRE_UNASSIGNED: BookingStatus.CANCELLED_NO_DRIVER,
}

TERMINAL = {
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED_BY_DRIVER,
    BookingStatus.CANCELLED_BY_OPERATOR,
    BookingStatus.CANCELLED_BY_PASSENGER,
    BookingStatus.CANCELLED_NO_SHOW,
    BookingStatus.CANCELLED_NO_DRIVER,
}


def _booking(status: BookingStatus, **overrides) -> Booking:
    on_journey = status in RIDING_STATUSES or (
        status == BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL
    )
    data = dict(
        id="b-1",
        passenger_id="pax-1",
        status=status,
        stops=[STOP],
        driver_current_leg_index=1 if on_journey else 0,
        driver_id=None if status == BookingStatus.PENDING_ASSIGNMENT else "drv-1",
    )
    data.update(overrides)
    return Booking(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def machine(clock):
    return BookingStateMachine(clock=clock)


class TestTransitionClosure:
    @pytest.mark.parametrize(
        "status,action",
        list(itertools.product(BookingStatus, BookingAction)),
        ids=lambda v: v.value,
    )
    def test_every_status_action_pair(self, machine, status, action):
        booking = _booking(status)
        command = COMMANDS[action]()

        if status in ACTION_VALID_FROM[action]:
            result = machine.apply(booking, command, ACTOR, driver=DRIVER)
            expected = EXPECTED_STATUS[action] or status
            assert booking.status == expected
            assert result.previous_status == status
            assert result.new_status == expected
        else:
            before = dataclasses.asdict(booking)
            with pytest.raises(InvalidStateTransition) as exc_info:
                machine.apply(booking, command, ACTOR, driver=DRIVER)
            assert exc_info.value.current_status == status.value
            assert dataclasses.asdict(booking) == before

    @pytest.mark.parametrize("status", sorted(TERMINAL), ids=lambda s: s.value)
    def test_terminal_statuses_accept_nothing(self, status):
        for action in BookingAction:
            assert not BookingStateMachine.can_apply(status, action)


class TestAssignment:
    def test_manual_assignment_copies_driver(self, machine):
        booking = _booking(BookingStatus.PENDING_ASSIGNMENT)
        booking.timeout_at = FakeClock().now
        machine.apply(booking, AssignDriver(driver_id="drv-1"), ACTOR, driver=DRIVER)

        assert booking.driver_id == "drv-1"
        assert booking.driver_name == "Sam Driver"
        assert booking.driver_vehicle_details == {"make": "Toyota", "registration": "LB21 ABC"}
        assert booking.dispatch_method == DispatchMethod.MANUAL_OPERATOR
        assert booking.timeout_at is None

    def test_priority_override_is_recorded(self, machine):
        booking = _booking(BookingStatus.PENDING_ASSIGNMENT)
        machine.apply(
            booking,
            AssignDriver(driver_id="drv-1", priority_override=True),
            ACTOR,
            driver=DRIVER,
        )
        assert booking.dispatch_method == DispatchMethod.PRIORITY_OVERRIDE

    def test_auto_assignment_is_recorded(self, machine):
        booking = _booking(BookingStatus.PENDING_ASSIGNMENT)
        machine.apply(booking, AutoAssignDriver(), ACTOR, driver=DRIVER)
        assert booking.dispatch_method == DispatchMethod.AUTO_SYSTEM

    def test_assignment_without_driver_fails(self, machine):
        booking = _booking(BookingStatus.PENDING_ASSIGNMENT)
        with pytest.raises(ValidationFailed):
            machine.apply(booking, AssignDriver(driver_id="drv-1"), ACTOR)
        assert booking.status == BookingStatus.PENDING_ASSIGNMENT


class TestJourney:
    def test_start_then_complete_without_stops(self, machine, clock):
        """Arrived -> in progress on leg 1 -> completed at 12.50."""
        booking = _booking(BookingStatus.ARRIVED_AT_PICKUP, stops=[])

        machine.apply(booking, StartRide(leg_index=1), ACTOR)
        assert booking.status == BookingStatus.IN_PROGRESS
        assert booking.driver_current_leg_index == 1
        assert booking.ride_started_at == clock.now
        assert booking.current_leg_entry_at == clock.now

        clock.advance(minutes=18)
        machine.apply(booking, CompleteRide(final_fare=12.50), ACTOR)
        assert booking.status == BookingStatus.COMPLETED
        assert booking.fare_estimate == 12.50
        assert booking.final_calculated_fare == 12.50
        assert booking.current_leg_entry_at is None
        assert booking.completed_at == clock.now

    def test_start_ride_defaults_to_first_leg(self, machine):
        booking = _booking(BookingStatus.ARRIVED_AT_PICKUP)
        machine.apply(booking, StartRide(), ACTOR)
        assert booking.driver_current_leg_index == 1

    def test_start_ride_beyond_final_leg_fails(self, machine):
        booking = _booking(BookingStatus.ARRIVED_AT_PICKUP, stops=[])
        with pytest.raises(ValidationFailed):
            machine.apply(booking, StartRide(leg_index=2), ACTOR)
        assert booking.status == BookingStatus.ARRIVED_AT_PICKUP
        assert booking.driver_current_leg_index == 0

    def test_leg_index_never_decreases(self, machine):
        booking = _booking(BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL)
        booking.driver_current_leg_index = 2
        with pytest.raises(ValidationFailed):
            machine.apply(booking, StartRide(leg_index=1), ACTOR)
        assert booking.driver_current_leg_index == 2

    def test_resuming_after_wait_and_return_keeps_ride_start(self, machine, clock):
        started = clock.now
        booking = _booking(
            BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL,
            ride_started_at=started,
            current_leg_entry_at=started,
        )
        clock.advance(minutes=5)
        machine.apply(booking, StartRide(), ACTOR)
        assert booking.ride_started_at == started
        assert booking.current_leg_entry_at == started
        assert booking.status == BookingStatus.IN_PROGRESS

    def test_resuming_without_answer_drops_wait_estimate(self, machine):
        booking = _booking(
            BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL,
            estimated_additional_wait_time_minutes=25,
        )
        machine.apply(booking, StartRide(), ACTOR)
        assert booking.status == BookingStatus.IN_PROGRESS
        assert booking.wait_and_return is False
        assert booking.estimated_additional_wait_time_minutes is None

    def test_resuming_accepted_wait_and_return_keeps_estimate(self, machine):
        booking = _booking(
            BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL,
            wait_and_return=True,
            estimated_additional_wait_time_minutes=25,
        )
        machine.apply(booking, StartRide(), ACTOR)
        assert booking.status == BookingStatus.IN_PROGRESS_WAIT_AND_RETURN
        assert booking.estimated_additional_wait_time_minutes == 25

    def test_proceed_records_stop_wait_charge(self, machine, clock):
        booking = _booking(BookingStatus.IN_PROGRESS, stops=[STOP, STOP])
        clock.advance(minutes=3)
        machine.apply(
            booking,
            ProceedToNextLeg(next_leg_index=2, previous_stop_wait_charge=1.755),
            ACTOR,
        )
        assert booking.driver_current_leg_index == 2
        assert booking.completed_stop_wait_charges == {"0": 1.75}
        assert booking.current_leg_entry_at == clock.now
        assert booking.status == BookingStatus.IN_PROGRESS

    def test_proceed_must_move_forward(self, machine):
        booking = _booking(BookingStatus.IN_PROGRESS)
        with pytest.raises(ValidationFailed):
            machine.apply(booking, ProceedToNextLeg(next_leg_index=1), ACTOR)

    def test_proceed_beyond_final_leg_fails(self, machine):
        booking = _booking(BookingStatus.IN_PROGRESS)
        with pytest.raises(ValidationFailed):
            machine.apply(booking, ProceedToNextLeg(next_leg_index=3), ACTOR)
        assert booking.driver_current_leg_index == 1

    def test_stop_charge_without_intermediate_stop_fails(self, machine):
        booking = _booking(BookingStatus.IN_PROGRESS, stops=[], driver_current_leg_index=0)
        with pytest.raises(ValidationFailed):
            machine.apply(
                booking,
                ProceedToNextLeg(next_leg_index=1, previous_stop_wait_charge=2.0),
                ACTOR,
            )
        assert booking.completed_stop_wait_charges == {}

    def test_wait_and_return_round_trip(self, machine):
        booking = _booking(BookingStatus.IN_PROGRESS)
        machine.apply(booking, RequestWaitAndReturn(estimated_wait_minutes=25), ACTOR)
        assert booking.estimated_additional_wait_time_minutes == 25

        machine.apply(booking, AcceptWaitAndReturn(fare_estimate=31.0), ACTOR)
        assert booking.wait_and_return is True
        assert booking.fare_estimate == 31.0
        assert booking.status == BookingStatus.IN_PROGRESS_WAIT_AND_RETURN

    def test_declined_wait_and_return_clears_estimate(self, machine):
        booking = _booking(
            BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL,
            estimated_additional_wait_time_minutes=25,
        )
        machine.apply(booking, DeclineWaitAndReturn(), ACTOR)
        assert booking.wait_and_return is False
        assert booking.estimated_additional_wait_time_minutes is None


class TestCancellation:
    def test_operator_cannot_cancel_assigned_booking(self, machine):
        booking = _booking(BookingStatus.DRIVER_ASSIGNED)
        with pytest.raises(InvalidStateTransition) as exc_info:
            machine.apply(booking, OperatorCancelPending(), ACTOR)
        assert exc_info.value.kind == "precondition_violation"
        assert booking.status == BookingStatus.DRIVER_ASSIGNED

    def test_no_show_flags_fee(self, machine, clock):
        booking = _booking(BookingStatus.ARRIVED_AT_PICKUP)
        machine.apply(booking, ReportNoShow(), ACTOR)
        assert booking.no_show_fee_applicable is True
        assert booking.cancelled_at == clock.now

    def test_cancel_active_stores_reason(self, machine):
        booking = _booking(BookingStatus.IN_PROGRESS, current_leg_entry_at=FakeClock().now)
        machine.apply(booking, CancelActive(reason="Vehicle breakdown"), ACTOR)
        assert booking.cancellation_reason == "Vehicle breakdown"
        assert booking.current_leg_entry_at is None

    def test_repeated_completion_is_rejected(self, machine):
        booking = _booking(BookingStatus.IN_PROGRESS)
        machine.apply(booking, CompleteRide(final_fare=20.0), ACTOR)
        with pytest.raises(InvalidStateTransition):
            machine.apply(booking, CompleteRide(final_fare=25.0), ACTOR)
        assert booking.final_calculated_fare == 20.0


class TestPassengerActions:
    def test_passenger_cancels_own_pending_booking(self, machine, clock):
        booking = _booking(BookingStatus.PENDING_ASSIGNMENT, timeout_at=clock.now)
        machine.apply(
            booking,
            PassengerCancelPending(passenger_id="pax-1", reason="Plans changed"),
            ACTOR,
        )
        assert booking.status == BookingStatus.CANCELLED_BY_PASSENGER
        assert booking.cancelled_at == clock.now
        assert booking.cancellation_reason == "Plans changed"
        assert booking.timeout_at is None

    def test_other_passenger_cannot_cancel(self, machine):
        booking = _booking(BookingStatus.PENDING_ASSIGNMENT)
        before = dataclasses.asdict(booking)
        with pytest.raises(NotBookingOwner) as exc_info:
            machine.apply(booking, PassengerCancelPending(passenger_id="pax-2"), ACTOR)
        assert exc_info.value.status_code == 403
        assert exc_info.value.kind == "forbidden"
        assert dataclasses.asdict(booking) == before

    def test_passenger_cannot_cancel_once_assigned(self, machine):
        booking = _booking(BookingStatus.DRIVER_ASSIGNED)
        with pytest.raises(InvalidStateTransition):
            machine.apply(booking, PassengerCancelPending(passenger_id="pax-1"), ACTOR)
        assert booking.status == BookingStatus.DRIVER_ASSIGNED

    def test_reschedule_sets_pickup_time(self, machine, clock):
        booking = _booking(BookingStatus.PENDING_ASSIGNMENT)
        pickup = clock.now + timedelta(hours=3)
        machine.apply(
            booking,
            ReschedulePickup(passenger_id="pax-1", scheduled_pickup_at=pickup),
            ACTOR,
        )
        assert booking.scheduled_pickup_at == pickup
        assert booking.status == BookingStatus.PENDING_ASSIGNMENT

    def test_reschedule_to_asap_clears_pickup_time(self, machine, clock):
        booking = _booking(
            BookingStatus.PENDING_ASSIGNMENT,
            scheduled_pickup_at=clock.now + timedelta(hours=3),
        )
        machine.apply(
            booking,
            ReschedulePickup(passenger_id="pax-1", scheduled_pickup_at=None),
            ACTOR,
        )
        assert booking.scheduled_pickup_at is None

    def test_reschedule_into_past_is_rejected(self, machine, clock):
        booking = _booking(BookingStatus.PENDING_ASSIGNMENT)
        with pytest.raises(ValidationFailed):
            machine.apply(
                booking,
                ReschedulePickup(
                    passenger_id="pax-1",
                    scheduled_pickup_at=clock.now - timedelta(minutes=1),
                ),
                ACTOR,
            )
        assert booking.scheduled_pickup_at is None
        assert booking.updated_at is None

    def test_other_passenger_cannot_reschedule(self, machine, clock):
        booking = _booking(BookingStatus.PENDING_ASSIGNMENT)
        with pytest.raises(NotBookingOwner):
            machine.apply(
                booking,
                ReschedulePickup(
                    passenger_id="pax-2",
                    scheduled_pickup_at=clock.now + timedelta(hours=1),
                ),
                ACTOR,
            )
        assert booking.scheduled_pickup_at is None


class TestExpectedStatus:
    def test_matching_expected_status_applies(self, machine):
        booking = _booking(BookingStatus.DRIVER_ASSIGNED)
        machine.apply(
            booking,
            NotifyArrival(expected_status=BookingStatus.DRIVER_ASSIGNED),
            ACTOR,
        )
        assert booking.status == BookingStatus.ARRIVED_AT_PICKUP

    def test_stale_expected_status_is_rejected(self, machine):
        booking = _booking(BookingStatus.ARRIVED_AT_PICKUP)
        with pytest.raises(InvalidStateTransition):
            machine.apply(
                booking,
                CancelActive(expected_status=BookingStatus.DRIVER_ASSIGNED),
                ACTOR,
            )
        assert booking.status == BookingStatus.ARRIVED_AT_PICKUP


class TestAcknowledgement:
    def test_second_acknowledgement_is_rejected(self, machine, clock):
        booking = _booking(BookingStatus.ARRIVED_AT_PICKUP)
        machine.apply(booking, AcknowledgeArrival(), ACTOR)
        first = booking.passenger_acknowledged_arrival_at
        assert first == clock.now

        clock.advance(seconds=30)
        with pytest.raises(InvalidStateTransition):
            machine.apply(booking, AcknowledgeArrival(), ACTOR)
        assert booking.passenger_acknowledged_arrival_at == first


class TestAudit:
    def test_actor_is_recorded(self, machine, clock):
        booking = _booking(BookingStatus.DRIVER_ASSIGNED)
        machine.apply(booking, NotifyArrival(), ACTOR)
        assert booking.last_updated_by == "drv-1"
        assert booking.last_updated_role == "driver"
        assert booking.update_channel == "app"
        assert booking.updated_at == clock.now

    def test_updated_at_strictly_increases(self, clock):
        booking = _booking(BookingStatus.DRIVER_ASSIGNED)
        stamp_audit(booking, ACTOR, clock.now)
        stamp_audit(booking, ACTOR, clock.now)
        assert booking.updated_at == clock.now + timedelta(microseconds=1)

    def test_failed_action_does_not_touch_audit(self, machine):
        booking = _booking(BookingStatus.COMPLETED)
        with pytest.raises(InvalidStateTransition):
            machine.apply(booking, NotifyArrival(), ACTOR)
        assert booking.updated_at is None
