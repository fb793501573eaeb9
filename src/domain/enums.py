"""Domain enumerations and state-transition rules."""

import enum


class BookingStatus(str, enum.Enum):
    PENDING_ASSIGNMENT = "pending_assignment"
    DRIVER_ASSIGNED = "driver_assigned"
    ARRIVED_AT_PICKUP = "arrived_at_pickup"
    IN_PROGRESS = "in_progress"
    PENDING_WAIT_AND_RETURN_APPROVAL = "pending_driver_wait_and_return_approval"
    IN_PROGRESS_WAIT_AND_RETURN = "in_progress_wait_and_return"
    COMPLETED = "completed"
    CANCELLED_BY_DRIVER = "cancelled_by_driver"
    CANCELLED_BY_OPERATOR = "cancelled_by_operator"
    CANCELLED_BY_PASSENGER = "cancelled_by_passenger"
    CANCELLED_NO_SHOW = "cancelled_no_show"
    CANCELLED_NO_DRIVER = "cancelled_no_driver"


class BookingAction(str, enum.Enum):
    ASSIGN_DRIVER = "assign_driver"
    AUTO_ASSIGN_DRIVER = "auto_assign_driver"
    NOTIFY_ARRIVAL = "notify_arrival"
    START_RIDE = "start_ride"
    PROCEED_TO_NEXT_LEG = "proceed_to_next_leg"
    REQUEST_WAIT_AND_RETURN = "request_wait_and_return"
    ACCEPT_WAIT_AND_RETURN = "accept_wait_and_return"
    DECLINE_WAIT_AND_RETURN = "decline_wait_and_return"
    COMPLETE_RIDE = "complete_ride"
    CANCEL_ACTIVE = "cancel_active"
    REPORT_NO_SHOW = "report_no_show"
    OPERATOR_CANCEL_PENDING = "operator_cancel_pending"
    ACKNOWLEDGE_ARRIVAL = "acknowledge_arrival"
    PASSENGER_CANCEL_PENDING = "passenger_cancel_pending"
    RESCHEDULE_PICKUP = "reschedule_pickup"
    # Issued only by the background sweeper
    EXPIRE_UNASSIGNED = "expire_unassigned"


# Bookings a driver is currently working on
ACTIVE_STATUSES: frozenset[BookingStatus] = frozenset(
    {
        BookingStatus.DRIVER_ASSIGNED,
        BookingStatus.ARRIVED_AT_PICKUP,
        BookingStatus.IN_PROGRESS,
        BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL,
        BookingStatus.IN_PROGRESS_WAIT_AND_RETURN,
    }
)

RIDING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.IN_PROGRESS, BookingStatus.IN_PROGRESS_WAIT_AND_RETURN}
)

# State machine: maps action -> set of statuses it may be applied from
ACTION_VALID_FROM: dict[BookingAction, frozenset[BookingStatus]] = {
    BookingAction.ASSIGN_DRIVER: frozenset({BookingStatus.PENDING_ASSIGNMENT}),
    BookingAction.AUTO_ASSIGN_DRIVER: frozenset({BookingStatus.PENDING_ASSIGNMENT}),
    BookingAction.NOTIFY_ARRIVAL: frozenset({BookingStatus.DRIVER_ASSIGNED}),
    BookingAction.START_RIDE: frozenset(
        {
            BookingStatus.ARRIVED_AT_PICKUP,
            BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL,
        }
    ),
    BookingAction.PROCEED_TO_NEXT_LEG: RIDING_STATUSES,
    BookingAction.REQUEST_WAIT_AND_RETURN: frozenset({BookingStatus.IN_PROGRESS}),
    BookingAction.ACCEPT_WAIT_AND_RETURN: frozenset(
        {BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL}
    ),
    BookingAction.DECLINE_WAIT_AND_RETURN: frozenset(
        {BookingStatus.PENDING_WAIT_AND_RETURN_APPROVAL}
    ),
    BookingAction.COMPLETE_RIDE: RIDING_STATUSES,
    BookingAction.CANCEL_ACTIVE: ACTIVE_STATUSES,
    BookingAction.REPORT_NO_SHOW: frozenset({BookingStatus.ARRIVED_AT_PICKUP}),
    BookingAction.OPERATOR_CANCEL_PENDING: frozenset(
        {BookingStatus.PENDING_ASSIGNMENT}
    ),
    BookingAction.ACKNOWLEDGE_ARRIVAL: frozenset({BookingStatus.ARRIVED_AT_PICKUP}),
    BookingAction.PASSENGER_CANCEL_PENDING: frozenset(
        {BookingStatus.PENDING_ASSIGNMENT}
    ),
    BookingAction.RESCHEDULE_PICKUP: frozenset({BookingStatus.PENDING_ASSIGNMENT}),
    BookingAction.EXPIRE_UNASSIGNED: frozenset({BookingStatus.PENDING_ASSIGNMENT}),
}


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    CASH = "cash"
    ACCOUNT = "account"


class DispatchMode(str, enum.Enum):
    AUTO = "auto"
    MANUAL = "manual"


class DispatchMethod(str, enum.Enum):
    AUTO_SYSTEM = "auto_system"
    MANUAL_OPERATOR = "manual_operator"
    PRIORITY_OVERRIDE = "priority_override"


class OfferStatus(str, enum.Enum):
    PENDING = "pending"
    EXPIRED = "expired"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class DriverStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"
    PENDING_APPROVAL = "Pending Approval"


class VehicleType(str, enum.Enum):
    CAR = "car"
    ESTATE = "estate"
    MINIBUS_6 = "minibus_6"
    MINIBUS_8 = "minibus_8"
    PET_FRIENDLY_CAR = "pet_friendly_car"
    WHEELCHAIR_ACCESS = "disable_wheelchair_access"
    MINIBUS_6_PET_FRIENDLY = "minibus_6_pet_friendly"
    MINIBUS_8_PET_FRIENDLY = "minibus_8_pet_friendly"
