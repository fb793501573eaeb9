"""
SQLAlchemy ORM models.

Tables
------
* ``bookings``           -- ride bookings and their journey progress
* ``ride_offers``        -- time-bounded proposals of a booking to one driver
* ``counters``           -- per-operator booking-number sequences
* ``drivers``            -- driver directory with last known location
* ``operator_settings``  -- per-operator dispatch mode
* ``credit_accounts``    -- passenger account balances for account jobs

Indexes
-------
* **B-Tree** on ``bookings.status``, ``bookings.passenger_id``,
  ``bookings.timeout_at`` for the sweeper and active-ride look-ups.
* **B-Tree** on ``(ride_offers.booking_id, status)`` for supersession and on
  ``(ride_offers.driver_id, status)`` for the driver's offer inbox.
* **B-Tree** on ``(drivers.status, operator_code)`` for the matcher scan.

``bookings.version`` is SQLAlchemy's ``version_id_col``: an UPDATE that
races another writer matches zero rows and raises ``StaleDataError``.
"""

import uuid
from datetime import timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.types import TypeDecorator

from .database import Base
from src.domain.clock import utcnow
from src.domain.enums import (
    BookingStatus,
    DispatchMethod,
    DispatchMode,
    OfferStatus,
    PaymentMethod,
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def _enum(enum_cls, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=_enum_values,
        native_enum=False,
        length=48,
    )


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend (SQLite drops tzinfo)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_new_id)
    display_booking_id = Column(String(64), unique=True, nullable=True)
    version = Column(Integer, nullable=False)

    passenger_id = Column(String(64), nullable=False)
    passenger_name = Column(String(120), nullable=False)
    passenger_phone = Column(String(32), nullable=True)
    driver_id = Column(String(64), ForeignKey("drivers.id"), nullable=True)
    driver_name = Column(String(120), nullable=True)
    driver_vehicle_details = Column(JSON, nullable=True)

    # {"address", "latitude", "longitude", "door_or_flat"}
    pickup_location = Column(JSON, nullable=False)
    dropoff_location = Column(JSON, nullable=False)
    stops = Column(JSON, nullable=False, default=list)

    fare_estimate = Column(Float, nullable=False, default=0.0)
    final_calculated_fare = Column(Float, nullable=True)
    payment_method = Column(_enum(PaymentMethod, "payment_method"), nullable=False)
    account_job_pin = Column(String(4), nullable=True)
    is_priority_pickup = Column(Boolean, nullable=False, default=False)
    priority_fee_amount = Column(Float, nullable=True)
    wait_and_return = Column(Boolean, nullable=False, default=False)
    estimated_additional_wait_time_minutes = Column(Integer, nullable=True)
    waiting_charge_at_pickup = Column(Float, nullable=True)
    no_show_fee_applicable = Column(Boolean, nullable=False, default=False)

    status = Column(
        _enum(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.PENDING_ASSIGNMENT,
    )
    driver_current_leg_index = Column(Integer, nullable=False, default=0)
    current_leg_entry_at = Column(UTCDateTime, nullable=True)
    completed_stop_wait_charges = Column(JSON, nullable=False, default=dict)

    booked_at = Column(UTCDateTime, nullable=False, default=utcnow)
    scheduled_pickup_at = Column(UTCDateTime, nullable=True)  # None: ASAP
    notified_passenger_arrival_at = Column(UTCDateTime, nullable=True)
    passenger_acknowledged_arrival_at = Column(UTCDateTime, nullable=True)
    ride_started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    timeout_at = Column(UTCDateTime, nullable=True)

    originating_operator_id = Column(String(32), nullable=False)
    required_operator_id = Column(String(32), nullable=True)
    dispatch_method = Column(_enum(DispatchMethod, "dispatch_method"), nullable=True)
    vehicle_type = Column(String(48), nullable=True)
    passenger_count = Column(Integer, nullable=False, default=1)
    driver_notes = Column(Text, nullable=True)
    distance_miles = Column(Float, nullable=True)

    last_updated_by = Column(String(64), nullable=True)
    last_updated_role = Column(String(32), nullable=True)
    update_channel = Column(String(32), nullable=True)
    updated_at = Column(UTCDateTime, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_passenger", "passenger_id"),
        Index("idx_bookings_driver", "driver_id"),
        Index("idx_bookings_timeout", "timeout_at"),
    )


class RideOfferModel(Base):
    __tablename__ = "ride_offers"

    id = Column(String(36), primary_key=True, default=_new_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False)
    driver_id = Column(String(64), ForeignKey("drivers.id"), nullable=False)
    snapshot = Column(JSON, nullable=False)
    status = Column(
        _enum(OfferStatus, "offer_status"),
        nullable=False,
        default=OfferStatus.PENDING,
    )
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    expires_at = Column(UTCDateTime, nullable=False)
    responded_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("idx_offers_booking_status", "booking_id", "status"),
        Index("idx_offers_driver_status", "driver_id", "status"),
        Index("idx_offers_expires", "expires_at"),
    )


class CounterModel(Base):
    __tablename__ = "counters"

    id = Column(String(64), primary_key=True)  # bookingId_{operatorCode}
    current_id = Column(Integer, nullable=True)


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(120), nullable=False)
    status = Column(String(32), nullable=False, default="Active")
    operator_code = Column(String(32), nullable=True)
    location_lat = Column(Float, nullable=True)
    location_lng = Column(Float, nullable=True)
    location_updated_at = Column(UTCDateTime, nullable=True)

    vehicle_category = Column(String(48), nullable=True)
    vehicle_make = Column(String(64), nullable=True)
    vehicle_model = Column(String(64), nullable=True)
    vehicle_color = Column(String(32), nullable=True)
    vehicle_registration = Column(String(16), nullable=True)

    __table_args__ = (
        Index("idx_drivers_status_operator", "status", "operator_code"),
    )


class OperatorSettingModel(Base):
    __tablename__ = "operator_settings"

    operator_id = Column(String(32), primary_key=True)
    dispatch_mode = Column(
        _enum(DispatchMode, "dispatch_mode"),
        nullable=False,
        default=DispatchMode.AUTO,
    )
    updated_at = Column(UTCDateTime, nullable=True, default=utcnow, onupdate=utcnow)


class CreditAccountModel(Base):
    __tablename__ = "credit_accounts"

    id = Column(String(36), primary_key=True, default=_new_id)
    passenger_id = Column(String(64), unique=True, nullable=False)
    account_holder = Column(String(120), nullable=True)
    balance = Column(Float, nullable=False, default=0.0)
    updated_at = Column(UTCDateTime, nullable=True, default=utcnow, onupdate=utcnow)
