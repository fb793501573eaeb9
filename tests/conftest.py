"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  Each test gets a fresh engine with the real
ORM models; ``FOR UPDATE`` clauses compile to nothing on SQLite.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.domain.commands import CreateBooking, LocationIn
from src.domain.entities import Actor
from src.domain.enums import BookingStatus, DispatchMethod, PaymentMethod
from src.infrastructure.database import Base
from src.infrastructure.models import CreditAccountModel, DriverModel


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite://"

TEST_ACTOR = Actor(id="op-user-1", role="operator", channel="test")

PICKUP = LocationIn(address="1 Pickup Street", latitude=51.5074, longitude=-0.1278)
DROPOFF = LocationIn(address="2 Dropoff Road", latitude=51.5155, longitude=-0.1410)
STOP = LocationIn(address="3 Stop Lane", latitude=51.5110, longitude=-0.1330)


# Plain stand-in for BookingModel so the state machine can be exercised
# without a database session.
@dataclass
class Booking:
    id: Optional[str] = None
    display_booking_id: Optional[str] = None
    passenger_id: str = ""
    passenger_name: str = ""
    passenger_phone: Optional[str] = None
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    driver_vehicle_details: Optional[dict[str, Any]] = None

    pickup_location: dict[str, Any] = field(default_factory=dict)
    dropoff_location: dict[str, Any] = field(default_factory=dict)
    stops: list[dict[str, Any]] = field(default_factory=list)

    fare_estimate: float = 0.0
    final_calculated_fare: Optional[float] = None
    payment_method: PaymentMethod = PaymentMethod.CARD
    account_job_pin: Optional[str] = None
    is_priority_pickup: bool = False
    priority_fee_amount: Optional[float] = None
    wait_and_return: bool = False
    estimated_additional_wait_time_minutes: Optional[int] = None
    waiting_charge_at_pickup: Optional[float] = None
    no_show_fee_applicable: bool = False

    status: BookingStatus = BookingStatus.PENDING_ASSIGNMENT
    driver_current_leg_index: int = 0
    current_leg_entry_at: Optional[datetime] = None
    completed_stop_wait_charges: dict[str, float] = field(default_factory=dict)

    booked_at: Optional[datetime] = None
    scheduled_pickup_at: Optional[datetime] = None
    notified_passenger_arrival_at: Optional[datetime] = None
    passenger_acknowledged_arrival_at: Optional[datetime] = None
    ride_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    timeout_at: Optional[datetime] = None

    originating_operator_id: str = "OP001"
    required_operator_id: Optional[str] = None
    dispatch_method: Optional[DispatchMethod] = None
    vehicle_type: Optional[str] = None
    passenger_count: int = 1
    driver_notes: Optional[str] = None
    distance_miles: Optional[float] = None

    last_updated_by: Optional[str] = None
    last_updated_role: Optional[str] = None
    update_channel: Optional[str] = None
    updated_at: Optional[datetime] = None


class FakeClock:
    """Deterministic ``utcnow`` replacement that only moves when told."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


class RecordingNotifier:
    """Collects published events instead of sending them to Redis."""

    def __init__(self):
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        self.events.append((channel, event, payload))

    def channels(self) -> list[str]:
        return [channel for channel, _, _ in self.events]


def make_driver(
    driver_id: str,
    lat: Optional[float],
    lng: Optional[float],
    *,
    operator_code: Optional[str] = "OP001",
    status: str = "Active",
    name: Optional[str] = None,
) -> DriverModel:
    return DriverModel(
        id=driver_id,
        name=name or f"Driver {driver_id}",
        status=status,
        operator_code=operator_code,
        location_lat=lat,
        location_lng=lng,
        vehicle_category="car",
        vehicle_make="Toyota",
        vehicle_model="Prius",
        vehicle_color="Silver",
        vehicle_registration="LB21 ABC",
    )


def booking_payload(**overrides: Any) -> CreateBooking:
    data: dict[str, Any] = {
        "passenger_id": "pax-1",
        "passenger_name": "Jane Passenger",
        "passenger_phone": "+447700900123",
        "pickup_location": PICKUP,
        "dropoff_location": DROPOFF,
        "fare_estimate": 15.0,
        "distance_miles": 1.2,
        "operator_code": "OP001",
    }
    data.update(overrides)
    return CreateBooking(**data)


async def add_all(session: AsyncSession, *rows: Any) -> None:
    session.add_all(rows)
    await session.flush()


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def credit_account():
    return CreditAccountModel(passenger_id="pax-1", account_holder="Acme Ltd", balance=50.0)
