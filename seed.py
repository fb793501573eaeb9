"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - dispatch settings for OP001 (auto) and OP002 (manual)
  - 10 drivers spread around central London
  - 3 passenger credit accounts
  - 4 bookings through the booking service (pending, auto-assigned,
    in progress, completed on account)
"""

import asyncio

from src.domain.commands import (
    AutoAssignDriver,
    CompleteRide,
    CreateBooking,
    LocationIn,
    NotifyArrival,
    StartRide,
)
from src.domain.entities import Actor
from src.domain.enums import DispatchMode, PaymentMethod, VehicleType
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import CreditAccountModel, DriverModel
from src.services.bookings import BookingService
from src.services.dispatch_policy import DispatchModeGate

SEED_ACTOR = Actor(id="seed", role="admin", channel="seed")

OPERATORS = {"OP001": DispatchMode.AUTO, "OP002": DispatchMode.MANUAL}

DRIVERS = [
    # id, name, operator, lat, lng, category, make, model, colour, reg
    ("drv-001", "Amelia Clarke", "OP001", 51.5074, -0.1278, "car", "Toyota", "Prius", "Silver", "LB21 ABC"),
    ("drv-002", "Oliver Patel", "OP001", 51.5155, -0.1410, "car", "Skoda", "Octavia", "Black", "LC70 XYZ"),
    ("drv-003", "Isla Thompson", "OP001", 51.5033, -0.1195, "estate", "Volvo", "V60", "Blue", "LD19 KLM"),
    ("drv-004", "Harry Okafor", "OP001", 51.5200, -0.1050, "minibus_6", "Ford", "Tourneo", "White", "LE68 PQR"),
    ("drv-005", "Mia Kowalski", "OP001", 51.4975, -0.1357, "car", "Kia", "Niro", "Grey", "LF22 STU"),
    ("drv-006", "Noah Evans", "OP001", 51.5310, -0.1240, "minibus_8", "Mercedes", "Vito", "Black", "LG71 VWX"),
    ("drv-007", "Ava Lewis", "OP002", 51.5090, -0.0860, "car", "Toyota", "Corolla", "Red", "LH20 YZA"),
    ("drv-008", "Leo Murphy", "OP002", 51.5140, -0.0750, "pet_friendly_car", "Hyundai", "Ioniq", "White", "LJ69 BCD"),
    ("drv-009", "Grace Ahmed", "OP002", 51.4960, -0.0890, "disable_wheelchair_access", "LEVC", "TX", "Black", "LK21 EFG"),
    ("drv-010", "Jack Wilson", None, 51.5225, -0.1585, "car", "Tesla", "Model 3", "Blue", "LL72 HIJ"),
]

CREDIT_ACCOUNTS = [
    ("pax-001", "Acme Ltd", 250.00),
    ("pax-002", "Northwind Traders", 80.00),
    ("pax-003", "Personal", 15.00),
]

KINGS_CROSS = LocationIn(address="King's Cross Station, London N1C", latitude=51.5308, longitude=-0.1238)
WATERLOO = LocationIn(address="Waterloo Station, London SE1", latitude=51.5031, longitude=-0.1132)
SOHO = LocationIn(address="Soho Square, London W1D", latitude=51.5155, longitude=-0.1320)
CANARY_WHARF = LocationIn(address="Canada Square, London E14", latitude=51.5054, longitude=-0.0235)


async def seed():
    async with async_session_factory() as session:
        # ── Operators ─────────────────────────────────────────────────
        gate = DispatchModeGate(session)
        for operator_id, mode in OPERATORS.items():
            await gate.set_mode(operator_id, mode)
        print(f"  Configured {len(OPERATORS)} operators")

        # ── Drivers ───────────────────────────────────────────────────
        for d in DRIVERS:
            session.add(
                DriverModel(
                    id=d[0],
                    name=d[1],
                    operator_code=d[2],
                    location_lat=d[3],
                    location_lng=d[4],
                    vehicle_category=d[5],
                    vehicle_make=d[6],
                    vehicle_model=d[7],
                    vehicle_color=d[8],
                    vehicle_registration=d[9],
                )
            )
        await session.flush()
        print(f"  Created {len(DRIVERS)} drivers")

        # ── Credit accounts ───────────────────────────────────────────
        for passenger_id, holder, balance in CREDIT_ACCOUNTS:
            session.add(
                CreditAccountModel(
                    passenger_id=passenger_id, account_holder=holder, balance=balance
                )
            )
        await session.flush()
        print(f"  Created {len(CREDIT_ACCOUNTS)} credit accounts")

        # ── Bookings ──────────────────────────────────────────────────
        service = BookingService(session)

        await service.create_booking_from_offer(
            CreateBooking(
                passenger_id="pax-004",
                passenger_name="Ella Roberts",
                pickup_location=SOHO,
                dropoff_location=CANARY_WHARF,
                operator_code="OP002",
            ),
            SEED_ACTOR,
        )

        assigned, _ = await service.create_booking_from_offer(
            CreateBooking(
                passenger_id="pax-005",
                passenger_name="George Hughes",
                pickup_location=KINGS_CROSS,
                dropoff_location=WATERLOO,
                vehicle_type=VehicleType.CAR,
            ),
            SEED_ACTOR,
        )
        await service.apply_action(assigned.id, AutoAssignDriver(), SEED_ACTOR)

        riding, _ = await service.create_booking_from_offer(
            CreateBooking(
                passenger_id="pax-002",
                passenger_name="Sophie Turner",
                pickup_location=WATERLOO,
                dropoff_location=KINGS_CROSS,
                stops=[SOHO],
                payment_method=PaymentMethod.ACCOUNT,
                driver_id="drv-003",
            ),
            SEED_ACTOR,
        )
        await service.apply_action(riding.id, NotifyArrival(), SEED_ACTOR)
        await service.apply_action(riding.id, StartRide(), SEED_ACTOR)

        done, _ = await service.create_booking_from_offer(
            CreateBooking(
                passenger_id="pax-001",
                passenger_name="Thomas Green",
                pickup_location=SOHO,
                dropoff_location=WATERLOO,
                payment_method=PaymentMethod.ACCOUNT,
                driver_id="drv-005",
            ),
            SEED_ACTOR,
        )
        await service.apply_action(done.id, NotifyArrival(), SEED_ACTOR)
        await service.apply_action(done.id, StartRide(), SEED_ACTOR)
        await service.apply_action(done.id, CompleteRide(final_fare=18.40), SEED_ACTOR)
        print("  Created 4 bookings")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
