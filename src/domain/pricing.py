"""
Fare Estimation Engine  (Strategy Pattern)
==========================================

Formula
-------
Journey   = Base + Minutes x Per_Minute + Miles x Per_Mile + First_Mile
            + Stops x Per_Stop + Booking_Fee
Adjusted  = max(Journey x Vehicle_Multiplier x Passenger_Adjustment
                + Pet_Surcharge, Minimum_Fare)
Final     = (Adjusted x 1.7 + Chargeable_Wait x 0.20   if wait-and-return)
            + Priority_Fee
            x Surge (1.5 when applied)

* **Vehicle_Multiplier**: estate 1.2, 6-seat minibus 1.5, 8-seat 1.6,
  wheelchair access 2.0, otherwise 1.0.
* **Passenger_Adjustment** = 1 + 0.1 per passenger beyond the first.
* **Chargeable_Wait** = wait minutes beyond the 10 free minutes.

Distance is the haversine path through every stop; duration assumes a
constant average speed.  The same engine backs the quote endpoint and the
server-side estimate stored on new bookings.

Complexity: O(k) for k waypoints.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .distance import meters_to_miles, path_distance_m
from .entities import Coordinates
from .enums import VehicleType

BASE_FARE = 0.00
PER_MILE_RATE = 1.00
FIRST_MILE_SURCHARGE = 1.99
PER_MINUTE_RATE = 0.10
BOOKING_FEE = 0.75
MINIMUM_FARE = 4.00
SURGE_MULTIPLIER = 1.5
PER_STOP_SURCHARGE = 0.50
WAIT_AND_RETURN_SURCHARGE = 0.70
FREE_WAITING_MINUTES = 10
WAITING_CHARGE_PER_MINUTE = 0.20
PET_FRIENDLY_SURCHARGE = 2.00

VEHICLE_MULTIPLIERS: dict[VehicleType, float] = {
    VehicleType.ESTATE: 1.2,
    VehicleType.MINIBUS_6: 1.5,
    VehicleType.MINIBUS_6_PET_FRIENDLY: 1.5,
    VehicleType.MINIBUS_8: 1.6,
    VehicleType.MINIBUS_8_PET_FRIENDLY: 1.6,
    VehicleType.WHEELCHAIR_ACCESS: 2.0,
}


@dataclass
class FareContext:
    distance_miles: float
    duration_minutes: float
    stop_count: int = 0
    vehicle_type: VehicleType = VehicleType.CAR
    passengers: int = 1
    wait_and_return: bool = False
    wait_minutes: int = 0
    priority_fee: float = 0.0
    surge: bool = False


@dataclass(frozen=True)
class FareQuote:
    fare_estimate: float
    distance_miles: float
    duration_minutes: float
    surge_multiplier: float
    breakdown: dict[str, float] = field(default_factory=dict)


# ── Strategy hierarchy ────────────────────────────────────────────────


class FareComponent(ABC):
    """One step of the fare pipeline; receives the running fare."""

    name: str = "component"

    @abstractmethod
    def apply(self, fare: float, ctx: FareContext) -> float: ...


class JourneyFare(FareComponent):
    name = "journey"

    def apply(self, fare: float, ctx: FareContext) -> float:
        if ctx.distance_miles <= 0:
            return 0.0
        return (
            BASE_FARE
            + ctx.duration_minutes * PER_MINUTE_RATE
            + ctx.distance_miles * PER_MILE_RATE
            + FIRST_MILE_SURCHARGE
            + ctx.stop_count * PER_STOP_SURCHARGE
            + BOOKING_FEE
        )


class VehicleAdjustment(FareComponent):
    name = "vehicle"

    def apply(self, fare: float, ctx: FareContext) -> float:
        multiplier = VEHICLE_MULTIPLIERS.get(ctx.vehicle_type, 1.0)
        passenger_adjustment = 1 + max(0, ctx.passengers - 1) * 0.1
        adjusted = fare * multiplier * passenger_adjustment
        if "pet_friendly" in ctx.vehicle_type.value:
            adjusted += PET_FRIENDLY_SURCHARGE
        return max(adjusted, MINIMUM_FARE)


class WaitAndReturnSurcharge(FareComponent):
    name = "wait_and_return"

    def apply(self, fare: float, ctx: FareContext) -> float:
        if not ctx.wait_and_return:
            return fare
        chargeable = max(0, ctx.wait_minutes - FREE_WAITING_MINUTES)
        return fare * (1 + WAIT_AND_RETURN_SURCHARGE) + chargeable * WAITING_CHARGE_PER_MINUTE


class PriorityFee(FareComponent):
    name = "priority"

    def apply(self, fare: float, ctx: FareContext) -> float:
        return fare + max(0.0, ctx.priority_fee)


class Surge(FareComponent):
    name = "surge"

    def apply(self, fare: float, ctx: FareContext) -> float:
        return fare * (SURGE_MULTIPLIER if ctx.surge else 1.0)


DEFAULT_PIPELINE: tuple[FareComponent, ...] = (
    JourneyFare(),
    VehicleAdjustment(),
    WaitAndReturnSurcharge(),
    PriorityFee(),
    Surge(),
)


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the booking service and the quote endpoint."""

    def __init__(
        self,
        average_speed_mph: float = 20.0,
        pipeline: Sequence[FareComponent] = DEFAULT_PIPELINE,
    ):
        self.average_speed_mph = average_speed_mph
        self.pipeline = tuple(pipeline)

    def price(self, ctx: FareContext) -> FareQuote:
        fare = 0.0
        breakdown: dict[str, float] = {}
        for component in self.pipeline:
            fare = component.apply(fare, ctx)
            breakdown[component.name] = round(fare, 2)
        return FareQuote(
            fare_estimate=round(fare, 2),
            distance_miles=round(ctx.distance_miles, 2),
            duration_minutes=round(ctx.duration_minutes, 1),
            surge_multiplier=SURGE_MULTIPLIER if ctx.surge else 1.0,
            breakdown=breakdown,
        )

    def estimate(
        self,
        pickup: Coordinates,
        dropoff: Coordinates,
        stops: Sequence[Coordinates] = (),
        *,
        vehicle_type: VehicleType = VehicleType.CAR,
        passengers: int = 1,
        wait_and_return: bool = False,
        wait_minutes: int = 0,
        priority_fee: Optional[float] = None,
        surge: bool = False,
    ) -> FareQuote:
        waypoints = [pickup, *stops, dropoff]
        miles = meters_to_miles(
            path_distance_m((p.latitude, p.longitude) for p in waypoints)
        )
        minutes = miles / self.average_speed_mph * 60 if self.average_speed_mph > 0 else 0.0
        return self.price(
            FareContext(
                distance_miles=miles,
                duration_minutes=minutes,
                stop_count=len(stops),
                vehicle_type=vehicle_type,
                passengers=passengers,
                wait_and_return=wait_and_return,
                wait_minutes=wait_minutes,
                priority_fee=priority_fee or 0.0,
                surge=surge,
            )
        )
