"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Reads that precede a conditional write use
``SELECT ... FOR UPDATE`` so concurrent requests serialise on the row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    BookingModel,
    CounterModel,
    CreditAccountModel,
    DriverModel,
    OperatorSettingModel,
    RideOfferModel,
)
from src.domain.entities import Coordinates, DriverCandidate
from src.domain.enums import (
    ACTIVE_STATUSES,
    BookingStatus,
    DispatchMode,
    DriverStatus,
    OfferStatus,
)


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: str) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_for_update(self, booking_id: str) -> Optional[BookingModel]:
        return await self.session.get(
            BookingModel, booking_id, with_for_update=True, populate_existing=True
        )

    async def get_active_for_passenger(
        self, passenger_id: str
    ) -> Optional[BookingModel]:
        statuses = {BookingStatus.PENDING_ASSIGNMENT, *ACTIVE_STATUSES}
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.passenger_id == passenger_id,
                BookingModel.status.in_(statuses),
            )
            .order_by(BookingModel.booked_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_timed_out_unassigned(self, now: datetime) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.status == BookingStatus.PENDING_ASSIGNMENT,
                BookingModel.timeout_at.is_not(None),
                BookingModel.timeout_at <= now,
            )
            .order_by(BookingModel.timeout_at)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())


class RideOfferRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, offer: RideOfferModel) -> RideOfferModel:
        self.session.add(offer)
        await self.session.flush()
        return offer

    async def get_by_id(self, offer_id: str) -> Optional[RideOfferModel]:
        return await self.session.get(RideOfferModel, offer_id)

    async def get_for_update(self, offer_id: str) -> Optional[RideOfferModel]:
        return await self.session.get(
            RideOfferModel, offer_id, with_for_update=True, populate_existing=True
        )

    async def expire_pending_for_booking(self, booking_id: str) -> int:
        """Supersede every pending offer of *booking_id*.  Returns the count."""
        result = await self.session.execute(
            update(RideOfferModel)
            .where(
                RideOfferModel.booking_id == booking_id,
                RideOfferModel.status == OfferStatus.PENDING,
            )
            .values(status=OfferStatus.EXPIRED)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def expire_overdue(self, now: datetime) -> int:
        result = await self.session.execute(
            update(RideOfferModel)
            .where(
                RideOfferModel.status == OfferStatus.PENDING,
                RideOfferModel.expires_at <= now,
            )
            .values(status=OfferStatus.EXPIRED)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def list_for_booking(self, booking_id: str) -> list[RideOfferModel]:
        result = await self.session.execute(
            select(RideOfferModel)
            .where(RideOfferModel.booking_id == booking_id)
            .order_by(RideOfferModel.created_at)
        )
        return list(result.scalars().all())

    async def list_live_for_driver(
        self, driver_id: str, now: datetime
    ) -> list[RideOfferModel]:
        result = await self.session.execute(
            select(RideOfferModel)
            .where(
                RideOfferModel.driver_id == driver_id,
                RideOfferModel.status == OfferStatus.PENDING,
                RideOfferModel.expires_at > now,
            )
            .order_by(RideOfferModel.created_at.desc())
        )
        return list(result.scalars().all())


class CounterRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_update(self, counter_id: str) -> Optional[CounterModel]:
        result = await self.session.execute(
            select(CounterModel)
            .where(CounterModel.id == counter_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def insert(self, counter_id: str, value: int) -> CounterModel:
        counter = CounterModel(id=counter_id, current_id=value)
        self.session.add(counter)
        await self.session.flush()
        return counter


def to_candidate(driver: DriverModel) -> DriverCandidate:
    location = None
    if driver.location_lat is not None and driver.location_lng is not None:
        location = Coordinates(driver.location_lat, driver.location_lng)
    vehicle = {
        "category": driver.vehicle_category,
        "make": driver.vehicle_make,
        "model": driver.vehicle_model,
        "color": driver.vehicle_color,
        "registration": driver.vehicle_registration,
    }
    return DriverCandidate(
        id=driver.id,
        name=driver.name,
        status=driver.status,
        operator_code=driver.operator_code,
        location=location,
        vehicle_details={k: v for k, v in vehicle.items() if v is not None},
    )


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, driver_id: str) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def get_active(self, operator_code: str | None = None) -> list[DriverModel]:
        query = (
            select(DriverModel)
            .where(DriverModel.status == DriverStatus.ACTIVE.value)
            .order_by(DriverModel.id)
        )
        if operator_code is not None:
            query = query.where(DriverModel.operator_code == operator_code)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update_location(
        self, driver_id: str, lat: float, lng: float, at: datetime
    ) -> bool:
        result = await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver_id)
            .values(location_lat=lat, location_lng=lng, location_updated_at=at)
            .execution_options(synchronize_session="fetch")
        )
        return bool(result.rowcount)


class OperatorSettingsRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, operator_id: str) -> Optional[OperatorSettingModel]:
        return await self.session.get(OperatorSettingModel, operator_id)

    async def set_dispatch_mode(
        self, operator_id: str, mode: DispatchMode
    ) -> OperatorSettingModel:
        setting = await self.get(operator_id)
        if setting is None:
            setting = OperatorSettingModel(operator_id=operator_id, dispatch_mode=mode)
            self.session.add(setting)
        else:
            setting.dispatch_mode = mode
        await self.session.flush()
        return setting


class CreditAccountRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_passenger_for_update(
        self, passenger_id: str
    ) -> Optional[CreditAccountModel]:
        result = await self.session.execute(
            select(CreditAccountModel)
            .where(CreditAccountModel.passenger_id == passenger_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()
