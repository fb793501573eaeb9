"""FastAPI dependency injection helpers."""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import Actor
from src.infrastructure.database import async_session_factory
from src.infrastructure.notifications import NotificationSink, RedisNotificationSink
from src.infrastructure.redis_client import get_redis
from src.services.bookings import BookingService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_notifier() -> NotificationSink:
    return RedisNotificationSink(await get_redis())


def get_actor(
    x_actor_id: str = Header("anonymous", min_length=1, max_length=64),
    x_actor_role: str = Header("system", min_length=1, max_length=32),
    x_channel: str = Header("api", min_length=1, max_length=32),
) -> Actor:
    """Identity comes from the upstream auth proxy; we only record it."""
    return Actor(id=x_actor_id, role=x_actor_role, channel=x_channel)


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
) -> BookingService:
    return BookingService(db, notifier=notifier)
