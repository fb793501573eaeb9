"""
Background Offer Sweeper
========================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 15 s).

Reads already treat a pending offer past ``expires_at`` as expired, so the
sweeper only makes that visible in storage.  It also cancels bookings that
sat in ``pending_assignment`` beyond their ``timeout_at`` (status
``cancelled_no_driver``).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one API process sweeps at a time.
* Timed-out bookings are loaded ``FOR UPDATE SKIP LOCKED`` so a booking that
  is being assigned right now is left for the next cycle.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from src.config import settings
from src.domain.clock import utcnow
from src.infrastructure.database import async_session_factory
from src.infrastructure.locks import DistributedLock
from src.infrastructure.notifications import RedisNotificationSink
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import RideOfferRepository
from src.services.bookings import BookingService

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


@dataclass
class SweepResult:
    offers_expired: int = 0
    bookings_expired: int = 0
    skipped: bool = False


# ── Public API ────────────────────────────────────────────────────────


async def start_sweeper_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info("Offer sweeper started (interval=%ds)", settings.sweep_interval_seconds)


async def stop_sweeper_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Offer sweeper stopped")


async def run_sweep_cycle(
    session_factory: Any = None, redis: Optional[Any] = None
) -> SweepResult:
    """Execute one sweep.  Skips silently when another process holds the lock."""
    session_factory = session_factory or async_session_factory
    redis = redis or await get_redis()
    lock = DistributedLock(redis, "offer_sweeper", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker; skipping sweep")
        return SweepResult(skipped=True)

    try:
        async with session_factory() as session:
            now = utcnow()
            offers_expired = await RideOfferRepository(session).expire_overdue(now)
            service = BookingService(session, notifier=RedisNotificationSink(redis))
            bookings_expired = await service.expire_unassigned(now)
            await session.commit()
    finally:
        await lock.release()

    if offers_expired or bookings_expired:
        logger.info(
            "Sweep expired %d offer(s) and %d unassigned booking(s)",
            offers_expired,
            bookings_expired,
        )
    return SweepResult(offers_expired=offers_expired, bookings_expired=bookings_expired)


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a sweep then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sweep_cycle()
        except Exception:
            logger.exception("Unhandled error in sweep cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass
