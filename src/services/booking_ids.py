"""
Sequential booking-ID generator.

One counter row per operator (``counters.id = bookingId_{operatorCode}``).
The read-increment-write runs inside the caller's transaction with the row
locked (``SELECT ... FOR UPDATE``), so concurrent booking creations for the
same operator queue on the lock and never share a sequence number.  The very
first booking of an operator inserts the row inside a savepoint; if another
writer inserted it first, the unique key rejects ours and we fall back to
the locked read.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.commands import OPERATOR_CODE_PATTERN
from src.domain.exceptions import CounterCorrupted, ValidationFailed
from src.domain.identifiers import counter_key, format_booking_id
from src.infrastructure.repositories import CounterRepository

logger = logging.getLogger(__name__)

_OPERATOR_CODE = re.compile(OPERATOR_CODE_PATTERN)


@dataclass(frozen=True)
class GeneratedBookingId:
    booking_id: str
    operator_code: str
    sequence_number: int


class SequentialBookingIdGenerator:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.counters = CounterRepository(session)

    async def generate(self, operator_code: str) -> GeneratedBookingId:
        if not operator_code or not _OPERATOR_CODE.match(operator_code):
            raise ValidationFailed(f"Invalid operator code: {operator_code!r}")
        sequence = await self._next_sequence(counter_key(operator_code))
        return GeneratedBookingId(
            booking_id=format_booking_id(operator_code, sequence),
            operator_code=operator_code,
            sequence_number=sequence,
        )

    async def _next_sequence(self, key: str) -> int:
        counter = await self.counters.get_for_update(key)
        if counter is None:
            try:
                async with self.session.begin_nested():
                    await self.counters.insert(key, 1)
                logger.info("Initialised booking counter %s", key)
                return 1
            except IntegrityError:
                logger.info("Counter %s created concurrently; retrying", key)
                counter = await self.counters.get_for_update(key)
                if counter is None:
                    raise

        current = counter.current_id
        if isinstance(current, bool) or not isinstance(current, int) or current < 1:
            raise CounterCorrupted(key, current)

        counter.current_id = current + 1
        await self.session.flush()
        return current + 1
