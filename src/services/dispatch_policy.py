"""Per-operator dispatch-mode gate."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.enums import DispatchMode
from src.infrastructure.repositories import OperatorSettingsRepository

logger = logging.getLogger(__name__)


class DispatchModeGate:
    """
    Decides whether the system may auto-assign bookings of an operator.

    Operators without a setting row get ``default_mode`` (``auto`` unless
    configured otherwise).
    """

    def __init__(self, session: AsyncSession, default_mode: str | None = None):
        self.settings = OperatorSettingsRepository(session)
        self.default_mode = DispatchMode(default_mode or settings.default_dispatch_mode)

    async def get_mode(self, operator_id: str) -> DispatchMode:
        setting = await self.settings.get(operator_id)
        if setting is None:
            logger.debug(
                "No dispatch setting for %s; using %s", operator_id, self.default_mode.value
            )
            return self.default_mode
        return DispatchMode(setting.dispatch_mode)

    async def can_auto_assign(self, operator_id: str) -> bool:
        return await self.get_mode(operator_id) == DispatchMode.AUTO

    async def set_mode(self, operator_id: str, mode: DispatchMode) -> DispatchMode:
        setting = await self.settings.set_dispatch_mode(operator_id, mode)
        logger.info("Operator %s dispatch mode set to %s", operator_id, mode.value)
        return DispatchMode(setting.dispatch_mode)
