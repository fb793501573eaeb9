"""
Fire-and-forget notification sink.

Booking events are published to Redis pub/sub channels (``driver:{id}``,
``passenger:{id}``, ``booking:{id}``); push/websocket delivery subscribes
downstream.  Publishing never raises into the caller: a failed publish is
logged and dropped.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None: ...


class RedisNotificationSink:
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        message = json.dumps({"type": event, **payload}, default=str)
        try:
            await self.redis.publish(channel, message)
        except Exception:
            logger.exception("Failed to publish %s to %s", event, channel)


class NullNotificationSink:
    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        logger.debug("Dropping %s for %s (no sink configured)", event, channel)
