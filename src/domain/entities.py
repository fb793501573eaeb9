"""Value objects shared by the matcher, pricing and the state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Actor:
    """Who is changing a booking, and through which channel."""

    id: str = "anonymous"
    role: str = "system"
    channel: str = "api"


SYSTEM_ACTOR = Actor(id="system", role="system", channel="sweeper")


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class DriverCandidate:
    id: str
    name: str
    status: str
    operator_code: Optional[str] = None
    location: Optional[Coordinates] = None
    vehicle_details: dict[str, Any] = field(default_factory=dict)
