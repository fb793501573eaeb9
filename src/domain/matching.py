"""
Nearest-Driver Matching
=======================

1. **Filter**   -- keep drivers whose status is ``Active`` and, when an
   operator filter is given, whose ``operator_code`` matches it exactly.
2. **Measure**  -- great-circle (haversine) distance from each remaining
   driver's last known location to the pickup point.
3. **Select**   -- the minimum; the first driver seen wins exact ties.

An explicit operator filter is never relaxed: if no driver of that operator
qualifies the result is ``None``, even when a closer driver of another
operator exists.

Complexity
----------
O(n) over the supplied drivers.  Fleets are small per operator, so no
spatial index is needed; the repository already narrows the scan to active
drivers of the requested operator.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .distance import haversine_m
from .entities import Coordinates, DriverCandidate
from .enums import DriverStatus


def is_eligible(driver: DriverCandidate, operator_code: Optional[str] = None) -> bool:
    if driver.status != DriverStatus.ACTIVE.value:
        return False
    if operator_code is not None and driver.operator_code != operator_code:
        return False
    return driver.location is not None


def find_nearest_driver(
    pickup: Coordinates,
    drivers: Iterable[DriverCandidate],
    operator_code: Optional[str] = None,
) -> Optional[tuple[DriverCandidate, float]]:
    """
    Return ``(driver, distance_m)`` for the closest eligible driver, or
    ``None`` when no driver qualifies.
    """
    best: Optional[DriverCandidate] = None
    best_distance = float("inf")

    for driver in drivers:
        if not is_eligible(driver, operator_code):
            continue
        location = driver.location
        if location is None:
            continue
        distance = haversine_m(
            pickup.latitude,
            pickup.longitude,
            location.latitude,
            location.longitude,
        )
        # strict "<" keeps the first-seen driver on exact ties
        if distance < best_distance:
            best, best_distance = driver, distance

    if best is None:
        return None
    return best, best_distance
