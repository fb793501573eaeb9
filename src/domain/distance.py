"""
Distance calculation using the Haversine formula.

Assumption
----------
Straight-line (great-circle) distance is used both for driver matching and
for the server-side fare estimate.  Road distance would come from a routing
service, which is an external collaborator here.

Complexity: O(1) per call, O(k) for a k-point path.
"""

import math
from typing import Iterable

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_MILE = 1609.34


def haversine_m(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **metres** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def path_distance_m(points: Iterable[tuple[float, float]]) -> float:
    """Sum of hop distances along an ordered list of ``(lat, lng)`` points."""
    total = 0.0
    previous = None
    for point in points:
        if previous is not None:
            total += haversine_m(previous[0], previous[1], point[0], point[1])
        previous = point
    return total


def meters_to_miles(meters: float) -> float:
    return meters / METERS_PER_MILE
