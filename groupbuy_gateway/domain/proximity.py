"""Great-circle distance used to suggest nearby groups"""

import math
from typing import Optional

from groupbuy_gateway.domain.models import Coordinates

EARTH_RADIUS_KM = 6371.0


def distance_km(origin: Coordinates, destination: Coordinates) -> float:
    """Haversine distance between two points in kilometres"""
    d_lat = math.radians(destination.latitude - origin.latitude)
    d_lon = math.radians(destination.longitude - origin.longitude)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin.latitude))
        * math.cos(math.radians(destination.latitude))
        * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def within_radius(
    origin: Optional[Coordinates],
    destination: Optional[Coordinates],
    radius_km: float,
) -> bool:
    """
    True when destination lies within radius_km of origin.

    Missing coordinates on either side never exclude a candidate.
    """
    if origin is None or destination is None:
        return True
    return distance_km(origin, destination) <= radius_km
