"""Coordinates and great-circle distance."""

from __future__ import annotations

import math

from pydantic import BaseModel, Field

EARTH_RADIUS_METERS = 6_371_000.0


class Coords(BaseModel):
    """A WGS-84 position fix."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    model_config = {"frozen": True}


def distance_meters(a: Coords, b: Coords) -> float:
    """Haversine distance between two coordinates on a spherical earth.

    NaN inputs propagate to a NaN result; callers compare with ``<=`` so a
    NaN distance is never "inside".
    """
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
