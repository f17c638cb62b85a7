"""Geospatial math over latitude/longitude pairs.

Distances use the haversine great-circle formula on a sphere of mean
Earth radius. ``polygon_area`` and ``center_of`` are planar approximations
on raw degrees and are only meaningful at field/farm scale.
"""

from __future__ import annotations

import math
from typing import Sequence, Union

from fleetpath.core.models import Location, PathPoint

# Earth radius in meters (for Haversine).
EARTH_RADIUS_M = 6_371_000.0

# Square meters per square degree under the small-angle approximation.
_M2_PER_DEG2 = (EARTH_RADIUS_M * math.pi / 180) ** 2

Positioned = Union[Location, PathPoint]


def _loc(p: Positioned) -> Location:
    return p.location if isinstance(p, PathPoint) else p


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance(p1: Positioned, p2: Positioned) -> float:
    """Haversine distance in meters. Symmetric, 0 for identical points."""
    a, b = _loc(p1), _loc(p2)
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def bearing(p1: Positioned, p2: Positioned) -> float:
    """Initial compass bearing from ``p1`` to ``p2`` in degrees, [0, 360)."""
    a, b = _loc(p1), _loc(p2)
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    x = math.sin(d_lon) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lon)
    result = (math.degrees(math.atan2(x, y)) + 360) % 360
    # -0.0 and float rounding can land exactly on 360.
    return 0.0 if result >= 360 else result


def path_distance(points: Sequence[Positioned]) -> float:
    """Sum of consecutive haversine distances in meters. 0 for < 2 points."""
    if len(points) < 2:
        return 0.0
    return sum(distance(points[i - 1], points[i]) for i in range(1, len(points)))


def polygon_area(vertices: Sequence[Positioned]) -> float:
    """Shoelace area of a lat/lon polygon in hectares.

    The area is computed on raw degrees and scaled with a single
    degree-to-meter factor, ignoring the longitude shrink with latitude.
    Good enough for comparing fields of the same farm; not a geodesic area.
    """
    if len(vertices) < 3:
        return 0.0

    area = 0.0
    n = len(vertices)
    for i in range(n):
        a, b = _loc(vertices[i]), _loc(vertices[(i + 1) % n])
        area += a.latitude * b.longitude
        area -= b.latitude * a.longitude

    return abs(area) / 2 * _M2_PER_DEG2 / 10_000


def point_in_polygon(point: Positioned, polygon: Sequence[Positioned]) -> bool:
    """Ray-casting containment test.

    Points exactly on an edge or vertex may land on either side.
    """
    p = _loc(point)
    x, y = p.latitude, p.longitude
    inside = False

    j = len(polygon) - 1
    for i in range(len(polygon)):
        vi, vj = _loc(polygon[i]), _loc(polygon[j])
        xi, yi = vi.latitude, vi.longitude
        xj, yj = vj.latitude, vj.longitude
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i

    return inside


def center_of(points: Sequence[Positioned]) -> Location:
    """Arithmetic mean of latitude and longitude."""
    if not points:
        raise ValueError("cannot compute the center of an empty point list")
    locs = [_loc(p) for p in points]
    return Location(
        latitude=sum(loc.latitude for loc in locs) / len(locs),
        longitude=sum(loc.longitude for loc in locs) / len(locs),
    )


def bounds_of(points: Sequence[Positioned]) -> dict[str, float]:
    """Bounding rectangle as ``{"north", "south", "east", "west"}``."""
    if not points:
        raise ValueError("cannot compute the bounds of an empty point list")
    lats = [_loc(p).latitude for p in points]
    lons = [_loc(p).longitude for p in points]
    return {
        "north": max(lats),
        "south": min(lats),
        "east": max(lons),
        "west": min(lons),
    }


def moving_average(values: Sequence[float], window_size: int) -> list[float]:
    """Sliding-window mean of length ``len(values) - window_size + 1``.

    A window wider than the input returns the input unchanged.
    """
    if window_size < 1:
        raise ValueError(f"window_size must be >= 1, got {window_size}")
    if window_size > len(values):
        return list(values)

    return [
        sum(values[i:i + window_size]) / window_size
        for i in range(len(values) - window_size + 1)
    ]


def area_covered(points: Sequence[PathPoint], implement_width_m: float) -> float:
    """Worked area in hectares: working path length times implement width."""
    working = [p for p in points if p.is_working]
    if len(working) < 2:
        return 0.0
    return path_distance(working) * implement_width_m / 10_000
