"""Route geometry: point-to-polyline distance and off-route classification.

Segment projection is done in a flat ``(lon, lat)`` plane and the final
distance is measured on the sphere. At the tens-of-metres scale the
off-route threshold works at, the planar projection error is negligible.
"""

from __future__ import annotations

import math

from pytrail._constants import DEFAULT_OFF_ROUTE_THRESHOLD_M, EARTH_RADIUS_M
from pytrail.models.coordinate import Coordinate, Polyline


def great_circle_distance_m(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between *a* and *b* in metres."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lon - a.lon)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def _project_onto_segment(p: Coordinate, start: Coordinate, end: Coordinate) -> Coordinate:
    dx = end.lon - start.lon
    dy = end.lat - start.lat
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return start

    t = ((p.lon - start.lon) * dx + (p.lat - start.lat) * dy) / length_sq
    if t <= 0:
        return start
    if t >= 1:
        return end
    # Interpolated between two validated points, so already in range.
    return Coordinate.model_construct(lat=start.lat + t * dy, lon=start.lon + t * dx)


def point_to_segment_distance_m(p: Coordinate, seg_start: Coordinate, seg_end: Coordinate) -> float:
    """Distance in metres from *p* to the segment ``seg_start -> seg_end``.

    A zero-length segment measures to *seg_start*.
    """
    return great_circle_distance_m(p, _project_onto_segment(p, seg_start, seg_end))


def distance_to_polyline_m(p: Coordinate, route: Polyline) -> float | None:
    """Shortest distance in metres from *p* to any segment of *route*.

    Returns ``None`` when *route* has fewer than two points.
    """
    if route is None or len(route) < 2:
        return None
    return min(point_to_segment_distance_m(p, route[i], route[i + 1]) for i in range(len(route) - 1))


def is_off_route(
    p: Coordinate,
    route: Polyline | None,
    threshold_m: float = DEFAULT_OFF_ROUTE_THRESHOLD_M,
) -> bool:
    """Whether *p* is strictly farther than *threshold_m* from *route*.

    Without a usable route nobody is off-route.
    """
    if route is None:
        return False
    distance = distance_to_polyline_m(p, route)
    if distance is None:
        return False
    return distance > threshold_m
