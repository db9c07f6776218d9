"""Route polyline extraction from stored GeoJSON."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pytrail.models.coordinate import Coordinate

_logger = logging.getLogger(__name__)


def route_from_geojson(geojson: Mapping[str, Any] | None) -> list[Coordinate] | None:
    """Return the first ``LineString`` feature of *geojson* as a polyline.

    Positions are GeoJSON ``[lon, lat, (ele)]`` triples. Returns ``None``
    when there is no usable line (missing collection, no features, fewer
    than two points, or any malformed position).
    """
    if not geojson:
        return None
    features = geojson.get("features")
    if not isinstance(features, list) or not features:
        return None

    first = features[0]
    geometry = first.get("geometry") if isinstance(first, Mapping) else None
    if not isinstance(geometry, Mapping) or geometry.get("type") != "LineString":
        return None
    positions = geometry.get("coordinates")
    if not isinstance(positions, list) or len(positions) < 2:
        return None

    route: list[Coordinate] = []
    for index, position in enumerate(positions):
        if not isinstance(position, (list, tuple)):
            _logger.debug("Route position %d is not a [lon, lat] pair: %r", index, position)
            return None
        try:
            route.append(Coordinate.from_lon_lat(position))
        except (TypeError, ValueError):
            _logger.debug("Route position %d is malformed: %r", index, position, exc_info=True)
            return None
    return route
