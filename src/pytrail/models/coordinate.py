"""Coordinate value type."""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import AliasChoices, Field

from pytrail.models._base import TrailBaseModel


class Coordinate(TrailBaseModel):
    """An immutable WGS84 position in degrees."""

    lat: float = Field(..., ge=-90.0, le=90.0, validation_alias=AliasChoices("lat", "latitude"))
    lon: float = Field(
        ...,
        ge=-180.0,
        le=180.0,
        validation_alias=AliasChoices("lon", "lng", "longitude"),
    )

    @classmethod
    def from_lon_lat(cls, position: Sequence[float]) -> Coordinate:
        """Build from a GeoJSON-style ``[lon, lat, (ele)]`` position."""
        if len(position) < 2:
            raise ValueError(f"position needs at least lon and lat, got {position!r}")
        return cls(lat=float(position[1]), lon=float(position[0]))


Polyline = Sequence[Coordinate]
"""Ordered route points; fewer than two points means "no route"."""
