"""Data models for pytrail."""

from pytrail.models._base import TrailBaseModel, TrailEnum, TrailTimestamp, parse_trail_timestamp
from pytrail.models.coordinate import Coordinate, Polyline
from pytrail.models.feed import ChangeEvent, ChangeType
from pytrail.models.geolocation import GeolocationErrorCode, SamplerState, WatchOptions
from pytrail.models.location import LocationKey, LocationRow, ParticipantLocation
from pytrail.models.route import route_from_geojson

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "Coordinate",
    "GeolocationErrorCode",
    "LocationKey",
    "LocationRow",
    "ParticipantLocation",
    "Polyline",
    "SamplerState",
    "TrailBaseModel",
    "TrailEnum",
    "TrailTimestamp",
    "WatchOptions",
    "parse_trail_timestamp",
    "route_from_geojson",
]
