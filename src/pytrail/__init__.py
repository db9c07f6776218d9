"""pytrail - Async live location sharing and route-deviation alerts for group sessions."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pytrail")
except PackageNotFoundError:
    __version__ = "0+local"
from pytrail.aggregator import LocationAggregator
from pytrail.client import TrailClient
from pytrail.config import TrailConfig
from pytrail.exceptions import (
    GeolocationError,
    GeolocationPermissionError,
    GeolocationTimeoutError,
    GeolocationUnavailableError,
    LocationReadError,
    LocationWriteError,
    NicknameLookupError,
    TrailConfigError,
    TrailError,
    TrailTransportError,
)
from pytrail.geometry import (
    distance_to_polyline_m,
    great_circle_distance_m,
    is_off_route,
    point_to_segment_distance_m,
)
from pytrail.models import (
    ChangeEvent,
    ChangeType,
    Coordinate,
    GeolocationErrorCode,
    LocationRow,
    ParticipantLocation,
    Polyline,
    SamplerState,
    WatchOptions,
    route_from_geojson,
)
from pytrail.publisher import LocationPublisher
from pytrail.sampler import GeolocationProvider, PositionSampler, PositionStream
from pytrail.tracker import SessionTracker

__all__ = [
    "__version__",
    "ChangeEvent",
    "ChangeType",
    "Coordinate",
    "GeolocationError",
    "GeolocationErrorCode",
    "GeolocationPermissionError",
    "GeolocationProvider",
    "GeolocationTimeoutError",
    "GeolocationUnavailableError",
    "LocationAggregator",
    "LocationPublisher",
    "LocationReadError",
    "LocationRow",
    "LocationWriteError",
    "NicknameLookupError",
    "ParticipantLocation",
    "Polyline",
    "PositionSampler",
    "PositionStream",
    "SamplerState",
    "SessionTracker",
    "TrailClient",
    "TrailConfig",
    "TrailConfigError",
    "TrailError",
    "TrailTransportError",
    "WatchOptions",
    "distance_to_polyline_m",
    "great_circle_distance_m",
    "is_off_route",
    "point_to_segment_distance_m",
    "route_from_geojson",
]
