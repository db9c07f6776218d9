"""Glue between sampling, route classification and publishing."""

from __future__ import annotations

import logging

from pytrail.config import TrailConfig
from pytrail.geometry import distance_to_polyline_m, is_off_route
from pytrail.models.coordinate import Coordinate, Polyline
from pytrail.publisher import LocationPublisher
from pytrail.sampler import PositionSampler

_logger = logging.getLogger(__name__)


class SessionTracker:
    """Feeds every sample, classified against the route, to the publisher.

    :meth:`run` propagates the sampler's terminal
    :class:`~pytrail.exceptions.GeolocationError`; call it again once the
    user has fixed the cause.
    """

    def __init__(
        self,
        sampler: PositionSampler,
        publisher: LocationPublisher,
        route: Polyline | None = None,
        *,
        config: TrailConfig | None = None,
        threshold_m: float | None = None,
    ) -> None:
        self._sampler = sampler
        self._publisher = publisher
        if threshold_m is None:
            threshold_m = (config or TrailConfig()).off_route_threshold_m
        self._threshold_m = threshold_m
        self._route: Polyline | None = None
        self._last_coordinate: Coordinate | None = None
        self._distance_m: float | None = None
        self._off_route = False
        self.set_route(route)

    @property
    def route(self) -> Polyline | None:
        return self._route

    @property
    def last_coordinate(self) -> Coordinate | None:
        return self._last_coordinate

    @property
    def distance_m(self) -> float | None:
        """Distance of the last sample from the route, ``None`` without a route."""
        return self._distance_m

    @property
    def off_route(self) -> bool:
        return self._off_route

    @property
    def threshold_m(self) -> float:
        return self._threshold_m

    def _classify(self, coordinate: Coordinate) -> bool:
        self._distance_m = distance_to_polyline_m(coordinate, self._route) if self._route else None
        return is_off_route(coordinate, self._route, self._threshold_m)

    def set_route(self, route: Polyline | None) -> None:
        """Replace the planned route and reclassify the last sample."""
        self._route = route if route is not None and len(route) >= 2 else None
        if self._last_coordinate is None:
            return
        off_route = self._classify(self._last_coordinate)
        if off_route != self._off_route:
            _logger.info("Off-route is now %s after route change", off_route)
        self._off_route = off_route
        self._publisher.set_off_route(off_route)

    def handle_sample(self, coordinate: Coordinate) -> None:
        self._last_coordinate = coordinate
        off_route = self._classify(coordinate)
        if off_route != self._off_route:
            _logger.info("Off-route changed to %s (distance=%.1fm)", off_route, self._distance_m or 0.0)
        self._off_route = off_route
        self._publisher.update_position(coordinate, off_route)

    async def run(self) -> None:
        """Sample until stopped or a terminal geolocation error."""
        try:
            async for coordinate in self._sampler.start():
                self.handle_sample(coordinate)
        finally:
            self._sampler.stop()

    def stop(self) -> None:
        self._sampler.stop()
