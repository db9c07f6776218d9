"""High-level async client wiring the location store and the change feed."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from pytrail._mqtt import ChangeFeed, MqttChangeFeed
from pytrail._scheduler import Scheduler
from pytrail._transport import RestLocationStore
from pytrail.aggregator import LocationAggregator
from pytrail.config import TrailConfig
from pytrail.exceptions import TrailConfigError, TrailError
from pytrail.models.coordinate import Coordinate
from pytrail.models.route import route_from_geojson
from pytrail.publisher import LocationPublisher
from pytrail.sampler import GeolocationProvider, PositionSampler, StatusCallback
from pytrail.tracker import SessionTracker

_logger = logging.getLogger(__name__)


class TrailClient:
    """Async client for one backend.

    Usage::

        async with TrailClient(config) as client:
            route = await client.fetch_route(session_id)
            async with client.aggregator(session_id, user_id) as live:
                publisher = client.publisher(live)
                await client.tracker(provider, publisher, route).run()
    """

    def __init__(
        self,
        config: TrailConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        feed: ChangeFeed | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._store: RestLocationStore | None = None
        self._feed = feed

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TrailClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._store = RestLocationStore(self._config, self._http_session)
        if self._feed is None and self._config.mqtt_enabled:
            self._feed = MqttChangeFeed(self._config, logger=_logger)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._store = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def store(self) -> RestLocationStore:
        if self._store is None:
            raise TrailError("Client not initialized. Use 'async with TrailClient(...) as client:'")
        return self._store

    def _require_feed(self) -> ChangeFeed:
        if self._feed is None:
            raise TrailConfigError("No change feed configured (set mqtt_host or pass feed=)")
        return self._feed

    # ------------------------------------------------------------------
    # Session views
    # ------------------------------------------------------------------

    async def fetch_route(self, session_id: str) -> list[Coordinate] | None:
        """Planned route polyline of *session_id*, ``None`` when there is none.

        Read failures are logged and treated as "no route".
        """
        try:
            geojson = await self.store.fetch_route_geojson(session_id)
        except TrailError:
            _logger.warning("Route fetch failed for session=%s", session_id, exc_info=True)
            return None
        route = route_from_geojson(geojson)
        if route is None and geojson is not None:
            _logger.warning("Stored route for session=%s has no usable LineString", session_id)
        return route

    def aggregator(self, session_id: str, user_id: str | None = None) -> LocationAggregator:
        """Live location view of *session_id*; use as an async context manager."""
        return LocationAggregator(
            session_id,
            store=self.store,
            feed=self._require_feed(),
            user_id=user_id,
            config=self._config,
        )

    def publisher(
        self,
        aggregator: LocationAggregator,
        user_id: str | None = None,
        *,
        scheduler: Scheduler | None = None,
    ) -> LocationPublisher:
        """Publisher writing through *aggregator*'s upsert."""
        return LocationPublisher(
            aggregator.publish,
            session_id=aggregator.session_id,
            user_id=user_id if user_id is not None else aggregator.user_id,
            config=self._config,
            scheduler=scheduler,
        )

    def tracker(
        self,
        provider: GeolocationProvider,
        publisher: LocationPublisher,
        route: list[Coordinate] | None = None,
        *,
        scheduler: Scheduler | None = None,
        on_status: StatusCallback | None = None,
    ) -> SessionTracker:
        """Sampler + route classification feeding *publisher*, tuned by this client's config."""
        sampler = PositionSampler(provider, config=self._config, scheduler=scheduler, on_status=on_status)
        return SessionTracker(sampler, publisher, route, config=self._config)
