"""Adaptive-cadence publishing of the local participant's position.

Publishing rules:

* every new coordinate is written immediately and restarts the repeat timer;
* a change of the off-route flag is written immediately (edge-triggered);
* the repeat timer rewrites the last known values every
  ``visible_publish_interval`` seconds in the foreground and every
  ``hidden_publish_interval`` seconds in the background, so peers can tell
  a quiet participant from a stale one;
* a visibility change only retimes the repeat timer.

Writes are upserts keyed by ``(session_id, user_id)``, so a failed or
reordered write is healed by the next one. Failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pytrail._scheduler import Scheduler, TimerHandle, resolve_scheduler
from pytrail.config import TrailConfig
from pytrail.models.coordinate import Coordinate

_logger = logging.getLogger(__name__)

PublishFn = Callable[[float, float, bool], Awaitable[Any]]


class LocationPublisher:
    """Decides when the local position is pushed upstream."""

    def __init__(
        self,
        publish: PublishFn,
        *,
        session_id: str | None,
        user_id: str | None,
        config: TrailConfig | None = None,
        scheduler: Scheduler | None = None,
        visible: bool = True,
    ) -> None:
        self._publish = publish
        self._session_id = session_id
        self._user_id = user_id
        self._config = config or TrailConfig()
        self._scheduler = scheduler
        self._visible = visible
        self._coordinate: Coordinate | None = None
        self._off_route = False
        self._timer: TimerHandle | None = None
        self._in_flight: set[asyncio.Task[None]] = set()
        self._closed = False

    async def __aenter__(self) -> LocationPublisher:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        """Whether there is enough context to publish at all."""
        return (
            not self._closed
            and self._coordinate is not None
            and bool(self._session_id)
            and bool(self._user_id)
        )

    @property
    def interval(self) -> float:
        """Current repeat period in seconds."""
        if self._visible:
            return self._config.visible_publish_interval
        return self._config.hidden_publish_interval

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def off_route(self) -> bool:
        return self._off_route

    @property
    def coordinate(self) -> Coordinate | None:
        return self._coordinate

    @property
    def timer_running(self) -> bool:
        return self._timer is not None

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def update_position(self, coordinate: Coordinate, off_route: bool | None = None) -> None:
        """Record a new sample and publish it once, right away."""
        if self._closed:
            return
        self._coordinate = coordinate
        if off_route is not None:
            self._off_route = off_route
        if not self.is_active:
            return
        self._publish_now()
        self._restart_timer()

    def set_off_route(self, off_route: bool) -> None:
        """Publish immediately when the off-route flag flips."""
        if off_route == self._off_route:
            return
        self._off_route = off_route
        if self.is_active:
            _logger.debug("Off-route changed to %s; publishing", off_route)
            self._publish_now()

    def set_visible(self, visible: bool) -> None:
        """Switch between foreground and background cadence."""
        if visible == self._visible:
            return
        self._visible = visible
        _logger.debug("Visibility changed visible=%s interval=%.1fs", visible, self.interval)
        if self.is_active:
            self._restart_timer()

    async def flush(self) -> None:
        """Wait for every in-flight publish to finish."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop the repeat timer and wait for in-flight writes."""
        self._closed = True
        self._cancel_timer()
        await self.flush()

    # ------------------------------------------------------------------
    # Timer and writes
    # ------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()

    def _restart_timer(self) -> None:
        self._cancel_timer()
        self._scheduler = resolve_scheduler(self._scheduler)
        self._timer = self._scheduler.call_later(self.interval, self._tick)

    def _tick(self) -> None:
        self._timer = None
        if not self.is_active:
            return
        self._publish_now()
        self._restart_timer()

    def _publish_now(self) -> None:
        coordinate = self._coordinate
        assert coordinate is not None  # noqa: S101
        task = asyncio.ensure_future(self._safe_publish(coordinate.lat, coordinate.lon, self._off_route))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _safe_publish(self, lat: float, lon: float, off_route: bool) -> None:
        try:
            await self._publish(lat, lon, off_route)
        except asyncio.CancelledError:
            raise
        except Exception:
            # The next tick or coordinate change rewrites the same key.
            _logger.warning(
                "Location publish failed session=%s user=%s",
                self._session_id,
                self._user_id,
                exc_info=True,
            )
