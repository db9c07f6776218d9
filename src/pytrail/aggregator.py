"""Realtime per-session location state.

The aggregator seeds its view from a bulk snapshot, then applies the
session's change feed on top of it. Feed callbacks only enqueue; a single
consumer task per aggregator applies events in delivery order, so two
events for the same session never interleave. Aggregators for different
sessions share nothing.

Consistency model is last-write-wins per user id: every insert/update
carries the full row and replaces whatever was there. Two devices writing
under the same user id are not detected.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pytrail._mqtt import ChangeFeed, FeedSubscription
from pytrail._transport import LocationStore
from pytrail.config import TrailConfig
from pytrail.exceptions import TrailError
from pytrail.models.feed import ChangeEvent, ChangeType
from pytrail.models.location import LocationRow, ParticipantLocation

_logger = logging.getLogger(__name__)

LocationListener = Callable[[dict[str, ParticipantLocation]], None]


class LocationAggregator:
    """Converged view of every participant's location in one session.

    Usage::

        async with LocationAggregator(session_id, store=store, feed=feed, user_id=me) as agg:
            await agg.publish(lat, lon, off_route)
            agg.locations  # {user_id: ParticipantLocation}
    """

    def __init__(
        self,
        session_id: str,
        *,
        store: LocationStore,
        feed: ChangeFeed,
        user_id: str | None = None,
        config: TrailConfig | None = None,
    ) -> None:
        self._session_id = session_id
        self._store = store
        self._feed = feed
        self._user_id = user_id
        self._config = config or TrailConfig()
        self._locations: dict[str, ParticipantLocation] = {}
        self._nicknames: dict[str, str] = {}
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._subscription: FeedSubscription | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._subscribed = False
        self._listeners: list[LocationListener] = []
        self._version = 0
        self._waiters: list[asyncio.Event] = []

    async def __aenter__(self) -> LocationAggregator:
        await self.subscribe()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.unsubscribe()

    # ------------------------------------------------------------------
    # Consumer view
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    @property
    def locations(self) -> dict[str, ParticipantLocation]:
        """Copy of the current location set keyed by user id."""
        return dict(self._locations)

    @property
    def version(self) -> int:
        """Incremented on every applied change."""
        return self._version

    def get(self, user_id: str) -> ParticipantLocation | None:
        return self._locations.get(user_id)

    def add_listener(self, listener: LocationListener) -> Callable[[], None]:
        """Call *listener* with a fresh copy after every change.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    async def wait_for_change(self, timeout: float) -> bool:
        """Wait until the location set changes; ``False`` on timeout."""
        if timeout <= 0:
            return False
        waiter = asyncio.Event()
        self._waiters.append(waiter)
        try:
            await asyncio.wait_for(waiter.wait(), timeout)
            return True
        except TimeoutError:
            return False
        finally:
            with contextlib.suppress(ValueError):
                self._waiters.remove(waiter)

    async def drain(self) -> None:
        """Wait until every event delivered so far has been applied."""
        if self._consumer is not None and not self._consumer.done():
            await self._queue.join()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def subscribe(self) -> None:
        """Load the snapshot, then start following the change feed."""
        if self._subscribed:
            return
        self._subscribed = True

        try:
            rows = await self._store.fetch_locations(self._session_id)
        except TrailError:
            _logger.warning(
                "Location snapshot failed for session=%s; starting empty",
                self._session_id,
                exc_info=True,
            )
            rows = []

        if not self._subscribed:
            return
        # The snapshot replaces whatever an earlier subscription left behind.
        self._locations.clear()
        for row in rows:
            self._locations[row.user_id] = row.to_participant(self._remember_nickname(row))
        _logger.debug("Loaded %d locations for session=%s", len(rows), self._session_id)
        self._changed()

        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(
            self._consume(self._queue),
            name=f"pytrail-feed-{self._session_id}",
        )
        try:
            subscription = await self._feed.subscribe(self._session_id, self._enqueue)
        except (TrailError, OSError):
            # Snapshot-only view; the caller can unsubscribe/subscribe to retry.
            _logger.warning("Change feed subscribe failed for session=%s", self._session_id, exc_info=True)
            return
        if not self._subscribed:
            await subscription.close()
            return
        self._subscription = subscription

    async def unsubscribe(self) -> None:
        """Close the feed; no state changes happen after this returns."""
        if not self._subscribed:
            return
        self._subscribed = False

        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            try:
                await subscription.close()
            except Exception:
                _logger.debug("Change feed close failed", exc_info=True)

        consumer = self._consumer
        self._consumer = None
        if consumer is not None:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        # Events delivered but never applied belong to the closed subscription.
        discarded = self._queue.qsize()
        self._queue = asyncio.Queue()
        if discarded:
            _logger.debug("Discarded %d pending events for session=%s", discarded, self._session_id)

        for waiter in self._waiters:
            waiter.set()

    # ------------------------------------------------------------------
    # Upstream write
    # ------------------------------------------------------------------

    async def publish(self, lat: float, lon: float, off_route: bool) -> bool:
        """Upsert the local participant's row.

        The local view is updated by the resulting feed event, like
        everyone else's. Returns ``False`` when the write failed or there
        is no user id to write under.
        """
        if not self._session_id or not self._user_id:
            return False
        row = LocationRow(
            session_id=self._session_id,
            user_id=self._user_id,
            lat=lat,
            lon=lon,
            updated_at=datetime.now(UTC),
            off_route=off_route,
        )
        try:
            await self._store.upsert_location(row)
        except TrailError:
            _logger.warning("Location upsert failed for session=%s", self._session_id, exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Feed application
    # ------------------------------------------------------------------

    def _enqueue(self, event: ChangeEvent) -> None:
        if not self._subscribed:
            return
        self._queue.put_nowait(event)

    async def _consume(self, queue: asyncio.Queue[ChangeEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                await self.apply(event)
            except Exception:
                _logger.warning("Dropping change event for session=%s", self._session_id, exc_info=True)
            finally:
                queue.task_done()

    async def apply(self, event: ChangeEvent) -> None:
        """Apply one change event to the location set."""
        if not self._subscribed:
            return

        if event.type is ChangeType.DELETE:
            if self._locations.pop(event.user_id, None) is not None:
                self._changed()
            return

        row = event.row
        assert row is not None  # noqa: S101
        if row.session_id is not None and row.session_id != self._session_id:
            _logger.debug("Ignoring event for foreign session=%s", row.session_id)
            return

        nickname = await self._resolve_nickname(row)
        # The lookup is a suspension point; we may have been torn down meanwhile.
        if not self._subscribed:
            return
        self._locations[row.user_id] = row.to_participant(nickname)
        self._changed()

    def _remember_nickname(self, row: LocationRow) -> str:
        if row.nickname:
            self._nicknames[row.user_id] = row.nickname
            return row.nickname
        return self._nicknames.get(row.user_id, self._config.placeholder_nickname)

    async def _resolve_nickname(self, row: LocationRow) -> str:
        if row.nickname:
            return self._remember_nickname(row)
        cached = self._nicknames.get(row.user_id)
        if cached is not None:
            return cached
        try:
            nickname = await self._store.fetch_nickname(row.user_id)
        except TrailError:
            _logger.warning("Nickname lookup failed for user=%s", row.user_id, exc_info=True)
            return self._config.placeholder_nickname
        if not nickname:
            return self._config.placeholder_nickname
        self._nicknames[row.user_id] = nickname
        return nickname

    def _changed(self) -> None:
        self._version += 1
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            waiter.set()
        if not self._listeners:
            return
        snapshot = self.locations
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _logger.debug("Location listener failed", exc_info=True)
