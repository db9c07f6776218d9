"""Continuous position sampling over an unreliable geolocation provider.

The sampler wraps a provider's ``watch``/``clear_watch`` pair and turns
it into an async stream of :class:`~pytrail.models.Coordinate` values.

Error policy:

* ``POSITION_UNAVAILABLE``: the watch is torn down and restarted after
  ``sampler_retry_delay`` seconds, at most ``sampler_max_retries`` times
  in a row. One more failure ends the stream with
  :class:`~pytrail.exceptions.GeolocationUnavailableError`.
* ``PERMISSION_DENIED``: ends the stream with
  :class:`~pytrail.exceptions.GeolocationPermissionError`.
* ``TIMEOUT``: advisory only; the provider resubmits on its own.
* anything else ends the stream with the provider's message.

Provider callbacks must run on the event loop thread. Providers driven by
their own thread should marshal with ``loop.call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, Protocol

from pytrail._constants import attempt_message
from pytrail._scheduler import Scheduler, resolve_scheduler
from pytrail.config import TrailConfig
from pytrail.exceptions import (
    GeolocationError,
    GeolocationPermissionError,
    GeolocationTimeoutError,
    GeolocationUnavailableError,
)
from pytrail.models.coordinate import Coordinate
from pytrail.models.geolocation import GeolocationErrorCode, SamplerState, WatchOptions

_logger = logging.getLogger(__name__)

SuccessCallback = Callable[[Coordinate, float | None, float | None], None]
ErrorCallback = Callable[[int, str], None]
StatusCallback = Callable[[str | None], None]


class GeolocationProvider(Protocol):
    """Platform continuous-location API."""

    def watch(self, on_success: SuccessCallback, on_error: ErrorCallback, options: WatchOptions) -> Any:
        """Start watching; returns an opaque subscription handle.

        ``on_success(coordinate, accuracy_m, timestamp)`` fires per fix,
        ``on_error(code, message)`` per failure.
        """
        ...

    def clear_watch(self, handle: Any) -> None: ...


_CLOSED = object()


class PositionStream:
    """Async iterator over one sampler run.

    Ends normally after :meth:`PositionSampler.stop`, or raises the
    terminal :class:`~pytrail.exceptions.GeolocationError`.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, item: Coordinate) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    def _close(self, error: GeolocationError | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(error if error is not None else _CLOSED)

    def __aiter__(self) -> PositionStream:
        return self

    async def __anext__(self) -> Coordinate:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep later readers from blocking forever.
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        if isinstance(item, GeolocationError):
            self._queue.put_nowait(_CLOSED)
            raise item
        return item


class PositionSampler:
    """Restartable live position stream with bounded retry.

    Usage::

        sampler = PositionSampler(provider)
        try:
            async for coordinate in sampler.start():
                ...
        except GeolocationError as exc:
            show(exc.hint)
    """

    def __init__(
        self,
        provider: GeolocationProvider,
        *,
        config: TrailConfig | None = None,
        scheduler: Scheduler | None = None,
        on_status: StatusCallback | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or TrailConfig()
        self._scheduler = scheduler
        self._on_status = on_status
        self._state = SamplerState()
        self._stream: PositionStream | None = None
        self._watch_handle: Any = None
        self._generation = 0
        self._status: str | None = None
        self._options = WatchOptions(
            high_accuracy=True,
            timeout_ms=self._config.sample_timeout_ms,
            max_cache_age_ms=self._config.sample_max_cache_age_ms,
        )

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def status(self) -> str | None:
        """Latest advisory or terminal message, ``None`` while healthy."""
        return self._status

    @property
    def is_running(self) -> bool:
        return self._stream is not None and not self._stream.closed

    @property
    def max_retries(self) -> int:
        return self._config.sampler_max_retries

    def start(self) -> PositionStream:
        """Begin (or restart) sampling and return a fresh stream."""
        self.stop()
        self._scheduler = resolve_scheduler(self._scheduler)
        self._state.reset()
        self._set_status(None)
        self._stream = PositionStream()
        self._watch()
        return self._stream

    def stop(self) -> None:
        """Release the provider watch and cancel any pending retry. Idempotent."""
        self._state.cancel_retry()
        self._clear_watch()
        stream = self._stream
        if stream is not None:
            stream._close()

    # ------------------------------------------------------------------
    # Watch lifecycle
    # ------------------------------------------------------------------

    def _watch(self) -> None:
        self._generation += 1
        generation = self._generation
        _logger.debug("Starting geolocation watch generation=%s", generation)
        self._watch_handle = self._provider.watch(
            functools.partial(self._handle_success, generation),
            functools.partial(self._handle_error, generation),
            self._options,
        )

    def _clear_watch(self) -> None:
        handle = self._watch_handle
        self._watch_handle = None
        # Any callback still in flight for the old watch is now stale.
        self._generation += 1
        if handle is not None:
            self._provider.clear_watch(handle)

    def _retry(self) -> None:
        self._state.retry_handle = None
        if not self.is_running:
            return
        _logger.debug("Retrying geolocation watch attempt=%s", self._state.retry_count)
        self._watch()

    def _fail(self, error: GeolocationError) -> None:
        _logger.warning("Position sampling stopped: %s", error)
        self._set_status(error.hint or str(error))
        self._state.cancel_retry()
        self._clear_watch()
        if self._stream is not None:
            self._stream._close(error)

    def _set_status(self, message: str | None) -> None:
        if message == self._status:
            return
        self._status = message
        if self._on_status is not None:
            try:
                self._on_status(message)
            except Exception:
                _logger.debug("on_status callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Provider callbacks
    # ------------------------------------------------------------------

    def _handle_success(
        self,
        generation: int,
        coordinate: Coordinate,
        accuracy: float | None = None,
        timestamp: float | None = None,
    ) -> None:
        if generation != self._generation or not self.is_running:
            return
        self._state.last_known_coordinate = coordinate
        self._state.reset()
        self._set_status(None)
        assert self._stream is not None  # noqa: S101
        self._stream._push(coordinate)

    def _handle_error(self, generation: int, code: int, message: str = "") -> None:
        if generation != self._generation or not self.is_running:
            return
        kind = GeolocationErrorCode(code)
        _logger.debug("Geolocation error code=%s message=%s", kind.name, message)

        if kind is GeolocationErrorCode.POSITION_UNAVAILABLE:
            if self._state.retry_count < self.max_retries:
                self._state.retry_count += 1
                self._state.last_error = kind
                self._set_status(attempt_message(self._state.retry_count, self.max_retries))
                # Stop the failing watch now; a fresh one starts after the delay.
                self._clear_watch()
                self._state.cancel_retry()
                assert self._scheduler is not None  # noqa: S101
                self._state.retry_handle = self._scheduler.call_later(self._config.sampler_retry_delay, self._retry)
                return
            self._state.last_error = kind
            self._fail(GeolocationUnavailableError("Position unavailable after retries", code=code))
            return

        if kind is GeolocationErrorCode.PERMISSION_DENIED:
            self._state.last_error = kind
            self._fail(GeolocationPermissionError(message or "Location permission denied", code=code))
            return

        if kind is GeolocationErrorCode.TIMEOUT:
            self._state.last_error = kind
            self._set_status(GeolocationTimeoutError.hint)
            return

        self._state.last_error = kind
        self._fail(GeolocationError(message or f"Geolocation error {code}", code=code, hint=message or None))
