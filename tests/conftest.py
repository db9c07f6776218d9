from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from pytrail.exceptions import LocationWriteError
from pytrail.models import Coordinate, WatchOptions


@dataclass
class _ManualTimer:
    due: float
    delay: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for ``loop.call_later``; time moves only via :meth:`advance`."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[_ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(due=self.now + delay, delay=delay, callback=callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[_ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = timer.due
            timer.fired = True
            timer.callback()
        self.now = target


@dataclass
class FakeProvider:
    """Geolocation provider driven by the test."""

    watches: dict[int, tuple[Any, Any]] = field(default_factory=dict)
    cleared: list[int] = field(default_factory=list)
    options: list[WatchOptions] = field(default_factory=list)
    watch_calls: int = 0

    def watch(self, on_success: Any, on_error: Any, options: WatchOptions) -> int:
        self.watch_calls += 1
        self.watches[self.watch_calls] = (on_success, on_error)
        self.options.append(options)
        return self.watch_calls

    def clear_watch(self, handle: int) -> None:
        self.cleared.append(handle)
        self.watches.pop(handle, None)

    @property
    def active(self) -> tuple[Any, Any]:
        assert self.watches, "no active watch"
        return self.watches[max(self.watches)]

    def emit(self, lat: float, lon: float) -> None:
        on_success, _ = self.active
        on_success(Coordinate(lat=lat, lon=lon), 5.0, 0.0)

    def fail(self, code: int, message: str = "") -> None:
        _, on_error = self.active
        on_error(code, message)


class PublishRecorder:
    """Async publish sink that records calls and can be told to fail."""

    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[tuple[float, float, bool]] = []
        self.fail = fail

    async def __call__(self, lat: float, lon: float, off_route: bool) -> None:
        self.calls.append((lat, lon, off_route))
        if self.fail:
            raise LocationWriteError("backend down", status_code=503, endpoint="locations")


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def recorder() -> PublishRecorder:
    return PublishRecorder()
