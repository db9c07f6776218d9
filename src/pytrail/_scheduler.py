"""Timer scheduling seam shared by the sampler and the publisher.

Production code schedules on the running asyncio loop, which already
satisfies :class:`Scheduler`. Tests pass a manual scheduler instead.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with an ``asyncio.AbstractEventLoop.call_later``-style method."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


def resolve_scheduler(scheduler: Scheduler | None) -> Scheduler:
    """Return *scheduler*, defaulting to the running event loop."""
    if scheduler is not None:
        return scheduler
    return asyncio.get_running_loop()
