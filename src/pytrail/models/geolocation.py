"""Geolocation provider types and sampler state."""

from __future__ import annotations

import dataclasses

from pytrail._constants import SAMPLE_MAX_CACHE_AGE_MS, SAMPLE_TIMEOUT_MS
from pytrail._scheduler import TimerHandle
from pytrail.models._base import TrailEnum
from pytrail.models.coordinate import Coordinate


class GeolocationErrorCode(TrailEnum):
    """Error codes reported by a geolocation provider."""

    UNKNOWN = -1
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


@dataclasses.dataclass(frozen=True)
class WatchOptions:
    """Options handed to :meth:`GeolocationProvider.watch`."""

    high_accuracy: bool = True
    timeout_ms: int = SAMPLE_TIMEOUT_MS
    max_cache_age_ms: int = SAMPLE_MAX_CACHE_AGE_MS


@dataclasses.dataclass
class SamplerState:
    """Mutable retry bookkeeping owned by exactly one sampler."""

    last_known_coordinate: Coordinate | None = None
    retry_count: int = 0
    last_error: GeolocationErrorCode | None = None
    retry_handle: TimerHandle | None = dataclasses.field(default=None, repr=False)

    def cancel_retry(self) -> None:
        handle = self.retry_handle
        self.retry_handle = None
        if handle is not None:
            handle.cancel()

    def reset(self) -> None:
        self.cancel_retry()
        self.retry_count = 0
        self.last_error = None
