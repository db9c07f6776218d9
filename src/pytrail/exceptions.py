"""Custom exception hierarchy for pytrail."""

from __future__ import annotations


class TrailError(Exception):
    """Base exception for all pytrail errors."""


class TrailConfigError(TrailError):
    """Invalid or missing configuration."""


class TrailTransportError(TrailError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class LocationReadError(TrailTransportError):
    """Reading location rows (snapshot or route) failed."""


class LocationWriteError(TrailTransportError):
    """Upserting the local participant's location failed.

    Self-healing: the next timer tick or coordinate change writes again.
    """


class NicknameLookupError(TrailTransportError):
    """Display-name lookup for a participant failed."""


class GeolocationError(TrailError):
    """The geolocation provider reported a failure that ends the stream."""

    hint: str = ""

    def __init__(self, message: str, *, code: int | None = None, hint: str | None = None) -> None:
        self.code = code
        if hint is not None:
            self.hint = hint
        super().__init__(message)


class GeolocationPermissionError(GeolocationError):
    """Location permission was denied; the user must re-grant it."""

    hint = "Location permission was denied. Check your browser or OS location settings."


class GeolocationUnavailableError(GeolocationError):
    """Position stayed unavailable after the retry budget was spent."""

    hint = "Cannot acquire a position. Check your GPS signal."


class GeolocationTimeoutError(GeolocationError):
    """A single position request timed out (advisory, provider resubmits)."""

    hint = "Position request timed out. Retrying..."
