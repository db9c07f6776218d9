"""Participant location models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import Field, field_validator, model_validator

from pytrail.models._base import TrailBaseModel, TrailTimestamp
from pytrail.models.coordinate import Coordinate


class ParticipantLocation(TrailBaseModel):
    """Last reported position of one session participant.

    Parameters
    ----------
    user_id : str
        Opaque participant id, unique within a session.
    nickname : str
        Display name (a placeholder when the lookup failed).
    coordinate : Coordinate
        Last reported position.
    updated_at : datetime
        When the participant last wrote its position.
    off_route : bool
        Whether the participant reported being off the planned route.
    """

    user_id: str
    nickname: str
    coordinate: Coordinate
    updated_at: datetime
    off_route: bool = False


class LocationKey(TrailBaseModel):
    """Key half of a location row (what a delete event carries)."""

    user_id: str
    session_id: str | None = None

    @field_validator("user_id")
    @classmethod
    def _normalize_user_id(cls, value: str) -> str:
        user_id = value.strip()
        if not user_id:
            raise ValueError("user_id must be non-empty")
        return user_id


class LocationRow(LocationKey):
    """One row of the location store, keyed by ``(session_id, user_id)``.

    ``nickname`` is only present when the read joined the users table.
    """

    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    updated_at: TrailTimestamp = Field(default_factory=lambda: datetime.now(UTC))
    off_route: bool = False
    nickname: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_user_join(cls, values: Any) -> Any:
        # Joined reads nest the display name as {"users": {"nickname": ...}}.
        if not isinstance(values, dict):
            return values
        joined = values.get("users")
        if isinstance(joined, dict) and "nickname" not in values:
            merged = dict(values)
            merged["nickname"] = joined.get("nickname")
            return merged
        return values

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lon=self.lon)

    def to_participant(self, nickname: str) -> ParticipantLocation:
        return ParticipantLocation(
            user_id=self.user_id,
            nickname=nickname,
            coordinate=self.coordinate,
            updated_at=self.updated_at,
            off_route=self.off_route,
        )

    def to_wire(self) -> dict[str, object]:
        """Serialize for an upsert (no joined columns)."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "lat": self.lat,
            "lon": self.lon,
            "updated_at": self.updated_at.isoformat(),
            "off_route": self.off_route,
        }
