"""Change-feed event models.

The feed delivers row-level changes of the location store as
``{"eventType": "INSERT" | "UPDATE" | "DELETE", "new": {...}, "old": {...}}``.
Insert and update events carry the complete row; delete events carry
only the key.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, model_validator

from pytrail.models._base import TrailBaseModel
from pytrail.models.location import LocationKey, LocationRow


class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(TrailBaseModel):
    """A single row change for one session's location table."""

    type: ChangeType = Field(..., validation_alias=AliasChoices("type", "eventType", "event_type"))
    row: LocationRow | None = Field(default=None, validation_alias=AliasChoices("row", "new", "record"))
    key: LocationKey | None = Field(default=None, validation_alias=AliasChoices("key", "old", "old_record"))

    @model_validator(mode="before")
    @classmethod
    def _normalize_payload(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        for name in ("type", "eventType", "event_type"):
            raw_type = merged.get(name)
            if isinstance(raw_type, str):
                merged[name] = raw_type.strip().upper()
        # Empty "new"/"old" objects are how the feed says "not applicable".
        for name in ("new", "old", "record", "old_record"):
            if merged.get(name) == {}:
                merged.pop(name)
        return merged

    @model_validator(mode="after")
    def _check_shape(self) -> ChangeEvent:
        if self.type is ChangeType.DELETE:
            if self.key is None and self.row is None:
                raise ValueError("DELETE event needs a key")
        elif self.row is None:
            raise ValueError(f"{self.type} event needs a full row")
        return self

    @property
    def user_id(self) -> str:
        """User id the event applies to."""
        source = self.row if self.row is not None else self.key
        assert source is not None  # noqa: S101
        return source.user_id

    @classmethod
    def insert(cls, row: LocationRow) -> ChangeEvent:
        return cls(type=ChangeType.INSERT, row=row)

    @classmethod
    def update(cls, row: LocationRow) -> ChangeEvent:
        return cls(type=ChangeType.UPDATE, row=row)

    @classmethod
    def delete(cls, user_id: str, session_id: str | None = None) -> ChangeEvent:
        return cls(type=ChangeType.DELETE, key=LocationKey(user_id=user_id, session_id=session_id))
