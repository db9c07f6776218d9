"""Base model and enum for pytrail wire and domain models.

Every model inherits from :class:`TrailBaseModel` which is frozen,
ignores unknown keys and accepts both field names and aliases.

Wire enums inherit from :class:`TrailEnum` which adds an ``UNKNOWN``
member at ``-1`` and a ``_missing_`` hook that returns ``UNKNOWN``
for any value without a mapped member.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_trail_timestamp(value: Any) -> datetime | None:
    """Coerce an ISO-8601 string or epoch number (s or ms) to an aware UTC datetime."""
    if value is None:
        return value
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    ts = float(value)
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


TrailTimestamp = Annotated[datetime, BeforeValidator(parse_trail_timestamp)]
"""Annotated type that coerces ISO strings or epoch numbers to UTC datetimes."""


class TrailEnum(enum.IntEnum):
    """Base for integer wire enums.

    Every subclass **must** define ``UNKNOWN = -1``.
    """

    @classmethod
    def _missing_(cls, value: object) -> TrailEnum:
        if hasattr(cls, "UNKNOWN"):
            unknown: TrailEnum = cls.UNKNOWN  # type: ignore[attr-defined]
            return unknown
        return next(iter(cls))


class TrailBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
