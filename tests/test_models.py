"""Tests for Pydantic model parsing with TrailBaseModel + TrailEnum."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from pytrail.models import (
    ChangeEvent,
    ChangeType,
    Coordinate,
    GeolocationErrorCode,
    LocationRow,
    route_from_geojson,
)
from pytrail.models._base import parse_trail_timestamp

# ------------------------------------------------------------------
# TrailEnum
# ------------------------------------------------------------------


class TestTrailEnum:
    def test_unknown_value_falls_back(self) -> None:
        assert GeolocationErrorCode(99) == GeolocationErrorCode.UNKNOWN

    def test_known_value(self) -> None:
        assert GeolocationErrorCode(1) == GeolocationErrorCode.PERMISSION_DENIED


# ------------------------------------------------------------------
# Coordinate
# ------------------------------------------------------------------


class TestCoordinate:
    def test_aliases(self) -> None:
        assert Coordinate.model_validate({"latitude": 1.5, "lng": 2.5}) == Coordinate(lat=1.5, lon=2.5)

    @pytest.mark.parametrize(("lat", "lon"), [(90.1, 0), (-90.1, 0), (0, 180.1), (0, -180.1)])
    def test_out_of_range_is_rejected(self, lat: float, lon: float) -> None:
        with pytest.raises(ValidationError):
            Coordinate(lat=lat, lon=lon)

    def test_bounds_are_inclusive(self) -> None:
        assert Coordinate(lat=-90, lon=180).lat == -90

    def test_frozen(self) -> None:
        point = Coordinate(lat=1, lon=2)
        with pytest.raises(ValidationError):
            point.lat = 3  # type: ignore[misc]

    def test_from_lon_lat_ignores_elevation(self) -> None:
        assert Coordinate.from_lon_lat([127.0, 37.0, 42.0]) == Coordinate(lat=37.0, lon=127.0)

    def test_from_lon_lat_needs_two_values(self) -> None:
        with pytest.raises(ValueError, match="at least lon and lat"):
            Coordinate.from_lon_lat([127.0])


# ------------------------------------------------------------------
# LocationRow
# ------------------------------------------------------------------


class TestLocationRow:
    def test_joined_nickname_is_flattened(self) -> None:
        row = LocationRow.model_validate(
            {
                "session_id": "s1",
                "user_id": "u1",
                "lat": 37.0,
                "lon": 127.0,
                "updated_at": "2026-03-01T10:00:00Z",
                "off_route": True,
                "users": {"nickname": "Alice"},
            }
        )
        assert row.nickname == "Alice"
        assert row.updated_at == datetime(2026, 3, 1, 10, tzinfo=UTC)
        assert row.off_route is True

    def test_missing_join_leaves_nickname_empty(self) -> None:
        row = LocationRow.model_validate({"user_id": "u1", "lat": 0, "lon": 0, "users": None})
        assert row.nickname is None
        assert row.updated_at.tzinfo is not None

    def test_blank_user_id_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LocationRow(user_id="  ", lat=0, lon=0)

    def test_to_wire_omits_join(self) -> None:
        row = LocationRow(
            session_id="s1",
            user_id="u1",
            lat=1.0,
            lon=2.0,
            updated_at=datetime(2026, 3, 1, tzinfo=UTC),
            nickname="Alice",
        )
        assert row.to_wire() == {
            "session_id": "s1",
            "user_id": "u1",
            "lat": 1.0,
            "lon": 2.0,
            "updated_at": "2026-03-01T00:00:00+00:00",
            "off_route": False,
        }

    def test_to_participant(self) -> None:
        row = LocationRow(user_id="u1", lat=1.0, lon=2.0, off_route=True)
        location = row.to_participant("Bob")
        assert location.nickname == "Bob"
        assert location.coordinate == Coordinate(lat=1.0, lon=2.0)
        assert location.off_route is True


class TestTimestamps:
    def test_epoch_seconds_and_millis_agree(self) -> None:
        assert parse_trail_timestamp(1_700_000_000) == parse_trail_timestamp(1_700_000_000_000)

    def test_naive_datetime_is_utc(self) -> None:
        assert parse_trail_timestamp(datetime(2026, 1, 1)) == datetime(2026, 1, 1, tzinfo=UTC)

    def test_offset_string_is_kept(self) -> None:
        parsed = parse_trail_timestamp("2026-01-01T09:00:00+09:00")
        assert parsed == datetime(2026, 1, 1, tzinfo=UTC)


# ------------------------------------------------------------------
# ChangeEvent
# ------------------------------------------------------------------


class TestChangeEvent:
    NEW_ROW: dict = {
        "session_id": "s1",
        "user_id": "u1",
        "lat": 37.0,
        "lon": 127.0,
        "updated_at": "2026-03-01T10:00:00+00:00",
        "off_route": False,
    }

    def test_insert_with_empty_old(self) -> None:
        event = ChangeEvent.model_validate({"eventType": "INSERT", "new": self.NEW_ROW, "old": {}})
        assert event.type is ChangeType.INSERT
        assert event.row is not None
        assert event.key is None
        assert event.user_id == "u1"

    def test_lowercase_type_is_accepted(self) -> None:
        event = ChangeEvent.model_validate({"type": "update", "row": self.NEW_ROW})
        assert event.type is ChangeType.UPDATE

    def test_delete_carries_key_only(self) -> None:
        event = ChangeEvent.model_validate(
            {"eventType": "DELETE", "new": {}, "old": {"session_id": "s1", "user_id": "u7"}}
        )
        assert event.type is ChangeType.DELETE
        assert event.row is None
        assert event.user_id == "u7"

    def test_update_without_row_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="full row"):
            ChangeEvent.model_validate({"eventType": "UPDATE", "new": {}, "old": {"user_id": "u1"}})

    def test_delete_without_key_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="needs a key"):
            ChangeEvent.model_validate({"eventType": "DELETE", "new": {}, "old": {}})

    def test_unknown_type_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ChangeEvent.model_validate({"eventType": "TRUNCATE", "new": self.NEW_ROW})

    def test_factories(self) -> None:
        row = LocationRow.model_validate(self.NEW_ROW)
        assert ChangeEvent.insert(row).type is ChangeType.INSERT
        assert ChangeEvent.update(row).row == row
        assert ChangeEvent.delete("u1", "s1").key.session_id == "s1"  # type: ignore[union-attr]


# ------------------------------------------------------------------
# route_from_geojson
# ------------------------------------------------------------------


def _collection(*features: dict) -> dict:
    return {"type": "FeatureCollection", "features": list(features)}


def _line(*positions: object) -> dict:
    return {"type": "Feature", "geometry": {"type": "LineString", "coordinates": list(positions)}}


class TestRouteFromGeojson:
    def test_first_line_string_feature(self) -> None:
        geojson = _collection(_line([127.0, 37.0, 10.0], [127.01, 37.0, 12.0]), _line([0, 0], [1, 1]))
        assert route_from_geojson(geojson) == [
            Coordinate(lat=37.0, lon=127.0),
            Coordinate(lat=37.0, lon=127.01),
        ]

    @pytest.mark.parametrize(
        "geojson",
        [
            None,
            {},
            _collection(),
            _collection(_line([127.0, 37.0])),
            _collection({"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}}),
            _collection({"type": "Feature", "geometry": None}),
            _collection(_line([127.0, 37.0], None)),
            _collection(_line([127.0, 37.0], 5)),
            _collection(_line([127.0, 37.0], {"lon": 127.0, "lat": 37.0})),
            _collection(_line([127.0, 37.0], ["east", "north"])),
            _collection(_line([127.0, 37.0], [127.0, None])),
            _collection(_line([127.0, 37.0], [200.0, 37.0])),
        ],
    )
    def test_no_usable_line(self, geojson: dict | None) -> None:
        assert route_from_geojson(geojson) is None

    def test_only_first_feature_is_considered(self) -> None:
        point = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}}
        assert route_from_geojson(_collection(point, _line([0, 0], [1, 1]))) is None
