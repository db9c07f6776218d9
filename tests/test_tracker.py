from __future__ import annotations

import asyncio

import pytest
from conftest import FakeProvider, ManualScheduler, PublishRecorder

from pytrail.config import TrailConfig
from pytrail.exceptions import GeolocationPermissionError
from pytrail.geometry import distance_to_polyline_m
from pytrail.models import Coordinate, GeolocationErrorCode
from pytrail.publisher import LocationPublisher
from pytrail.sampler import PositionSampler
from pytrail.tracker import SessionTracker

ROUTE = [Coordinate(lat=37.0, lon=127.0), Coordinate(lat=37.0, lon=127.01)]
ON_ROUTE = Coordinate(lat=37.0, lon=127.005)
OFF_ROUTE = Coordinate(lat=37.0, lon=127.05)


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def _tracker(
    provider: FakeProvider,
    scheduler: ManualScheduler,
    recorder: PublishRecorder,
    route: list[Coordinate] | None = ROUTE,
) -> tuple[SessionTracker, LocationPublisher]:
    sampler = PositionSampler(provider, scheduler=scheduler)
    publisher = LocationPublisher(recorder, session_id="session-1", user_id="user-1", scheduler=scheduler)
    return SessionTracker(sampler, publisher, route), publisher


@pytest.mark.asyncio
async def test_samples_are_classified_and_published(
    provider: FakeProvider,
    scheduler: ManualScheduler,
    recorder: PublishRecorder,
) -> None:
    tracker, publisher = _tracker(provider, scheduler, recorder)
    task = asyncio.create_task(tracker.run())
    await _settle()

    provider.emit(ON_ROUTE.lat, ON_ROUTE.lon)
    await _settle()
    assert tracker.off_route is False
    assert tracker.distance_m == pytest.approx(0.0, abs=1e-6)

    provider.emit(OFF_ROUTE.lat, OFF_ROUTE.lon)
    await _settle()
    assert tracker.off_route is True
    assert tracker.last_coordinate == OFF_ROUTE

    tracker.stop()
    await task
    await publisher.flush()

    assert recorder.calls == [
        (ON_ROUTE.lat, ON_ROUTE.lon, False),
        (OFF_ROUTE.lat, OFF_ROUTE.lon, True),
    ]
    assert provider.watches == {}


@pytest.mark.asyncio
async def test_permission_error_propagates_from_run(
    provider: FakeProvider,
    scheduler: ManualScheduler,
    recorder: PublishRecorder,
) -> None:
    tracker, _ = _tracker(provider, scheduler, recorder)
    task = asyncio.create_task(tracker.run())
    await _settle()

    provider.fail(int(GeolocationErrorCode.PERMISSION_DENIED), "denied")

    with pytest.raises(GeolocationPermissionError):
        await task
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_route_change_reclassifies_last_sample(
    provider: FakeProvider,
    scheduler: ManualScheduler,
    recorder: PublishRecorder,
) -> None:
    tracker, publisher = _tracker(provider, scheduler, recorder, route=None)

    tracker.handle_sample(OFF_ROUTE)
    assert tracker.off_route is False
    assert tracker.distance_m is None

    tracker.set_route(ROUTE)
    assert tracker.off_route is True

    tracker.set_route(None)
    assert tracker.off_route is False
    await publisher.flush()

    assert [call[2] for call in recorder.calls] == [False, True, False]


@pytest.mark.asyncio
async def test_single_point_route_counts_as_no_route(
    provider: FakeProvider,
    scheduler: ManualScheduler,
    recorder: PublishRecorder,
) -> None:
    tracker, _ = _tracker(provider, scheduler, recorder, route=ROUTE[:1])

    tracker.handle_sample(OFF_ROUTE)

    assert tracker.route is None
    assert tracker.off_route is False


@pytest.mark.asyncio
async def test_threshold_is_applied(
    provider: FakeProvider,
    scheduler: ManualScheduler,
    recorder: PublishRecorder,
) -> None:
    sampler = PositionSampler(provider, scheduler=scheduler)
    publisher = LocationPublisher(recorder, session_id="session-1", user_id="user-1", scheduler=scheduler)
    tracker = SessionTracker(sampler, publisher, ROUTE, threshold_m=10_000)

    tracker.handle_sample(OFF_ROUTE)

    assert tracker.off_route is False


@pytest.mark.asyncio
async def test_threshold_defaults_from_config(
    provider: FakeProvider,
    scheduler: ManualScheduler,
    recorder: PublishRecorder,
) -> None:
    sampler = PositionSampler(provider, scheduler=scheduler)
    publisher = LocationPublisher(recorder, session_id="session-1", user_id="user-1", scheduler=scheduler)

    assert SessionTracker(sampler, publisher, ROUTE).threshold_m == 50.0

    config = TrailConfig(off_route_threshold_m=10_000)
    tracker = SessionTracker(sampler, publisher, ROUTE, config=config)
    tracker.handle_sample(OFF_ROUTE)

    assert tracker.threshold_m == 10_000
    assert tracker.off_route is False
    assert SessionTracker(sampler, publisher, config=config, threshold_m=5.0).threshold_m == 5.0


@pytest.mark.asyncio
async def test_classification_uses_strict_threshold(
    provider: FakeProvider,
    scheduler: ManualScheduler,
    recorder: PublishRecorder,
) -> None:
    sampler = PositionSampler(provider, scheduler=scheduler)
    publisher = LocationPublisher(recorder, session_id="session-1", user_id="user-1", scheduler=scheduler)
    point = Coordinate(lat=37.001, lon=127.005)
    distance = distance_to_polyline_m(point, ROUTE)
    assert distance is not None

    at_threshold = SessionTracker(sampler, publisher, ROUTE, threshold_m=distance)
    at_threshold.handle_sample(point)
    just_inside = SessionTracker(sampler, publisher, ROUTE, threshold_m=distance - 1e-6)
    just_inside.handle_sample(point)

    assert at_threshold.distance_m == pytest.approx(distance)
    assert at_threshold.off_route is False
    assert just_inside.off_route is True
