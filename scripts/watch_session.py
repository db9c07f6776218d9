#!/usr/bin/env python3
"""Live location printer for one pytrail session.

This script uses the library end to end to:
1) load the session's location snapshot over REST,
2) follow the session's change feed over MQTT,
3) print every participant whenever the location set changes,
   with its distance from the session's planned route.

Configuration comes from TRAIL_* environment variables
(TRAIL_BASE_URL, TRAIL_API_KEY, TRAIL_MQTT_HOST, ...).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pytrail import (  # noqa: E402
    LocationAggregator,
    ParticipantLocation,
    TrailClient,
    TrailConfig,
    TrailError,
    distance_to_polyline_m,
)
from pytrail.models import Coordinate  # noqa: E402

_LOG = logging.getLogger("watch_session")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print live participant locations of a pytrail session.",
    )
    parser.add_argument("session_id", help="Session to follow.")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--no-route",
        action="store_true",
        help="Skip fetching the planned route (no distance column).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print one JSON object per change instead of a table.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_table(locations: dict[str, ParticipantLocation], route: list[Coordinate] | None) -> None:
    stamp = time.strftime("%H:%M:%S")
    print(f"[watch] {stamp} participants={len(locations)}")
    for location in sorted(locations.values(), key=lambda loc: loc.nickname.lower()):
        distance = distance_to_polyline_m(location.coordinate, route) if route else None
        distance_text = f"{distance:8.1f}m" if distance is not None else "       -"
        flag = "OFF-ROUTE" if location.off_route else ""
        print(
            f"  {location.nickname:<20} {location.coordinate.lat:>11.6f} {location.coordinate.lon:>11.6f} "
            f"{distance_text} {location.updated_at.isoformat()} {flag}"
        )


def _print_json(locations: dict[str, ParticipantLocation]) -> None:
    payload = {user_id: location.model_dump(mode="json") for user_id, location in locations.items()}
    print(json.dumps(payload, ensure_ascii=False, sort_keys=True))


async def _watch(args: argparse.Namespace, config: TrailConfig) -> None:
    async with TrailClient(config) as client:
        route = None if args.no_route else await client.fetch_route(args.session_id)
        if route:
            print(f"[watch] route points={len(route)}")
        else:
            print("[watch] no planned route")

        aggregator: LocationAggregator = client.aggregator(args.session_id)
        async with aggregator:
            started_at = time.monotonic()
            while True:
                if args.json:
                    _print_json(aggregator.locations)
                else:
                    _print_table(aggregator.locations, route)

                remaining = None
                if args.duration > 0:
                    remaining = args.duration - (time.monotonic() - started_at)
                    if remaining <= 0:
                        print(f"[watch] Reached --duration={args.duration}s, stopping.")
                        return
                await aggregator.wait_for_change(remaining if remaining is not None else 3600.0)
                if not aggregator.is_subscribed:
                    return


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = TrailConfig.from_env()
    except TrailError as exc:
        print(f"[watch] configuration error: {exc}", file=sys.stderr)
        return 2
    if not config.mqtt_enabled:
        print("[watch] TRAIL_MQTT_HOST is not set; cannot follow the change feed", file=sys.stderr)
        return 2
    _LOG.debug("Following session=%s via %s", args.session_id, config.mqtt_host)

    try:
        asyncio.run(_watch(args, config))
    except KeyboardInterrupt:
        pass
    except TrailError as exc:
        print(f"[watch] {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
