"""HTTP location store over a PostgREST-style table API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from pytrail._constants import LOCATION_CONFLICT_KEY, LOCATIONS_TABLE, ROUTES_TABLE, USER_AGENT, USERS_TABLE
from pytrail.config import TrailConfig
from pytrail.exceptions import (
    LocationReadError,
    LocationWriteError,
    NicknameLookupError,
    TrailTransportError,
)
from pytrail.models.location import LocationRow

_logger = logging.getLogger(__name__)

_LOCATION_COLUMNS = "session_id,user_id,lat,lon,updated_at,off_route,users:user_id(nickname)"


class LocationStore(Protocol):
    """Structural interface of the location store.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`RestLocationStore`) concrete.
    """

    async def fetch_locations(self, session_id: str) -> list[LocationRow]: ...

    async def upsert_location(self, row: LocationRow) -> None: ...

    async def fetch_nickname(self, user_id: str) -> str | None: ...


class RestLocationStore:
    """Location, user and route tables served under ``<base_url>/rest/v1``."""

    def __init__(self, config: TrailConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _headers(self) -> dict[str, str]:
        token = self._config.access_token or self._config.api_key
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }
        if self._config.api_key:
            headers["apikey"] = self._config.api_key
        if token:
            headers["authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str],
        body: Any = None,
        extra_headers: Mapping[str, str] | None = None,
        error_cls: type[TrailTransportError] = TrailTransportError,
    ) -> Any:
        """Send one table request and return the decoded JSON (``None`` for empty bodies)."""
        url = f"{self._config.base_url.rstrip('/')}/rest/v1/{table}"
        headers = self._headers()
        if extra_headers:
            headers.update(extra_headers)
        data = json.dumps(body, separators=(",", ":")) if body is not None else None
        timeout = aiohttp.ClientTimeout(total=self._config.http_timeout)

        _logger.debug("%s %s params=%s", method, url, dict(params))

        try:
            async with self._http.request(
                method,
                url,
                params=dict(params),
                data=data,
                headers=headers,
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                if resp.status >= 300:
                    raise error_cls(
                        f"HTTP {resp.status} from {table}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=table,
                    )
        except TrailTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise error_cls(f"Request to {table} failed: {exc}", endpoint=table) from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise error_cls(f"Invalid JSON from {table}: {text[:200]}", endpoint=table) from exc

    async def fetch_locations(self, session_id: str) -> list[LocationRow]:
        """All location rows of *session_id*, with joined nicknames."""
        payload = await self._request(
            "GET",
            LOCATIONS_TABLE,
            params={"select": _LOCATION_COLUMNS, "session_id": f"eq.{session_id}"},
            error_cls=LocationReadError,
        )
        if not isinstance(payload, list):
            raise LocationReadError(f"Expected a list of rows from {LOCATIONS_TABLE}", endpoint=LOCATIONS_TABLE)

        rows: list[LocationRow] = []
        for item in payload:
            try:
                rows.append(LocationRow.model_validate(item))
            except ValidationError:
                _logger.debug("Skipping malformed location row %s", item, exc_info=True)
        return rows

    async def upsert_location(self, row: LocationRow) -> None:
        """Insert or overwrite the ``(session_id, user_id)`` row."""
        if not row.session_id:
            raise LocationWriteError("Location upsert needs a session_id", endpoint=LOCATIONS_TABLE)
        await self._request(
            "POST",
            LOCATIONS_TABLE,
            params={"on_conflict": LOCATION_CONFLICT_KEY},
            body=row.to_wire(),
            extra_headers={"prefer": "resolution=merge-duplicates,return=minimal"},
            error_cls=LocationWriteError,
        )

    async def fetch_nickname(self, user_id: str) -> str | None:
        """Display name of *user_id*, ``None`` when the user has none."""
        payload = await self._request(
            "GET",
            USERS_TABLE,
            params={"select": "nickname", "id": f"eq.{user_id}", "limit": "1"},
            error_cls=NicknameLookupError,
        )
        if not isinstance(payload, list) or not payload:
            return None
        first = payload[0]
        nickname = first.get("nickname") if isinstance(first, dict) else None
        return nickname if isinstance(nickname, str) and nickname.strip() else None

    async def fetch_route_geojson(self, session_id: str) -> dict[str, Any] | None:
        """Newest stored route of *session_id* as GeoJSON, if any."""
        payload = await self._request(
            "GET",
            ROUTES_TABLE,
            params={
                "select": "geojson",
                "session_id": f"eq.{session_id}",
                "order": "created_at.desc",
                "limit": "1",
            },
            error_cls=LocationReadError,
        )
        if not isinstance(payload, list) or not payload:
            return None
        first = payload[0]
        geojson = first.get("geojson") if isinstance(first, dict) else None
        if isinstance(geojson, str):
            try:
                geojson = json.loads(geojson)
            except json.JSONDecodeError as exc:
                raise LocationReadError("Stored route is not valid JSON", endpoint=ROUTES_TABLE) from exc
        return geojson if isinstance(geojson, dict) else None
