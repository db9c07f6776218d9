"""Client configuration for pytrail."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pytrail._constants import (
    DEFAULT_OFF_ROUTE_THRESHOLD_M,
    HIDDEN_PUBLISH_INTERVAL_S,
    MQTT_TOPIC_TEMPLATE,
    SAMPLE_MAX_CACHE_AGE_MS,
    SAMPLE_TIMEOUT_MS,
    SAMPLER_MAX_RETRIES,
    SAMPLER_RETRY_DELAY_S,
    UNKNOWN_NICKNAME,
    VISIBLE_PUBLISH_INTERVAL_S,
)
from pytrail.exceptions import TrailConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class TrailConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Base URL of the REST backend (tables are served under ``/rest/v1``).
    api_key : str
        API key sent as the ``apikey`` header.
    access_token : str or None
        Bearer token of the authenticated user. Falls back to *api_key*.
    http_timeout : float
        Total timeout for a single HTTP request, in seconds.
    mqtt_host : str or None
        Change-feed broker host. ``None`` disables the MQTT feed.
    mqtt_port : int
        Change-feed broker port.
    mqtt_tls : bool
        Connect to the broker over TLS.
    mqtt_username, mqtt_password : str or None
        Broker credentials.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_topic_template : str
        Topic carrying a session's location changes; formatted with
        ``session_id``.
    off_route_threshold_m : float
        Distance from the route beyond which a participant is off-route.
    visible_publish_interval : float
        Republish period while the page/app is in the foreground.
    hidden_publish_interval : float
        Republish period while the page/app is in the background.
    sample_timeout_ms : int
        Per-sample timeout handed to the geolocation provider.
    sample_max_cache_age_ms : int
        Maximum age of a cached device position the provider may reuse.
    sampler_max_retries : int
        Retries for an unavailable position before giving up.
    sampler_retry_delay : float
        Seconds between those retries.
    placeholder_nickname : str
        Label used when a participant's display name cannot be resolved.
    """

    base_url: str = "http://localhost:54321"
    api_key: str = ""
    access_token: str | None = None
    http_timeout: float = 10.0
    mqtt_host: str | None = None
    mqtt_port: int = 8883
    mqtt_tls: bool = True
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_keepalive: int = 60
    mqtt_topic_template: str = MQTT_TOPIC_TEMPLATE
    off_route_threshold_m: float = DEFAULT_OFF_ROUTE_THRESHOLD_M
    visible_publish_interval: float = VISIBLE_PUBLISH_INTERVAL_S
    hidden_publish_interval: float = HIDDEN_PUBLISH_INTERVAL_S
    sample_timeout_ms: int = SAMPLE_TIMEOUT_MS
    sample_max_cache_age_ms: int = SAMPLE_MAX_CACHE_AGE_MS
    sampler_max_retries: int = SAMPLER_MAX_RETRIES
    sampler_retry_delay: float = SAMPLER_RETRY_DELAY_S
    placeholder_nickname: str = UNKNOWN_NICKNAME

    def __post_init__(self) -> None:
        if self.off_route_threshold_m < 0:
            raise TrailConfigError("off_route_threshold_m must be >= 0")
        if self.visible_publish_interval <= 0 or self.hidden_publish_interval <= 0:
            raise TrailConfigError("publish intervals must be positive")
        if self.sampler_max_retries < 0:
            raise TrailConfigError("sampler_max_retries must be >= 0")
        if "{session_id}" not in self.mqtt_topic_template:
            raise TrailConfigError("mqtt_topic_template must contain '{session_id}'")

    @property
    def mqtt_enabled(self) -> bool:
        """Whether a change-feed broker is configured."""
        return bool(self.mqtt_host)

    @classmethod
    def from_env(cls, **overrides: Any) -> TrailConfig:
        """Create configuration from environment variables.

        Reads ``TRAIL_BASE_URL``, ``TRAIL_API_KEY`` and the other optional
        ``TRAIL_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrailConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "TRAIL_BASE_URL": "base_url",
            "TRAIL_API_KEY": "api_key",
            "TRAIL_ACCESS_TOKEN": "access_token",
            "TRAIL_MQTT_HOST": "mqtt_host",
            "TRAIL_MQTT_USERNAME": "mqtt_username",
            "TRAIL_MQTT_PASSWORD": "mqtt_password",
            "TRAIL_MQTT_TOPIC_TEMPLATE": "mqtt_topic_template",
            "TRAIL_PLACEHOLDER_NICKNAME": "placeholder_nickname",
        }
        _ENV_FLOAT_MAP = {
            "TRAIL_HTTP_TIMEOUT": "http_timeout",
            "TRAIL_OFF_ROUTE_THRESHOLD_M": "off_route_threshold_m",
            "TRAIL_VISIBLE_PUBLISH_INTERVAL": "visible_publish_interval",
            "TRAIL_HIDDEN_PUBLISH_INTERVAL": "hidden_publish_interval",
            "TRAIL_SAMPLER_RETRY_DELAY": "sampler_retry_delay",
        }
        _ENV_INT_MAP = {
            "TRAIL_MQTT_PORT": "mqtt_port",
            "TRAIL_MQTT_KEEPALIVE": "mqtt_keepalive",
            "TRAIL_SAMPLE_TIMEOUT_MS": "sample_timeout_ms",
            "TRAIL_SAMPLER_MAX_RETRIES": "sampler_max_retries",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
        except ValueError as exc:
            raise TrailConfigError(f"Invalid numeric TRAIL_* environment value: {exc}") from exc

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("TRAIL_MQTT_TLS"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
