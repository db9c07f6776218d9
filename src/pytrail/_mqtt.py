"""MQTT change feed: parsing and threaded paho runtime."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from pytrail.config import TrailConfig
from pytrail.exceptions import TrailConfigError, TrailError
from pytrail.models.feed import ChangeEvent

ChangeHandler = Callable[[ChangeEvent], None]


class FeedSubscription(Protocol):
    async def close(self) -> None: ...


class ChangeFeed(Protocol):
    """Per-session push subscription to location row changes."""

    async def subscribe(self, session_id: str, on_event: ChangeHandler) -> FeedSubscription:
        """Start delivering *session_id*'s changes to *on_event* on the event loop."""
        ...


@dataclass(frozen=True)
class MqttBootstrap:
    """Broker/session data required to follow one session's topic."""

    broker_host: str
    broker_port: int
    topic: str
    client_id: str
    username: str | None
    password: str | None
    tls: bool


def build_bootstrap(config: TrailConfig, session_id: str) -> MqttBootstrap:
    if not config.mqtt_host:
        raise TrailConfigError("mqtt_host is not configured")
    return MqttBootstrap(
        broker_host=config.mqtt_host,
        broker_port=config.mqtt_port,
        topic=config.mqtt_topic_template.format(session_id=session_id),
        client_id=f"pytrail_{secrets.token_hex(8)}",
        username=config.mqtt_username,
        password=config.mqtt_password,
        tls=config.mqtt_tls,
    )


def decode_change_payload(payload: bytes) -> ChangeEvent:
    """Parse a feed message body into a :class:`ChangeEvent`."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise TrailError("Change feed payload is not a JSON object")
    return ChangeEvent.model_validate(parsed)


class TrailMqttRuntime:
    """Threaded paho-mqtt runtime that emits parsed events onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_event: ChangeHandler,
        keepalive: int = 60,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_event = on_event
        self._keepalive = keepalive
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._topic: str | None = None

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def handle_message(self, topic: str, payload: bytes) -> None:
        """Decode one message and hand it to the loop; bad payloads are dropped."""
        try:
            event = decode_change_payload(payload)
        except Exception:
            self._logger.debug("Change feed payload parse failure topic=%s", topic, exc_info=True)
            return
        self._logger.debug("Change feed event type=%s user=%s", event.type, event.user_id)
        self._loop.call_soon_threadsafe(self._on_event, event)

    def start(self, bootstrap: MqttBootstrap) -> None:
        """Connect and subscribe with provided broker details."""
        self.stop()
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s topic=%s client_id=%s",
            bootstrap.broker_host,
            bootstrap.broker_port,
            bootstrap.topic,
            bootstrap.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=bootstrap.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if bootstrap.username:
            client.username_pw_set(bootstrap.username, bootstrap.password)
        if bootstrap.tls:
            client.tls_set()

        self._topic = bootstrap.topic

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected successfully reason=%s", reason_code)
            # Resubscribe on every (re)connect; clean sessions drop subscriptions.
            if self._topic:
                c.subscribe(self._topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self.handle_message(msg.topic, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(bootstrap.broker_host, bootstrap.broker_port, keepalive=self._keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._topic = None

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")


class MqttSubscription:
    """One session topic subscription; closing it stops its runtime."""

    def __init__(self, runtime: TrailMqttRuntime, loop: asyncio.AbstractEventLoop) -> None:
        self._runtime = runtime
        self._loop = loop
        self._closed = False

    @property
    def runtime(self) -> TrailMqttRuntime:
        return self._runtime

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._loop.run_in_executor(None, self._runtime.stop)


class MqttChangeFeed:
    """:class:`ChangeFeed` backed by one MQTT connection per session."""

    def __init__(self, config: TrailConfig, *, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(__name__)

    async def subscribe(self, session_id: str, on_event: ChangeHandler) -> MqttSubscription:
        loop = asyncio.get_running_loop()
        bootstrap = build_bootstrap(self._config, session_id)
        runtime = TrailMqttRuntime(
            loop=loop,
            on_event=on_event,
            keepalive=self._config.mqtt_keepalive,
            logger=self._logger,
        )
        # connect() blocks on DNS/TCP; keep it off the loop.
        await loop.run_in_executor(None, runtime.start, bootstrap)
        return MqttSubscription(runtime, loop)
