"""
MQTT transport for the GX client, built on paho-mqtt.

paho runs its network loop on a background thread (``loop_start``) and owns
reconnection. Its callbacks are marshalled onto the asyncio loop through an
``asyncio.Queue`` so the client can ``await next_event()`` like a stream:

- incoming publishes become :class:`MessageEvent`;
- successful (re)connects become :class:`ConnectionEvent`;
- failed connects and unexpected disconnects are queued as
  :class:`~gx_edge.src.errors.TransportError` and raised by ``next_event``.

Subscriptions are replayed on every connect so they survive reconnects.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import paho.mqtt.client as mqtt

from gx_edge.src.errors import PublishError, TransportError

logger = logging.getLogger(__name__)

RECONNECT_MIN_DELAY_S: int = 1
RECONNECT_MAX_DELAY_S: int = 60


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MessageEvent:
    """An incoming publish."""

    topic: str
    payload: bytes


@dataclass(frozen=True, slots=True)
class ConnectionEvent:
    """The broker connection came up."""

    reason: str = ""


TransportEvent = MessageEvent | ConnectionEvent


class Transport(Protocol):
    """What the GX client needs from a pub/sub transport."""

    async def connect(self) -> None: ...

    async def subscribe(self, topic: str) -> None: ...

    async def next_event(self) -> TransportEvent: ...

    async def publish(self, topic: str, payload: str | bytes) -> None: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# paho-mqtt implementation
# ---------------------------------------------------------------------------


class MqttTransport:
    """paho-mqtt client bridged into asyncio.

    Args:
        host: Broker hostname or IP (the GX device itself).
        port: Broker TCP port (default 1883).
        client_id: MQTT client identifier.
        keepalive_s: MQTT protocol keepalive in seconds.
        username: Optional broker username.
        password: Optional broker password.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 1883,
        client_id: str = "gx-edge",
        keepalive_s: int = 30,
        username: str = "",
        password: str = "",
    ) -> None:
        self._host = host
        self._port = port
        self._keepalive_s = keepalive_s
        self._topics: list[str] = []
        self._queue: asyncio.Queue[TransportEvent | TransportError] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._started = False

        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        self._client.enable_logger(logger=logger)
        self._client.reconnect_delay_set(
            min_delay=RECONNECT_MIN_DELAY_S,
            max_delay=RECONNECT_MAX_DELAY_S,
        )
        if username:
            self._client.username_pw_set(username, password or None)

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

    async def connect(self) -> None:
        """Connect to the broker and start paho's network thread.

        Raises:
            TransportError: If the initial TCP connection fails.
        """
        if self._started:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        try:
            await asyncio.to_thread(
                self._client.connect,
                self._host,
                self._port,
                self._keepalive_s,
            )
        except OSError as exc:
            raise TransportError(
                f"Failed to connect to MQTT broker {self._host}:{self._port}: {exc}"
            ) from exc
        self._client.loop_start()
        self._started = True
        logger.info("MQTT transport connected to %s:%d", self._host, self._port)

    async def subscribe(self, topic: str) -> None:
        """Subscribe to *topic* now and after every reconnect.

        Raises:
            TransportError: If paho rejects the subscription.
        """
        if topic not in self._topics:
            self._topics.append(topic)
        rc, _mid = self._client.subscribe(topic, qos=0)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(
                f"Subscribe to {topic} failed: {mqtt.error_string(rc)}"
            )
        logger.info("MQTT subscribed to %s", topic)

    async def next_event(self) -> TransportEvent:
        """Wait for the next transport event.

        Raises:
            TransportError: For a queued connection failure or disconnect.
        """
        if self._queue is None:
            raise TransportError("MQTT transport is not connected")
        item = await self._queue.get()
        if isinstance(item, TransportError):
            raise item
        return item

    async def publish(self, topic: str, payload: str | bytes) -> None:
        """Hand one message to paho (QoS 1, not retained).

        Success means paho accepted the message for sending, not that the
        device acted on it.

        Raises:
            PublishError: If paho refuses the publish.
        """
        try:
            info = self._client.publish(topic, payload, qos=1, retain=False)
        except (ValueError, TypeError) as exc:
            raise PublishError(f"Publish to {topic} rejected: {exc}") from exc
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(
                f"Publish to {topic} failed: {mqtt.error_string(info.rc)}"
            )

    async def close(self) -> None:
        """Disconnect and stop the network thread."""
        if not self._started:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._started = False
        logger.info("MQTT transport closed")

    # -- paho callbacks (network thread) ------------------------------------

    def _put(self, item: TransportEvent | TransportError) -> None:
        if self._queue is None or self._loop is None:
            logger.warning("MQTT event received before transport initialisation")
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            logger.debug("Event loop closed, dropping MQTT event %r", item)

    def _on_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any = None,
    ) -> None:
        if reason_code.is_failure:
            logger.error("MQTT connect refused: %s", reason_code)
            self._put(TransportError(f"MQTT connect refused: {reason_code}"))
            return
        for topic in self._topics:
            client.subscribe(topic, qos=0)
        self._put(ConnectionEvent(reason=str(reason_code)))

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any = None,
    ) -> None:
        if not reason_code.is_failure:
            logger.info("MQTT client disconnected cleanly")
            return
        logger.warning("Unexpected MQTT disconnect: %s", reason_code)
        self._put(TransportError(f"Unexpected MQTT disconnect: {reason_code}"))

    def _on_message(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        msg: mqtt.MQTTMessage,
    ) -> None:
        self._put(MessageEvent(topic=msg.topic, payload=msg.payload or b""))
