"""
Shared test fixtures for GX edge client tests.

Provides environment variable fixtures for GxSettings configuration tests
and an in-memory fake transport that records publishes and serves scripted
events. All GX env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json

import pytest
from gx_edge.src.transport import ConnectionEvent, MessageEvent, TransportEvent

# All GxSettings environment variable names, used for cleanup.
_ALL_GX_ENV_VARS = (
    "GX_HOST",
    "GX_SERIAL",
    "MQTT_PORT",
    "MQTT_CLIENT_ID",
    "MQTT_USERNAME",
    "MQTT_PASSWORD",
    "MQTT_KEEPALIVE_S",
    "KEEPALIVE_INTERVAL_S",
    "ERROR_BACKOFF_S",
    "SNAPSHOT_INTERVAL_S",
    "HEALTH_PATH",
    "MODBUS_ENABLED",
    "MODBUS_PORT",
    "VEBUS_UNIT_ID",
    "SYSTEM_UNIT_ID",
    "MODBUS_POLL_INTERVAL_S",
    "LOG_LEVEL",
)

SERIAL = "028102353a50"
"""GX serial used throughout the tests."""


class FakeTransport:
    """In-memory stand-in for :class:`~gx_edge.src.transport.MqttTransport`.

    Events pushed with :meth:`feed`, :meth:`feed_connected` or :meth:`fail`
    are served in order by :meth:`next_event`.
    """

    def __init__(self) -> None:
        self.events: asyncio.Queue[TransportEvent | Exception] = asyncio.Queue()
        self.published: list[tuple[str, str | bytes]] = []
        self.subscriptions: list[str] = []
        self.connected = False
        self.closed = False
        self.connect_error: Exception | None = None
        self.publish_error: Exception | None = None
        self.next_event_calls = 0

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def subscribe(self, topic: str) -> None:
        self.subscriptions.append(topic)

    async def next_event(self) -> TransportEvent:
        self.next_event_calls += 1
        item = await self.events.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def publish(self, topic: str, payload: str | bytes) -> None:
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((topic, payload))

    async def close(self) -> None:
        self.closed = True

    # -- Scripting helpers --------------------------------------------------

    def feed(self, topic: str, payload: object) -> None:
        """Queue a publish; dicts are JSON-encoded, bytes sent as-is."""
        if isinstance(payload, bytes):
            raw = payload
        else:
            raw = json.dumps(payload).encode("utf-8")
        self.events.put_nowait(MessageEvent(topic=topic, payload=raw))

    def feed_connected(self) -> None:
        self.events.put_nowait(ConnectionEvent(reason="Success"))

    def fail(self, exc: Exception) -> None:
        self.events.put_nowait(exc)

    def published_to(self, topic: str) -> list[str | bytes]:
        return [payload for t, payload in self.published if t == topic]


@pytest.fixture(autouse=True)
def _clean_gx_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all GX env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_GX_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for GxSettings.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "GX_HOST": "192.168.11.1",
        "GX_SERIAL": SERIAL,
        "MQTT_PORT": "1884",
        "MQTT_CLIENT_ID": "gx-test",
        "MQTT_USERNAME": "victron",
        "MQTT_PASSWORD": "super-secret-pw",
        "MQTT_KEEPALIVE_S": "45",
        "KEEPALIVE_INTERVAL_S": "15",
        "ERROR_BACKOFF_S": "2",
        "SNAPSHOT_INTERVAL_S": "7",
        "HEALTH_PATH": "/tmp/gx-health.json",
        "MODBUS_ENABLED": "true",
        "MODBUS_PORT": "5020",
        "VEBUS_UNIT_ID": "228",
        "SYSTEM_UNIT_ID": "100",
        "MODBUS_POLL_INTERVAL_S": "10",
        "LOG_LEVEL": "debug",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones).

    Optional variables should fall back to their defaults.
    """
    env = {
        "GX_HOST": "10.0.0.50",
        "GX_SERIAL": SERIAL,
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def transport_factory() -> type[FakeTransport]:
    """The fake transport class, for tests needing more than one."""
    return FakeTransport
