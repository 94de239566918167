"""
GX client: live device state fed by the GX MQTT feed.

Runs two concurrent asyncio tasks from ``start()`` until shutdown:
1. **Ingestion loop**: races the next transport event against the shutdown
   signal. Each incoming publish is decoded and dispatched into the state
   store under its write lock, in delivery order. Transport errors are
   logged and followed by a fixed pause; reconnecting is the transport's job.
2. **Keepalive loop**: publishes to ``R/<serial>/keepalive`` every
   ``keepalive_interval_s`` seconds. The GX device stops publishing
   telemetry when it hears nothing for about a minute. A failed publish is
   logged and retried on the next tick.

Accessors are synchronous and return detached snapshots. ``shutdown()`` is
idempotent and non-blocking; ``wait_stopped()`` joins both tasks when a
caller needs to know that no further frame will land.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from typing import TYPE_CHECKING

from gx_edge.src.codec import (
    SETPOINT_PATH,
    decode_value,
    encode_value,
    keepalive_topic,
    telemetry_topic,
    write_topic,
)
from gx_edge.src.errors import PayloadError
from gx_edge.src.routing import dispatch_frame
from gx_edge.src.shutdown import ShutdownSignal
from gx_edge.src.state import StateStore
from gx_edge.src.transport import MessageEvent

if TYPE_CHECKING:
    from types import TracebackType

    from gx_edge.src.config import GxSettings
    from gx_edge.src.health import HealthWriter
    from gx_edge.src.models import AcSpec, BatteryDC, DeviceState, Ess, PvInverter
    from gx_edge.src.summary import BatterySummary, PvInverterSummary
    from gx_edge.src.transport import Transport

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

KEEPALIVE_INTERVAL_S: float = 10.0
"""Seconds between keepalive publishes (the feed times out after ~60 s)."""

ERROR_BACKOFF_S: float = 5.0
"""Pause after a transport error before waiting for the next event."""


class LoopState(enum.Enum):
    """Lifecycle of the ingestion loop."""

    IDLE = "idle"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class GxClient:
    """Live, queryable snapshot of one GX device.

    Each instance owns its state store, shutdown signal and task handles, so
    several clients can coexist in one process.

    Args:
        transport: Connected-on-start pub/sub transport.
        serial: The GX device's portal id / serial (``N/<serial>/...``).
        keepalive_interval_s: Seconds between keepalive publishes.
        error_backoff_s: Pause after a transport error.
        health: HealthWriter instance, or None to skip health writes.
    """

    def __init__(
        self,
        transport: Transport,
        serial: str,
        *,
        keepalive_interval_s: float = KEEPALIVE_INTERVAL_S,
        error_backoff_s: float = ERROR_BACKOFF_S,
        health: HealthWriter | None = None,
    ) -> None:
        self._transport = transport
        self._serial = serial
        self._keepalive_interval_s = keepalive_interval_s
        self._error_backoff_s = error_backoff_s
        self._health = health
        self._store = StateStore()
        self._shutdown = ShutdownSignal()
        self._ingest_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._loop_state = LoopState.IDLE
        self._frames_applied = 0

    @classmethod
    async def connect(
        cls,
        settings: GxSettings,
        *,
        health: HealthWriter | None = None,
    ) -> GxClient:
        """Build an MQTT transport from *settings* and start a client on it.

        Raises:
            TransportError: If the broker cannot be reached or subscribed.
        """
        from gx_edge.src.transport import MqttTransport

        transport = MqttTransport(
            host=settings.gx_host,
            port=settings.mqtt_port,
            client_id=settings.mqtt_client_id,
            keepalive_s=settings.mqtt_keepalive_s,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
        )
        client = cls(
            transport,
            settings.gx_serial,
            keepalive_interval_s=settings.keepalive_interval_s,
            error_backoff_s=settings.error_backoff_s,
            health=health,
        )
        await client.start()
        return client

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Connect, subscribe to the telemetry feed and spawn both tasks.

        Raises:
            TransportError: If connecting or subscribing fails.
        """
        if self._ingest_task is not None:
            return
        await self._transport.connect()
        await self._transport.subscribe(telemetry_topic(self._serial))

        self._loop_state = LoopState.RUNNING
        self._ingest_task = asyncio.create_task(
            self._ingest_loop(), name=f"gx-ingest-{self._serial}"
        )
        self._keepalive_task = asyncio.create_task(
            self._keepalive_loop(), name=f"gx-keepalive-{self._serial}"
        )

    def shutdown(self) -> None:
        """Ask both background tasks to stop.

        Idempotent, non-blocking and callable from any thread. The frame being
        processed when this is called may still land; use
        :meth:`wait_stopped` for a hard guarantee.
        """
        if not self._shutdown.is_set():
            logger.info("Shutdown requested for GX %s", self._serial)
        self._shutdown.trigger()

    async def wait_stopped(self) -> None:
        """Wait until both background tasks have finished."""
        tasks = [t for t in (self._ingest_task, self._keepalive_task) if t is not None]
        if tasks:
            await asyncio.gather(*tasks)

    async def aclose(self) -> None:
        """Shut down, join the background tasks and close the transport."""
        self.shutdown()
        await self.wait_stopped()
        await self._transport.close()

    async def __aenter__(self) -> GxClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def serial(self) -> str:
        return self._serial

    @property
    def loop_state(self) -> LoopState:
        return self._loop_state

    @property
    def frames_applied(self) -> int:
        """Frames that matched a known entity field since construction."""
        return self._frames_applied

    # -- Accessors ----------------------------------------------------------

    def get_ac_input(self) -> AcSpec:
        return self._store.ac_input()

    def get_ac_output(self) -> AcSpec:
        return self._store.ac_output()

    def get_ess(self) -> Ess:
        return self._store.ess()

    def get_batteries(self) -> list[tuple[int, BatteryDC]]:
        return self._store.batteries()

    def get_battery(self, device_id: int) -> BatteryDC | None:
        return self._store.battery(device_id)

    def get_inverters(self) -> list[tuple[int, PvInverter]]:
        return self._store.inverters()

    def get_inverter(self, device_id: int) -> PvInverter | None:
        return self._store.inverter(device_id)

    def get_battery_summary(self) -> BatterySummary:
        return self._store.battery_summary()

    def get_inverter_summary(self) -> PvInverterSummary:
        return self._store.inverter_summary()

    def snapshot(self) -> DeviceState:
        """Return a deep copy of the whole device state."""
        return self._store.snapshot()

    # -- Commands -----------------------------------------------------------

    async def write_value(self, path: str, value: float) -> None:
        """Publish ``{"value": value}`` to ``W/<serial>/<path>``.

        Raises:
            PublishError: If the transport refuses the publish.
            ValueError: If *value* is not a finite number.
        """
        topic = write_topic(self._serial, path)
        await self._transport.publish(topic, encode_value(value))
        logger.info("Published %s = %s", topic, value)

    async def ess_set_setpoint(self, value: float) -> None:
        """Command the ESS grid setpoint in W (positive imports from grid).

        The device ramps towards the new setpoint, so ``get_ess()`` may lag
        behind or never exactly equal *value*.

        Raises:
            PublishError: If the transport refuses the publish.
        """
        await self.write_value(SETPOINT_PATH, value)

    # -- Frame handling -----------------------------------------------------

    def handle_message(self, topic: str, payload: bytes) -> bool:
        """Decode one publish and fold it into the device state.

        Returns:
            True if the frame matched a known entity field.
        """
        try:
            value = decode_value(payload)
        except PayloadError as exc:
            logger.warning("Dropping frame on %s: %s", topic, exc)
            return False

        with self._store.write() as state:
            applied = dispatch_frame(state, topic, self._serial, value)

        if applied:
            self._frames_applied += 1
            if self._health is not None:
                self._health.record_frame()
        return applied

    # -- Background tasks ---------------------------------------------------

    async def _pause(self, delay_s: float) -> None:
        """Sleep for *delay_s* unless shutdown arrives first."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._shutdown.wait(), timeout=delay_s)

    async def _ingest_loop(self) -> None:
        logger.info("Ingestion loop started for GX %s", self._serial)
        shutdown_wait = asyncio.ensure_future(self._shutdown.wait())
        try:
            while not self._shutdown.is_set():
                next_event = asyncio.ensure_future(self._transport.next_event())
                done, _pending = await asyncio.wait(
                    {next_event, shutdown_wait},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if shutdown_wait in done:
                    next_event.cancel()
                    with contextlib.suppress(asyncio.CancelledError, Exception):
                        await next_event
                    break

                try:
                    event = next_event.result()
                except Exception:
                    logger.error("MQTT event loop error", exc_info=True)
                    await self._pause(self._error_backoff_s)
                    continue

                if not isinstance(event, MessageEvent):
                    continue
                try:
                    self.handle_message(event.topic, event.payload)
                except Exception:
                    logger.exception("Failed to process frame on %s", event.topic)
        finally:
            self._loop_state = LoopState.SHUTTING_DOWN
            shutdown_wait.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await shutdown_wait
            self._loop_state = LoopState.STOPPED
            logger.info("Ingestion loop stopped for GX %s", self._serial)

    async def _keepalive_once(self, topic: str) -> bool:
        """Publish one keepalive; failures are logged, never raised."""
        try:
            await self._transport.publish(topic, "")
        except Exception:
            logger.error("Keepalive publish failed", exc_info=True)
            return False

        if self._health is not None:
            try:
                self._health.set_entity_counts(*self._store.entity_counts())
                self._health.record_keepalive()
            except Exception:
                logger.warning("Failed to write health file", exc_info=True)
        return True

    async def _keepalive_loop(self) -> None:
        topic = keepalive_topic(self._serial)
        logger.info(
            "Keepalive loop started (topic=%s, interval=%ss)",
            topic,
            self._keepalive_interval_s,
        )
        while not self._shutdown.is_set():
            await self._keepalive_once(topic)
            await self._pause(self._keepalive_interval_s)
        logger.info("Keepalive loop stopped")
