"""
Edge daemon main loop for the Victron GX client.

Starts a :class:`~gx_edge.src.client.GxClient` (which runs its own ingestion
and keepalive tasks) and then runs, concurrently until shutdown:
1. **Snapshot loop**: logs the AC, ESS, battery and PV summaries every
   ``snapshot_interval_s`` seconds.
2. **Modbus loop** (optional): polls the GX Modbus registers and logs them.

Graceful shutdown on SIGTERM/SIGINT sets a shared asyncio.Event; the loops
finish their current iteration, then the client is shut down, joined and its
transport closed.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from gx_edge.src.client import GxClient

if TYPE_CHECKING:
    from gx_edge.src.poller import GxModbusReader

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging for the edge daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.

    Args:
        level: Root log level name.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def _masked_secret(value: str | None) -> str:
    """Return a short non-reversible fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, excluding secrets.

    The MQTT password is only logged as a masked fingerprint.

    Args:
        settings: A GxSettings instance (or any object with the same attrs).
    """
    logger.info(
        "GX edge starting with config: "
        "gx_host=%s, gx_serial=%s, mqtt_port=%s, mqtt_client_id=%s, "
        "mqtt_username=%s, mqtt_password_masked=%s, "
        "keepalive_interval_s=%s, error_backoff_s=%s, "
        "snapshot_interval_s=%s, health_path=%s, "
        "modbus_enabled=%s, modbus_port=%s, vebus_unit_id=%s, "
        "system_unit_id=%s, modbus_poll_interval_s=%s",
        settings.gx_host,  # type: ignore[attr-defined]
        settings.gx_serial,  # type: ignore[attr-defined]
        settings.mqtt_port,  # type: ignore[attr-defined]
        settings.mqtt_client_id,  # type: ignore[attr-defined]
        settings.mqtt_username or "none",  # type: ignore[attr-defined]
        _masked_secret(settings.mqtt_password),  # type: ignore[attr-defined]
        settings.keepalive_interval_s,  # type: ignore[attr-defined]
        settings.error_backoff_s,  # type: ignore[attr-defined]
        settings.snapshot_interval_s,  # type: ignore[attr-defined]
        settings.health_path or "disabled",  # type: ignore[attr-defined]
        settings.modbus_enabled,  # type: ignore[attr-defined]
        settings.modbus_port,  # type: ignore[attr-defined]
        settings.vebus_unit_id,  # type: ignore[attr-defined]
        settings.system_unit_id,  # type: ignore[attr-defined]
        settings.modbus_poll_interval_s,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Single-iteration functions (easily testable)
# ---------------------------------------------------------------------------


def _log_snapshot(client: GxClient) -> None:
    """Log one compact snapshot of the client's device state."""
    ac_in = client.get_ac_input()
    ac_out = client.get_ac_output()
    ess = client.get_ess()
    batteries = client.get_battery_summary()
    inverters = client.get_inverter_summary()
    logger.info(
        "GX snapshot: ac_input=%s ac_output=%s ess=%s batteries=%s pv=%s",
        ac_in.model_dump(),
        ac_out.model_dump(),
        ess.model_dump(),
        batteries.model_dump(),
        inverters.model_dump(),
    )


async def _modbus_poll_once(*, reader: GxModbusReader) -> dict[str, float] | None:
    """Execute a single Modbus poll and log the result.

    Catches all exceptions so that the caller's loop is never broken.
    """
    try:
        values = await reader.poll()
    except Exception:
        logger.error("Modbus poll cycle error", exc_info=True)
        return None
    if values is None:
        logger.warning("Modbus poll returned None")
    else:
        logger.info("Modbus poll: %s", values)
    return values


# ---------------------------------------------------------------------------
# Loop runners
# ---------------------------------------------------------------------------


async def _snapshot_loop(
    *,
    client: GxClient,
    snapshot_interval_s: float,
    shutdown_event: asyncio.Event,
) -> None:
    """Log a state snapshot every *snapshot_interval_s* until shutdown."""
    logger.info("Snapshot loop started (interval=%ss)", snapshot_interval_s)
    while not shutdown_event.is_set():
        try:
            _log_snapshot(client)
        except Exception:
            logger.error("Snapshot logging error", exc_info=True)
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=snapshot_interval_s,
            )
    logger.info("Snapshot loop stopped")


async def _modbus_loop(
    *,
    reader: GxModbusReader,
    poll_interval_s: float,
    shutdown_event: asyncio.Event,
) -> None:
    """Run the Modbus poll loop until shutdown_event is set."""
    logger.info("Modbus loop started (interval=%ss)", poll_interval_s)
    while not shutdown_event.is_set():
        await _modbus_poll_once(reader=reader)
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=poll_interval_s,
            )
    logger.info("Modbus loop stopped")


# ---------------------------------------------------------------------------
# Concurrent runner with graceful shutdown
# ---------------------------------------------------------------------------


async def run(
    *,
    client: GxClient,
    shutdown_event: asyncio.Event,
    snapshot_interval_s: float,
    reader: GxModbusReader | None = None,
    modbus_poll_interval_s: float = 5.0,
) -> None:
    """Run the daemon loops next to a started client until shutdown.

    When the shutdown_event is set, the loops finish their current iteration,
    then the client is shut down, joined and closed.
    """
    loops = [
        _snapshot_loop(
            client=client,
            snapshot_interval_s=snapshot_interval_s,
            shutdown_event=shutdown_event,
        )
    ]
    if reader is not None:
        loops.append(
            _modbus_loop(
                reader=reader,
                poll_interval_s=modbus_poll_interval_s,
                shutdown_event=shutdown_event,
            )
        )

    try:
        await asyncio.gather(*loops)
    finally:
        logger.info("Stopping GX client")
        await client.aclose()
        logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, start the client, run loops.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    from gx_edge.src.config import GxSettings
    from gx_edge.src.health import HealthWriter
    from gx_edge.src.poller import GxModbusReader

    settings = GxSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    health = HealthWriter(settings.health_path) if settings.health_path else None
    client = await GxClient.connect(settings, health=health)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event, client),
        )

    reader = None
    if settings.modbus_enabled:
        reader = GxModbusReader(
            host=settings.gx_host,
            port=settings.modbus_port,
            vebus_unit_id=settings.vebus_unit_id,
            system_unit_id=settings.system_unit_id,
        )

    await run(
        client=client,
        shutdown_event=shutdown_event,
        snapshot_interval_s=settings.snapshot_interval_s,
        reader=reader,
        modbus_poll_interval_s=settings.modbus_poll_interval_s,
    )


def _handle_signal(shutdown_event: asyncio.Event, client: GxClient) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
        client: The running client, told to stop its own tasks.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()
    client.shutdown()


def main() -> None:
    """Synchronous entrypoint for the edge daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
