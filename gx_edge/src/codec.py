"""
Topic layout and payload codec for the Victron GX MQTT feed.

The GX device publishes every D-Bus value under ``N/<serial>/<path>`` as a
JSON object ``{"value": <x>}``. Reads are requested with ``R/<serial>/...``
and writes with ``W/<serial>/<path>``. A keepalive on ``R/<serial>/keepalive``
must arrive at least once a minute or the device stops publishing.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import math

from gx_edge.src.errors import PayloadError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------

SETPOINT_PATH: str = "settings/0/Settings/CGwacs/AcPowerSetPoint"
"""Write path of the ESS grid setpoint (W, positive imports from grid)."""


def telemetry_prefix(serial: str) -> str:
    """Return the ``N/<serial>/`` prefix carried by every telemetry topic."""
    return f"N/{serial}/"


def telemetry_topic(serial: str) -> str:
    """Return the wildcard subscription covering all telemetry."""
    return f"N/{serial}/#"


def keepalive_topic(serial: str) -> str:
    """Return the liveness topic the feed expects to hear from."""
    return f"R/{serial}/keepalive"


def write_topic(serial: str, path: str) -> str:
    """Return the write topic for a D-Bus *path* (leading ``/`` tolerated)."""
    return f"W/{serial}/{path.lstrip('/')}"


def topic_segments(topic: str, serial: str) -> list[str] | None:
    """Strip the telemetry prefix from *topic* and split the rest on ``/``.

    Returns:
        The ordered path segments, or ``None`` when *topic* does not belong
        to the telemetry feed of *serial*.
    """
    prefix = telemetry_prefix(serial)
    if not topic.startswith(prefix):
        return None
    suffix = topic[len(prefix) :]
    if not suffix:
        return None
    return suffix.split("/")


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


def decode_value(payload: bytes) -> float | None:
    """Extract the numeric ``value`` field from a frame payload.

    Anything that is not a JSON object carrying a finite number under
    ``value`` decodes to ``None`` (Unset). Booleans are not numbers here even
    though ``bool`` subclasses ``int``.

    Raises:
        PayloadError: If *payload* is not valid UTF-8.
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PayloadError(f"payload is not valid UTF-8: {exc}") from exc

    if not text:
        return None

    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        logger.warning("Discarding invalid JSON payload: %.80s", text)
        return None

    if not isinstance(data, dict):
        logger.debug("Payload is not a JSON object: %.80s", text)
        return None

    value = data.get("value")
    if isinstance(value, bool) or not isinstance(value, int | float):
        logger.debug("Payload carries no numeric value: %.80s", text)
        return None
    try:
        value = float(value)
    except OverflowError:
        logger.debug("Payload value out of float range: %.80s", text)
        return None
    if not math.isfinite(value):
        logger.debug("Payload value is not finite: %.80s", text)
        return None
    return value


def encode_value(value: float) -> str:
    """Encode *value* as the ``{"value": <number>}`` write payload.

    Raises:
        ValueError: If *value* is NaN or infinite.
    """
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"cannot encode non-finite value {value!r}")
    return json.dumps({"value": value})
