"""
Health file writer for the GX edge client.

Writes a JSON health file at a configurable path with five fields:
- last_frame_ts: ISO timestamp of the most recently applied telemetry frame.
- last_keepalive_ts: ISO timestamp of the most recent successful keepalive.
- frames_applied: Number of frames applied since startup.
- battery_count / inverter_count: Device instances discovered so far.

Frames arrive many times per second, so ``record_frame`` only updates the
in-memory state; the file is rewritten on keepalive ticks and entity count
changes. Docker HEALTHCHECK or monitoring can inspect it.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes GX client health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_frame_ts: str | None = None
        self._last_keepalive_ts: str | None = None
        self._frames_applied: int = 0
        self._battery_count: int = 0
        self._inverter_count: int = 0

    def record_frame(self) -> None:
        """Record an applied frame (in memory only)."""
        self._last_frame_ts = datetime.now(tz=UTC).isoformat()
        self._frames_applied += 1

    def record_keepalive(self) -> None:
        """Record a successful keepalive publish and write health file."""
        self._last_keepalive_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def set_entity_counts(self, batteries: int, inverters: int) -> None:
        """Update discovered instance counts, writing the file on change.

        Args:
            batteries: Number of known battery instances.
            inverters: Number of known PV inverter instances.
        """
        if (batteries, inverters) == (self._battery_count, self._inverter_count):
            return
        self._battery_count = batteries
        self._inverter_count = inverters
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_frame_ts": self._last_frame_ts,
            "last_keepalive_ts": self._last_keepalive_ts,
            "frames_applied": self._frames_applied,
            "battery_count": self._battery_count,
            "inverter_count": self._inverter_count,
        }
        self.path.write_text(json.dumps(data))
