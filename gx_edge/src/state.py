"""
Device state store guarded by a reader-writer lock.

One :class:`StateStore` owns one :class:`~gx_edge.src.models.DeviceState`.
The ingestion loop is its only writer; accessors take the read lock, copy the
requested part and release before returning, so callers only ever see
detached snapshots. The lock is a plain threading primitive and is never held
across an ``await``, which keeps accessors usable from the event loop, from
the MQTT network thread and from foreign threads alike.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from gx_edge.src.models import AcSpec, BatteryDC, DeviceState, Ess, PvInverter
from gx_edge.src.summary import BatterySummary, PvInverterSummary


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Waiting writers block new readers so a steady read load cannot starve
    the ingestion loop.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class StateStore:
    """Owns one device state aggregate and hands out snapshots of it.

    The aggregate is created once, empty, at construction and lives as long
    as the store.
    """

    def __init__(self) -> None:
        self._state = DeviceState()
        self._lock = ReadWriteLock()

    @contextmanager
    def write(self) -> Iterator[DeviceState]:
        """Yield the live aggregate under the write lock."""
        with self._lock.write():
            yield self._state

    # -- Snapshots ----------------------------------------------------------

    def snapshot(self) -> DeviceState:
        with self._lock.read():
            return self._state.model_copy(deep=True)

    def ac_input(self) -> AcSpec:
        with self._lock.read():
            return self._state.ac_input.model_copy()

    def ac_output(self) -> AcSpec:
        with self._lock.read():
            return self._state.ac_output.model_copy()

    def ess(self) -> Ess:
        with self._lock.read():
            return self._state.ess.model_copy()

    def batteries(self) -> list[tuple[int, BatteryDC]]:
        """Return ``(instance, record)`` pairs sorted by instance."""
        with self._lock.read():
            return [
                (device_id, battery.model_copy())
                for device_id, battery in sorted(self._state.batteries.items())
            ]

    def battery(self, device_id: int) -> BatteryDC | None:
        with self._lock.read():
            battery = self._state.batteries.get(device_id)
            return battery.model_copy() if battery is not None else None

    def inverters(self) -> list[tuple[int, PvInverter]]:
        """Return ``(instance, record)`` pairs sorted by instance."""
        with self._lock.read():
            return [
                (device_id, inverter.model_copy())
                for device_id, inverter in sorted(self._state.inverters.items())
            ]

    def inverter(self, device_id: int) -> PvInverter | None:
        with self._lock.read():
            inverter = self._state.inverters.get(device_id)
            return inverter.model_copy() if inverter is not None else None

    def entity_counts(self) -> tuple[int, int]:
        """Return ``(battery_count, inverter_count)``."""
        with self._lock.read():
            return len(self._state.batteries), len(self._state.inverters)

    # -- Summaries ----------------------------------------------------------

    def battery_summary(self) -> BatterySummary:
        with self._lock.read():
            return BatterySummary.from_batteries(self._state.batteries.values())

    def inverter_summary(self) -> PvInverterSummary:
        with self._lock.read():
            return PvInverterSummary.from_inverters(self._state.inverters.values())
