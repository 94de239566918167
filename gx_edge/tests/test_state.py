"""
Tests for the reader-writer lock and the state store snapshots.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import threading

from gx_edge.src.models import BatteryDC, PvInverter
from gx_edge.src.state import ReadWriteLock, StateStore


class TestReadWriteLock:
    def test_readers_share(self) -> None:
        lock = ReadWriteLock()
        both_inside = threading.Barrier(2, timeout=2)
        errors: list[BaseException] = []

        def reader() -> None:
            try:
                with lock.read():
                    both_inside.wait()
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert errors == []

    def test_writer_excludes_readers(self) -> None:
        lock = ReadWriteLock()
        entered = threading.Event()

        def reader() -> None:
            with lock.read():
                entered.set()

        with lock.write():
            t = threading.Thread(target=reader)
            t.start()
            assert not entered.wait(timeout=0.1)

        assert entered.wait(timeout=2)
        t.join(timeout=2)

    def test_writer_waits_for_readers(self) -> None:
        lock = ReadWriteLock()
        written = threading.Event()

        def writer() -> None:
            with lock.write():
                written.set()

        with lock.read():
            t = threading.Thread(target=writer)
            t.start()
            assert not written.wait(timeout=0.1)

        assert written.wait(timeout=2)
        t.join(timeout=2)

    def test_released_after_exception(self) -> None:
        lock = ReadWriteLock()
        try:
            with lock.write():
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        with lock.read():
            pass


class TestStateStore:
    def test_starts_empty(self) -> None:
        store = StateStore()
        assert store.batteries() == []
        assert store.inverters() == []
        assert store.battery(512) is None
        assert store.inverter(20) is None
        assert store.entity_counts() == (0, 0)
        assert store.ac_input().voltage is None
        assert store.ess().grid_setpoint is None

    def test_snapshots_are_detached(self) -> None:
        store = StateStore()
        with store.write() as state:
            state.ac_input.voltage = 230.0
            state.batteries[512] = BatteryDC(soc=87.0)

        ac = store.ac_input()
        battery = store.battery(512)
        snapshot = store.snapshot()
        ac.voltage = 0.0
        battery.soc = 0.0
        snapshot.batteries[512].soc = 1.0
        snapshot.batteries[600] = BatteryDC()

        assert store.ac_input().voltage == 230.0
        assert store.battery(512).soc == 87.0
        assert store.entity_counts() == (1, 0)

    def test_snapshot_does_not_see_later_writes(self) -> None:
        store = StateStore()
        before = store.ac_output()

        with store.write() as state:
            state.ac_output.power = 500.0

        assert before.power is None
        assert store.ac_output().power == 500.0

    def test_collections_sorted_by_instance(self) -> None:
        store = StateStore()
        with store.write() as state:
            state.batteries[513] = BatteryDC(soc=1.0)
            state.batteries[512] = BatteryDC(soc=2.0)
            state.inverters[21] = PvInverter()
            state.inverters[20] = PvInverter()

        assert [i for i, _ in store.batteries()] == [512, 513]
        assert [i for i, _ in store.inverters()] == [20, 21]
        assert store.entity_counts() == (2, 2)

    def test_summaries(self) -> None:
        store = StateStore()
        with store.write() as state:
            state.batteries[512] = BatteryDC(soc=87.0)
            state.batteries[513] = BatteryDC(dc_power=120.0)
            state.inverters[20] = PvInverter(power=100.0)
            state.inverters[21] = PvInverter()
            state.inverters[22] = PvInverter(power=50.0)

        assert store.battery_summary().total_power == 120.0
        assert store.battery_summary().avg_soc == 87.0
        assert store.inverter_summary().total_power == 150.0

    def test_concurrent_reads_during_writes(self) -> None:
        store = StateStore()
        stop = threading.Event()
        seen: list[float | None] = []

        def reader() -> None:
            while not stop.is_set():
                seen.append(store.ac_input().power)

        t = threading.Thread(target=reader)
        t.start()
        for n in range(200):
            with store.write() as state:
                state.ac_input.power = float(n)
        stop.set()
        t.join(timeout=5)

        assert store.ac_input().power == 199.0
        assert all(v is None or 0.0 <= v <= 199.0 for v in seen)
