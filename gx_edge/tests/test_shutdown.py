"""
Tests for the level-triggered shutdown signal.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import threading

import pytest
from gx_edge.src.shutdown import ShutdownSignal


class TestShutdownSignal:
    def test_starts_clear(self) -> None:
        assert not ShutdownSignal().is_set()

    def test_trigger_without_loop(self) -> None:
        signal = ShutdownSignal()
        signal.trigger()
        signal.trigger()
        assert signal.is_set()

    @pytest.mark.asyncio
    async def test_late_waiter_returns_immediately(self) -> None:
        signal = ShutdownSignal()
        signal.trigger()

        await asyncio.wait_for(signal.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_wakes_every_waiter(self) -> None:
        signal = ShutdownSignal()
        waiters = [asyncio.ensure_future(signal.wait()) for _ in range(3)]
        await asyncio.sleep(0)

        signal.trigger()

        await asyncio.wait_for(asyncio.gather(*waiters), timeout=1)

    @pytest.mark.asyncio
    async def test_trigger_from_other_thread(self) -> None:
        signal = ShutdownSignal()
        waiter = asyncio.ensure_future(signal.wait())
        await asyncio.sleep(0)

        t = threading.Thread(target=signal.trigger)
        t.start()
        t.join()

        await asyncio.wait_for(waiter, timeout=1)
        assert signal.is_set()

    @pytest.mark.asyncio
    async def test_pending_until_triggered(self) -> None:
        signal = ShutdownSignal()

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(signal.wait(), timeout=0.05)
