"""
Level-triggered shutdown signal shared by the client's background tasks.

Once triggered the signal stays set: tasks already waiting wake once, and
tasks that start waiting later return immediately. Triggering is idempotent,
never blocks and is safe from any thread.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import threading


class ShutdownSignal:
    """Broadcast cancellation token bound to the event loop it waits on.

    The loop is captured on first use from inside a coroutine. Triggers from
    other threads are marshalled onto that loop with
    ``call_soon_threadsafe``; a trigger that arrives before the loop is known
    is remembered and applied when it is.
    """

    def __init__(self) -> None:
        self._flag = threading.Event()
        self._event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._guard = threading.Lock()

    def is_set(self) -> bool:
        return self._flag.is_set()

    def trigger(self) -> None:
        """Request shutdown. Safe to call repeatedly and from any thread."""
        with self._guard:
            if self._flag.is_set():
                return
            self._flag.set()
            loop, event = self._loop, self._event

        if loop is None or event is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
        else:
            loop.call_soon_threadsafe(event.set)

    async def wait(self) -> None:
        """Suspend until the signal is triggered (returns at once if it was)."""
        await self._bind().wait()

    def _bind(self) -> asyncio.Event:
        with self._guard:
            if self._event is None:
                self._loop = asyncio.get_running_loop()
                self._event = asyncio.Event()
                if self._flag.is_set():
                    self._event.set()
            return self._event
