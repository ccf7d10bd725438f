"""Operator interruption signal shared between a session and its handlers."""

import asyncio
import threading


class InterruptSignal:
    """Atomic interruption flag with an epoch counter.

    ``set()`` may be called from a signal handler or another thread. Code
    that recovers from an interrupt reads ``epoch()`` first and finishes with
    ``clear(epoch)``, so a signal arriving during recovery leaves the flag
    armed instead of being dropped.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._set = False
        self._epoch = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._waiter: asyncio.Event | None = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach the event loop whose waiters ``set()`` should wake."""
        if loop is self._loop and self._waiter is not None:
            return
        self._loop = loop
        self._waiter = asyncio.Event()
        if self.is_set():
            self._waiter.set()

    def set(self) -> None:
        with self._lock:
            self._set = True
            self._epoch += 1
        loop, waiter = self._loop, self._waiter
        if loop is None or waiter is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            waiter.set()
        else:
            loop.call_soon_threadsafe(waiter.set)

    def is_set(self) -> bool:
        with self._lock:
            return self._set

    def epoch(self) -> int:
        with self._lock:
            return self._epoch

    def clear(self, epoch: int | None = None) -> bool:
        """Clear the flag unless it was re-armed after ``epoch`` was read.

        Returns:
            True if the flag is now clear
        """
        with self._lock:
            if epoch is not None and epoch != self._epoch:
                return False
            self._set = False
        if self._waiter is not None:
            self._waiter.clear()
        return True

    async def wait(self) -> None:
        """Block until the flag is set."""
        if self._waiter is None:
            self.bind(asyncio.get_running_loop())
        assert self._waiter is not None
        await self._waiter.wait()
