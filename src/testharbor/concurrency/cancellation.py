"""
Cooperative cancellation for readiness waits.

A :class:`CancellationToken` is handed to long-running polls. Cancelling it
wakes any coroutine blocked in :meth:`CancellationToken.sleep` or
:meth:`CancellationToken.wait` immediately, so a poll never lingers after
its caller gave up, not even in the middle of a slow check.
"""

from __future__ import annotations

import asyncio
import threading

from testharbor.errors import WaitCancelledError


class CancellationToken:
    """
    A cancellation signal shared between a caller and a polling loop.

    Example:
        token = CancellationToken()
        task = asyncio.create_task(wait_until_ready(strategy, container, token))

        # Somewhere else, e.g. in a test teardown
        token.cancel()
        with pytest.raises(WaitCancelledError):
            await task
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """
        Cancel the token, waking all sleepers.

        Safe to call from any thread.
        """
        with self._lock:
            self._cancelled.set()
            waiters = list(self._waiters)
        for loop, event in waiters:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(event.set)

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def raise_if_cancelled(self, message: str = "Operation was cancelled") -> None:
        """
        Raise WaitCancelledError if the token has been cancelled.

        Raises:
            WaitCancelledError: If the token has been cancelled.
        """
        if self._cancelled.is_set():
            raise WaitCancelledError(message)

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        event = asyncio.Event()
        entry = (asyncio.get_running_loop(), event)
        with self._lock:
            if self._cancelled.is_set():
                event.set()
            self._waiters.append(entry)
        try:
            await event.wait()
        finally:
            with self._lock:
                self._waiters.remove(entry)

    async def sleep(self, seconds: float) -> None:
        """
        Sleep for ``seconds`` unless cancelled first.

        Raises:
            WaitCancelledError: If the token is cancelled before or during the sleep.
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self.wait(), timeout=max(seconds, 0.0))
        except asyncio.TimeoutError:
            pass
        self.raise_if_cancelled()
