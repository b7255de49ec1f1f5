"""
Readiness strategies and the polling engine that drives them.

A strategy answers one question per call: is the container ready *now*?
:func:`wait_until_ready` turns that single check into a bounded, cancellable
poll. Checks report one of three outcomes:

- ``Verdict.ok()``: ready, stop polling.
- ``Verdict.not_yet(reason)``: poll again after ``poll_interval``.
- raise :class:`StrategyError`: polling again cannot help, give up now.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from testharbor.concurrency.cancellation import CancellationToken
from testharbor.config.logging_config import get_logger
from testharbor.errors import StartupTimeoutError, WaitCancelledError

log = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_STARTUP_TIMEOUT = 60.0


@dataclass(frozen=True)
class Verdict:
    """Outcome of a single readiness check."""

    ready: bool
    reason: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls) -> "Verdict":
        return cls(ready=True)

    @classmethod
    def not_yet(cls, reason: str, error: Optional[BaseException] = None) -> "Verdict":
        return cls(ready=False, reason=reason, error=error)


@runtime_checkable
class WaitTarget(Protocol):
    """The observable surface of a container that strategies may use."""

    async def host(self) -> str: ...

    async def mapped_port(self, port: int | str) -> int: ...

    async def ports(self) -> Mapping[str, Any]: ...

    async def logs(self) -> bytes: ...

    async def state(self) -> Any: ...

    def reset_cache(self) -> None: ...


class WaitStrategy(ABC):
    """
    Base class for readiness strategies.

    Strategies are immutable once attached to a request: the ``with_*``
    helpers return modified copies.
    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if startup_timeout < 0:
            raise ValueError("startup_timeout must not be negative")
        self._poll_interval = float(poll_interval)
        self._startup_timeout = float(startup_timeout)

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def startup_timeout(self) -> float:
        return self._startup_timeout

    def with_poll_interval(self, seconds: float) -> "WaitStrategy":
        if seconds <= 0:
            raise ValueError("poll_interval must be positive")
        clone = copy.copy(self)
        clone._poll_interval = float(seconds)
        return clone

    def with_startup_timeout(self, seconds: float) -> "WaitStrategy":
        if seconds < 0:
            raise ValueError("startup_timeout must not be negative")
        clone = copy.copy(self)
        clone._startup_timeout = float(seconds)
        return clone

    @abstractmethod
    async def check(self, target: WaitTarget) -> Verdict:
        """Evaluate readiness once against the target's current state."""

    async def wait_until_ready(
        self,
        target: WaitTarget,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        await wait_until_ready(self, target, cancellation)

    def describe(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"<{self.describe()} poll={self.poll_interval}s timeout={self.startup_timeout}s>"


async def _check_or_cancel(
    strategy: WaitStrategy,
    target: WaitTarget,
    timeout: float,
    cancellation: CancellationToken,
) -> Verdict:
    """Run one check, abandoning it as soon as ``cancellation`` fires."""
    check = asyncio.ensure_future(strategy.check(target))
    cancelled = asyncio.ensure_future(cancellation.wait())
    try:
        done, _ = await asyncio.wait(
            {check, cancelled},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        pending = [task for task in (check, cancelled) if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    if check in done:
        return check.result()
    if cancelled in done:
        raise WaitCancelledError(f"wait for {strategy.describe()} was cancelled")
    raise asyncio.TimeoutError()


async def wait_until_ready(
    strategy: WaitStrategy,
    target: WaitTarget,
    cancellation: Optional[CancellationToken] = None,
) -> None:
    """
    Poll ``strategy`` against ``target`` until it reports ready.

    Args:
        strategy: The readiness strategy to evaluate.
        target: Container handle (or anything implementing WaitTarget).
        cancellation: Optional token; cancelling it aborts the wait.

    Raises:
        StartupTimeoutError: The deadline passed; carries the last verdict.
        WaitCancelledError: The cancellation token was cancelled.
        StrategyError: A check reported an unrecoverable failure.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + strategy.startup_timeout
    last = Verdict.not_yet("not checked yet")
    attempts = 0

    while True:
        if cancellation is not None and cancellation.is_cancelled():
            log.warning("Wait for %s cancelled after %d checks", strategy.describe(), attempts)
            raise WaitCancelledError(f"wait for {strategy.describe()} was cancelled")

        target.reset_cache()
        attempts += 1
        # A check may overrun the deadline by at most one poll interval
        remaining = deadline - loop.time()
        timeout = remaining if remaining > 0 else strategy.poll_interval
        try:
            if cancellation is None:
                last = await asyncio.wait_for(strategy.check(target), timeout=timeout)
            else:
                last = await _check_or_cancel(strategy, target, timeout, cancellation)
        except asyncio.TimeoutError as e:
            last = Verdict.not_yet("check did not complete in time", e)
        except WaitCancelledError:
            log.warning("Wait for %s cancelled during check %d", strategy.describe(), attempts)
            raise

        if last.ready:
            log.debug("%s ready after %d checks", strategy.describe(), attempts)
            return

        log.debug("%s not ready (attempt %d): %s", strategy.describe(), attempts, last.reason)

        remaining = deadline - loop.time()
        if remaining <= 0:
            log.warning(
                "%s not ready within %.1fs: %s",
                strategy.describe(),
                strategy.startup_timeout,
                last.reason,
            )
            raise StartupTimeoutError(
                f"{strategy.describe()} not ready within {strategy.startup_timeout}s: {last.reason}",
                last_verdict=last,
            ) from last.error

        delay = min(strategy.poll_interval, remaining)
        if cancellation is not None:
            try:
                await cancellation.sleep(delay)
            except WaitCancelledError:
                log.warning("Wait for %s cancelled after %d checks", strategy.describe(), attempts)
                raise WaitCancelledError(f"wait for {strategy.describe()} was cancelled") from None
        else:
            await asyncio.sleep(delay)
