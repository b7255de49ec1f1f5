"""
Backoff retries for flaky Docker and registry round trips.

Two callers lean on this: image pulls, which retry only registry hiccups
(:class:`TransientCollaboratorError`), and reaper registration, which keeps
redialing a sidecar whose port is published before its server listens.
"""

import asyncio
import random
from collections.abc import Callable
from typing import Any, Coroutine, TypeVar

from testharbor.config.logging_config import get_logger

log = get_logger(__name__)

T = TypeVar("T")

UNLIMITED = -1


async def retry_with_exponential_backoff(
    func: Callable[[], Coroutine[Any, Any, T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    operation: str = "operation",
) -> T:
    """
    Await ``func()`` until it succeeds, sleeping longer after each failure.

    The n-th retry sleeps ``initial_delay * exponential_base ** n`` seconds,
    capped at ``max_delay`` and scaled by a random factor in [0.5, 1.5) when
    ``jitter`` is on. Exceptions outside ``retryable_exceptions`` are raised
    straight away; the last retryable one is re-raised once ``max_retries``
    retries are used up. ``UNLIMITED`` (-1) retries until the caller's own
    timeout, e.g. an enclosing ``asyncio.wait_for``, gives up.

    Args:
        func: Zero-argument factory returning a fresh coroutine per attempt.
        operation: Label used in log messages, e.g. ``"pull nginx:alpine"``.

    Example:
        await retry_with_exponential_backoff(
            lambda: asyncio.to_thread(pull),
            max_retries=5,
            retryable_exceptions=(TransientCollaboratorError,),
            operation="pull nginx:alpine",
        )
    """
    if max_retries < UNLIMITED:
        raise ValueError("max_retries must be -1 (unlimited) or >= 0")

    delay = initial_delay
    retries = 0

    while True:
        try:
            return await func()
        except retryable_exceptions as e:
            if max_retries != UNLIMITED and retries >= max_retries:
                log.error("%s failed after %d retries: %s", operation, retries, e)
                raise

            pause = delay * random.uniform(0.5, 1.5) if jitter else delay
            log.warning("%s failed (attempt %d), retrying in %.2fs: %s", operation, retries + 1, pause, e)
            await asyncio.sleep(pause)

            delay = min(delay * exponential_base, max_delay)
            retries += 1


__all__ = ["UNLIMITED", "retry_with_exponential_backoff"]
