"""
Readiness strategies.

Attach one to a ``ContainerRequest`` through ``wait_for`` and
``DockerContainer.start`` only returns once the container is ready.
"""

from testharbor.wait.composite import AllOf, AnyOf, for_all, for_any
from testharbor.wait.http import ForHTTP
from testharbor.wait.log import ForLog
from testharbor.wait.port import ForListeningPort
from testharbor.wait.strategy import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STARTUP_TIMEOUT,
    Verdict,
    WaitStrategy,
    WaitTarget,
    wait_until_ready,
)

__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_STARTUP_TIMEOUT",
    "AllOf",
    "AnyOf",
    "ForHTTP",
    "ForListeningPort",
    "ForLog",
    "Verdict",
    "WaitStrategy",
    "WaitTarget",
    "for_all",
    "for_any",
    "wait_until_ready",
]
