"""
Error taxonomy for testharbor.

Every error raised by the library derives from :class:`TestHarborError` so
callers can catch the whole family at once, while the concrete subclasses
keep timeouts, cancellations and collaborator failures distinguishable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from testharbor.reaper.sweeper import SweepReport
    from testharbor.wait.strategy import Verdict


class TestHarborError(Exception):
    """Base class for all testharbor errors."""

    # Keep pytest from collecting the class when imported into test modules.
    __test__ = False


class NotFoundError(TestHarborError):
    """A port mapping, container or other named resource does not exist."""


class ConfigurationError(TestHarborError, ValueError):
    """A container request or setting is malformed."""


class StrategyError(TestHarborError):
    """A readiness check failed in a way that polling again cannot fix."""


class StartupTimeoutError(TestHarborError, TimeoutError):
    """A readiness strategy did not report ready before its deadline."""

    def __init__(self, message: str, last_verdict: Optional["Verdict"] = None):
        super().__init__(message)
        self.last_verdict = last_verdict


class WaitCancelledError(TestHarborError):
    """A readiness wait was aborted by its caller."""


class RegistrationFailedError(TestHarborError):
    """The session could not be registered with the reaper sidecar."""


class CollaboratorError(TestHarborError):
    """
    The container runtime rejected an operation.

    Attributes:
        operation: Name of the attempted operation (e.g. ``"create"``).
        target: Container id, name or image the operation was aimed at.
    """

    def __init__(self, operation: str, target: Optional[str], message: str):
        self.operation = operation
        self.target = target
        where = f" '{target}'" if target else ""
        super().__init__(f"{operation}{where} failed: {message}")

    @property
    def status_code(self) -> Optional[int]:
        """HTTP status of the underlying Docker API error, when there is one."""
        cause = self.__cause__
        return getattr(cause, "status_code", None)


class TransientCollaboratorError(CollaboratorError):
    """A registry or network hiccup that is safe to retry."""


class ContainerStartError(TestHarborError):
    """
    A created container failed to start or never became ready.

    The container is left in place so it can be inspected or terminated.
    """

    def __init__(self, message: str, container: Any):
        super().__init__(message)
        self.container = container


class SweepError(TestHarborError):
    """One or more resources could not be removed during a sweep."""

    def __init__(self, message: str, report: "SweepReport"):
        super().__init__(message)
        self.report = report
