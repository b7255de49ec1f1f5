"""
Handle over a single Docker container.

Runtime state comes from ``docker inspect`` and is cached on the handle
until :meth:`DockerContainer.reset_cache` (or a lifecycle call) drops it.
A handle is not safe for concurrent use from several tasks; the provider
and its Docker client are.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from docker.errors import APIError, NotFound

from testharbor.concurrency.cancellation import CancellationToken
from testharbor.config.logging_config import get_logger
from testharbor.containers.ports import Port
from testharbor.errors import CollaboratorError, NotFoundError
from testharbor.wait.strategy import WaitStrategy, wait_until_ready

if TYPE_CHECKING:
    from testharbor.containers.provider import DockerProvider

log = get_logger(__name__)


@dataclass(frozen=True)
class ContainerState:
    """The ``State`` section of ``docker inspect``."""

    status: str
    running: bool
    exit_code: int = 0
    error: str = ""
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @classmethod
    def from_attrs(cls, state: Dict[str, Any]) -> "ContainerState":
        return cls(
            status=state.get("Status", "unknown"),
            running=bool(state.get("Running", False)),
            exit_code=int(state.get("ExitCode") or 0),
            error=state.get("Error") or "",
            started_at=state.get("StartedAt"),
            finished_at=state.get("FinishedAt"),
        )


class DockerContainer:
    """A container created (or adopted) through a :class:`DockerProvider`."""

    def __init__(
        self,
        container_id: str,
        provider: "DockerProvider",
        wait_for: Optional[WaitStrategy] = None,
        skip_reaper: bool = False,
    ):
        self._id = container_id
        self._provider = provider
        self._wait_for = wait_for
        self._skip_reaper = skip_reaper
        self._raw: Optional[Dict[str, Any]] = None

    @property
    def id(self) -> str:
        return self._id

    @property
    def provider(self) -> "DockerProvider":
        return self._provider

    @property
    def session_id(self) -> str:
        return self._provider.session_id

    @property
    def wait_for(self) -> Optional[WaitStrategy]:
        return self._wait_for

    @property
    def skip_reaper(self) -> bool:
        return self._skip_reaper

    def __repr__(self) -> str:
        return f"<DockerContainer {self._id[:12]}>"

    # ---- Cached runtime state ----

    def reset_cache(self) -> None:
        """Forget the cached inspect result; the next accessor fetches anew."""
        self._raw = None

    async def inspect(self) -> Dict[str, Any]:
        if self._raw is None:
            self._raw = await self._provider.run_blocking(
                "inspect", self._id, self._provider.client.api.inspect_container, self._id
            )
        return self._raw

    async def name(self) -> str:
        return (await self.inspect()).get("Name", "").lstrip("/")

    async def image(self) -> str:
        return (await self.inspect()).get("Image", "")

    async def labels(self) -> Dict[str, str]:
        return (await self.inspect()).get("Config", {}).get("Labels") or {}

    async def ports(self) -> Dict[str, Any]:
        """Port map of the container, e.g. ``{"80/tcp": [{"HostIp": ..., "HostPort": "32768"}]}``."""
        return (await self.inspect()).get("NetworkSettings", {}).get("Ports") or {}

    async def state(self) -> ContainerState:
        """Current state; always fetched fresh."""
        self.reset_cache()
        return ContainerState.from_attrs((await self.inspect()).get("State") or {})

    async def is_running(self) -> bool:
        return (await self.state()).running

    # ---- Endpoints ----

    async def host(self) -> str:
        return await self._provider.daemon_host()

    async def mapped_port(self, port: int | str | Port) -> int:
        """
        Host port a container port is published on.

        Raises:
            NotFoundError: If no mapping matches the port (and protocol, when given).
        """
        wanted = Port.parse(port)
        for key, bindings in (await self.ports()).items():
            number, _, proto = key.partition("/")
            if int(number) != wanted.number:
                continue
            if wanted.protocol and proto != wanted.protocol:
                continue
            for binding in bindings or []:
                if binding.get("HostPort"):
                    return int(binding["HostPort"])
        raise NotFoundError(f"port {wanted} is not mapped on container {self._id[:12]}")

    async def port_endpoint(self, port: int | str | Port, scheme: str = "") -> str:
        """``scheme://host:port`` for a container port, or ``host:port`` without a scheme."""
        host = await self.host()
        outer = await self.mapped_port(port)
        prefix = f"{scheme}://" if scheme else ""
        return f"{prefix}{host}:{outer}"

    async def endpoint(self, scheme: str = "") -> str:
        """Endpoint of the lowest exposed port."""
        keys = list(await self.ports())
        if not keys:
            raise NotFoundError(f"container {self._id[:12]} exposes no ports")
        first = min(keys, key=lambda k: int(k.partition("/")[0]))
        return await self.port_endpoint(first, scheme)

    # ---- Output ----

    async def logs(self, tail: Optional[int] = None) -> bytes:
        """Snapshot of stdout and stderr."""
        return await self._provider.run_blocking(
            "logs",
            self._id,
            self._provider.client.api.logs,
            self._id,
            stdout=True,
            stderr=True,
            tail=tail if tail is not None else "all",
        )

    # ---- Lifecycle ----

    async def start(self, cancellation: Optional[CancellationToken] = None) -> None:
        """
        Start the container and wait until its readiness strategy passes.

        Raises:
            StartupTimeoutError: The container did not become ready in time.
            WaitCancelledError: The wait was cancelled.
            StrategyError: The readiness check failed permanently.
        """
        await self._provider.run_blocking("start", self._id, self._provider.client.api.start, self._id)
        self.reset_cache()
        log.info("Started container %s", self._id[:12])

        if self._wait_for is not None:
            log.debug("Waiting for container %s: %r", self._id[:12], self._wait_for)
            await wait_until_ready(self._wait_for, self, cancellation)

    async def stop(self, timeout: Optional[int] = None) -> None:
        kwargs = {"timeout": timeout} if timeout is not None else {}
        try:
            await self._provider.run_blocking("stop", self._id, self._provider.client.api.stop, self._id, **kwargs)
        finally:
            self.reset_cache()
        log.info("Stopped container %s", self._id[:12])

    async def remove(self, force: bool = False) -> None:
        try:
            await self._provider.run_blocking(
                "remove",
                self._id,
                self._provider.client.api.remove_container,
                self._id,
                force=force,
            )
        finally:
            self.reset_cache()
        log.info("Removed container %s", self._id[:12])

    async def terminate(self) -> None:
        """Force-remove the container and its volumes; a missing container is fine."""

        def _terminate() -> None:
            try:
                self._provider.client.api.remove_container(self._id, v=True, force=True)
            except NotFound:
                log.debug("Container %s already gone", self._id[:12])
            except APIError as e:
                # 409: removal already in progress (e.g. auto-remove after stop)
                if e.status_code == 409:
                    log.debug("Container %s already being removed", self._id[:12])
                    return
                raise

        try:
            await self._provider.run_blocking("terminate", self._id, _terminate)
        except CollaboratorError:
            log.error("Failed to terminate container %s", self._id[:12])
            raise
        finally:
            self.reset_cache()
        log.info("Terminated container %s", self._id[:12])

    async def __aenter__(self) -> "DockerContainer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.terminate()
