"""
Docker provider: creates containers and owns the session they belong to.

Blocking docker SDK calls run in worker threads via ``asyncio.to_thread``;
every failure is re-raised as a testharbor error naming the operation and
its target.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Dict, List, Optional, TypeVar

from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.types import Mount
from docker.utils import parse_repository_tag
from requests.exceptions import RequestException

import docker
from testharbor.concurrency.retry import retry_with_exponential_backoff
from testharbor.config.environment import Environment
from testharbor.config.logging_config import get_logger
from testharbor.containers.container import DockerContainer
from testharbor.containers.host import daemon_url_for, resolve_daemon_host
from testharbor.containers.ports import to_docker_ports
from testharbor.containers.request import (
    ContainerRequest,
    GenericContainerRequest,
    ProviderType,
    RegistryCredentials,
)
from testharbor.errors import (
    CollaboratorError,
    ContainerStartError,
    NotFoundError,
    TransientCollaboratorError,
)
from testharbor.session import LABEL_MANAGED, LABEL_SESSION_ID, labels_for, merge_labels, new_session_id

log = get_logger(__name__)

T = TypeVar("T")


def _is_transient(error: Exception) -> bool:
    """Registry and network failures worth retrying while pulling an image."""
    if isinstance(error, RequestException):
        return True
    if isinstance(error, APIError) and not isinstance(error, NotFound):
        status = error.status_code
        return status is None or status >= 500 or status == 429
    return False


class DockerProvider:
    """
    Creates and looks up containers on one Docker daemon for one session.

    The provider is shared by all the containers it creates; closing it
    releases the reaper liveness channel, after which the sidecar sweeps
    whatever guarded containers are left.
    """

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        session_id: Optional[str] = None,
    ):
        self.client = client if client is not None else docker.from_env()
        self.session_id = session_id or new_session_id()
        self._host: Optional[str] = None
        self._host_lock = threading.Lock()
        self._reaper_lock = threading.Lock()
        self._reaper = None

    def __repr__(self) -> str:
        return f"<DockerProvider session={self.session_id}>"

    # ---- Collaborator plumbing ----

    async def run_blocking(
        self,
        operation: str,
        target: Optional[str],
        fn: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Run a blocking docker SDK call in a worker thread.

        Raises:
            NotFoundError: The daemon reported the target missing.
            CollaboratorError: Any other daemon or transport failure.
        """
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except NotFound as e:
            raise NotFoundError(f"{operation} '{target}': {e.explanation or e}") from e
        except APIError as e:
            raise CollaboratorError(operation, target, str(e.explanation or e)) from e
        except (DockerException, RequestException) as e:
            raise CollaboratorError(operation, target, str(e)) from e

    # ---- Host resolution ----

    def _resolve_host(self) -> str:
        with self._host_lock:
            if self._host is None:
                self._host = resolve_daemon_host(
                    daemon_url_for(self.client.api.base_url),
                    override=Environment.get_host_override(),
                )
                log.debug("Container host resolved to %s", self._host)
            return self._host

    async def daemon_host(self) -> str:
        """Host (name or IP) under which published container ports are reachable."""
        if self._host is not None:
            return self._host
        return await asyncio.to_thread(self._resolve_host)

    # ---- Reaper ----

    def get_reaper(self):
        """The reaper for this provider's session (created on first use, not connected)."""
        from testharbor.reaper.client import Reaper

        with self._reaper_lock:
            if self._reaper is None:
                self._reaper = Reaper(self, self.session_id)
            return self._reaper

    async def sweep(self, include_unguarded: bool = False):
        """
        Remove this session's resources now, from this process.

        Args:
            include_unguarded: Also remove containers that opted out of
                guarded cleanup (they carry the session label only).
        """
        from testharbor.reaper.sweeper import sweep

        if include_unguarded:
            ownership = {LABEL_MANAGED: "true", LABEL_SESSION_ID: self.session_id}
        else:
            ownership = labels_for(self.session_id, guarded=True)
        report = await asyncio.to_thread(sweep, self.client, [ownership])
        log.info("Swept session %s: %s", self.session_id, report.summary())
        return report

    # ---- Images ----

    async def _ensure_image(self, image: str, credentials: Optional[RegistryCredentials]) -> None:
        try:
            await asyncio.to_thread(self.client.images.get, image)
            return
        except ImageNotFound:
            pass
        except (APIError, DockerException, RequestException) as e:
            raise CollaboratorError("inspect image", image, str(e)) from e

        repository, tag = parse_repository_tag(image)
        auth_config = credentials.auth_config() if credentials else None

        def _pull() -> None:
            try:
                self.client.images.pull(repository, tag=tag or "latest", auth_config=auth_config)
            except (APIError, DockerException, RequestException) as e:
                if _is_transient(e):
                    raise TransientCollaboratorError("pull", image, str(e)) from e
                raise CollaboratorError("pull", image, str(e)) from e

        log.info("Pulling image %s", image)
        await retry_with_exponential_backoff(
            lambda: asyncio.to_thread(_pull),
            max_retries=Environment.get_pull_max_retries(),
            initial_delay=1.0,
            max_delay=30.0,
            retryable_exceptions=(TransientCollaboratorError,),
            operation=f"pull {image}",
        )
        log.info("Pulled image %s", image)

    # ---- Containers ----

    async def create_container(self, request: ContainerRequest) -> DockerContainer:
        """
        Create (but do not start) a container.

        Unless the request opts out with ``skip_reaper``, the session is
        registered with the reaper sidecar before the container exists.

        Raises:
            ConfigurationError: The request's port specifications are malformed.
            RegistrationFailedError: The reaper could not be engaged; nothing was created.
            CollaboratorError: Docker refused to pull or create.
        """
        bindings = request.port_bindings()

        if not request.skip_reaper:
            await self.get_reaper().connect()

        labels = merge_labels(request.labels, labels_for(self.session_id, guarded=not request.skip_reaper))
        await self._ensure_image(request.image, request.registry_credentials)

        mounts = [Mount(target=target, source=source, type="bind") for source, target in request.bind_mounts.items()]
        container = await self.run_blocking(
            "create",
            request.name or request.image,
            self.client.containers.create,
            request.image,
            command=request.cmd,
            entrypoint=request.entrypoint,
            environment=dict(request.env),
            ports=to_docker_ports(bindings),
            labels=labels,
            mounts=mounts,
            name=request.name,
            auto_remove=not request.dont_remove,
            privileged=request.privileged,
        )
        log.info(
            "Created container %s from %s (session %s%s)",
            container.id[:12],
            request.image,
            self.session_id,
            ", unguarded" if request.skip_reaper else "",
        )
        return DockerContainer(
            container.id,
            self,
            wait_for=request.wait_for,
            skip_reaper=request.skip_reaper,
        )

    async def run_container(self, request: ContainerRequest) -> DockerContainer:
        """
        Create and start a container.

        Raises:
            ContainerStartError: The container was created but did not start or
                become ready; it is attached to the error for inspection.
        """
        container = await self.create_container(request)
        await start_or_raise(container)
        return container

    async def list_containers(self, all: bool = True) -> List[DockerContainer]:
        summaries: List[Dict[str, Any]] = await self.run_blocking(
            "list", None, self.client.api.containers, all=all
        )
        return [DockerContainer(summary["Id"], self) for summary in summaries]

    async def container_exists(self, name: str) -> bool:
        """Whether a container with exactly this name exists (running or not)."""
        summaries: List[Dict[str, Any]] = await self.run_blocking(
            "list", name, self.client.api.containers, all=True, filters={"name": name}
        )
        wanted = "/" + name.lstrip("/")
        return any(wanted in (summary.get("Names") or []) for summary in summaries)

    async def from_existing(self, name_or_id: str) -> DockerContainer:
        """
        Wrap an already existing container.

        Raises:
            NotFoundError: No such container.
        """
        attrs = await self.run_blocking(
            "inspect", name_or_id, self.client.api.inspect_container, name_or_id
        )
        return DockerContainer(attrs["Id"], self)

    # ---- Shutdown ----

    async def close(self) -> None:
        """Release the reaper liveness channel and the Docker client."""
        if self._reaper is not None:
            await self._reaper.close()
        await asyncio.to_thread(self.client.close)

    async def __aenter__(self) -> "DockerProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def start_or_raise(container: DockerContainer) -> None:
    try:
        await container.start()
    except Exception as e:
        log.error("Container %s failed to start: %s", container.id[:12], e)
        raise ContainerStartError(f"failed to start container {container.id[:12]}: {e}", container) from e


_default_providers: Dict[ProviderType, DockerProvider] = {}
_default_lock = threading.Lock()


def get_default_provider(provider_type: ProviderType = ProviderType.DOCKER) -> DockerProvider:
    """Process-wide provider for a runtime, so one test run shares one session."""
    with _default_lock:
        provider = _default_providers.get(provider_type)
        if provider is None:
            if provider_type is not ProviderType.DOCKER:
                raise ValueError(f"Unsupported provider type: {provider_type}")
            provider = DockerProvider()
            _default_providers[provider_type] = provider
        return provider


async def generic_container(request: GenericContainerRequest) -> DockerContainer:
    """
    Create a container through the requested provider, starting it if asked.

    Raises:
        ContainerStartError: ``started`` was set and the container failed to
            start or become ready.
    """
    provider = request.provider_type.get_provider()
    container = await provider.create_container(request.request)
    if request.started:
        await start_or_raise(container)
    return container


async def use_existing(name: str, provider_type: ProviderType = ProviderType.DOCKER) -> DockerContainer:
    """Reuse an existing container by name through the requested provider."""
    return await provider_type.get_provider().from_existing(name)
