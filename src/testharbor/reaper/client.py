"""
Session side of the reaper protocol.

The reaper is a sidecar container that watches a TCP connection held open
by this process. Once registered, the session's label filter is swept by
the sidecar as soon as the connection drops, whether the process exited
normally, crashed, or was killed.

If the test process and the sidecar die at the same time nobody is left to
sweep; that leak window is inherent to the design.
"""

from __future__ import annotations

import asyncio
import enum
import socket
import threading
import weakref
from typing import TYPE_CHECKING, Optional

from testharbor.concurrency.retry import UNLIMITED, retry_with_exponential_backoff
from testharbor.config.environment import Environment
from testharbor.config.logging_config import get_logger
from testharbor.containers.container import DockerContainer
from testharbor.containers.request import ContainerRequest
from testharbor.errors import CollaboratorError, NotFoundError, RegistrationFailedError, TestHarborError
from testharbor.reaper.protocol import ACK, MAX_LINE, encode_filter
from testharbor.session import LABEL_MANAGED, LABEL_SESSION_ID, LABEL_SIDECAR, labels_for, reaper_name
from testharbor.wait.port import ForListeningPort

if TYPE_CHECKING:
    from testharbor.containers.provider import DockerProvider

log = get_logger(__name__)

REAPER_PORT = "8080/tcp"
DOCKER_SOCKET_TARGET = "/var/run/docker.sock"
SOCKET_TIMEOUT = 5.0


class ReaperState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    REGISTERING = "registering"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RELEASED = "released"


class Reaper:
    """
    Registration of one session with its reaper sidecar.

    Example:
        reaper = provider.get_reaper()
        await reaper.connect()   # sidecar running, filter acknowledged
        ...                      # create guarded containers
        await reaper.close()     # sidecar sweeps after its grace period
    """

    def __init__(
        self,
        provider: "DockerProvider",
        session_id: str,
        image: Optional[str] = None,
        connect_timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.session_id = session_id
        self.image = image or Environment.get_reaper_image()
        self.connect_timeout = connect_timeout if connect_timeout is not None else Environment.get_reaper_connect_timeout()
        self.state = ReaperState.UNINITIALIZED
        self._sock: Optional[socket.socket] = None
        self._lock = threading.Lock()
        self._connect_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = weakref.WeakKeyDictionary()

    @property
    def labels(self) -> dict[str, str]:
        """Filter the sidecar sweeps on once the session disconnects."""
        return labels_for(self.session_id, guarded=True)

    @property
    def name(self) -> str:
        return reaper_name(self.session_id)

    def sidecar_request(self) -> ContainerRequest:
        return ContainerRequest(
            image=self.image,
            name=self.name,
            exposed_ports=[REAPER_PORT],
            bind_mounts={Environment.get_docker_socket(): DOCKER_SOCKET_TARGET},
            labels={
                LABEL_MANAGED: "true",
                LABEL_SESSION_ID: self.session_id,
                LABEL_SIDECAR: "true",
            },
            skip_reaper=True,
            wait_for=ForListeningPort(REAPER_PORT, startup_timeout=self.connect_timeout),
        )

    async def _find_sidecar(self) -> Optional[DockerContainer]:
        try:
            sidecar = await self.provider.from_existing(self.name)
        except NotFoundError:
            return None
        sidecar = DockerContainer(sidecar.id, self.provider, wait_for=self.sidecar_request().wait_for, skip_reaper=True)
        if not await sidecar.is_running():
            await sidecar.start()
        return sidecar

    async def ensure(self) -> DockerContainer:
        """
        Return the running sidecar for this session, creating it if needed.

        Concurrent creators race on the well-known sidecar name; the loser
        gets a 409 conflict and reuses the winner's sidecar.
        """
        sidecar = await self._find_sidecar()
        if sidecar is not None:
            log.debug("Reusing reaper sidecar %s", sidecar.id[:12])
            return sidecar

        try:
            sidecar = await self.provider.create_container(self.sidecar_request())
        except CollaboratorError as e:
            if e.status_code != 409:
                raise
            log.debug("Reaper sidecar %s created concurrently, reusing it", self.name)
            existing = await self._find_sidecar()
            if existing is None:
                raise
            return existing

        await sidecar.start()
        log.info("Started reaper sidecar %s for session %s", sidecar.id[:12], self.session_id)
        return sidecar

    def _register_once(self, host: str, port: int) -> None:
        sock = socket.create_connection((host, port), timeout=SOCKET_TIMEOUT)
        try:
            sock.sendall(encode_filter(self.labels))
            response = b""
            while not response.endswith(b"\n"):
                chunk = sock.recv(MAX_LINE)
                if not chunk:
                    raise ConnectionError("reaper closed the connection before acknowledging")
                response += chunk
            if response != ACK:
                raise ConnectionError(f"unexpected reaper response {response!r}")
        except BaseException:
            sock.close()
            raise

        sock.settimeout(None)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        # An attempt abandoned by register()'s timeout can still land here
        with self._lock:
            if self.state is ReaperState.RELEASED:
                stale = sock
            else:
                stale, self._sock = self._sock, sock
        if stale is not None:
            stale.close()

    async def register(self, host: str, port: int) -> None:
        """
        Send the session filter to a sidecar at ``host:port`` and wait for its ACK.

        Raises:
            RegistrationFailedError: No acknowledgement within the connect timeout.
        """
        try:
            await asyncio.wait_for(
                retry_with_exponential_backoff(
                    lambda: asyncio.to_thread(self._register_once, host, port),
                    max_retries=UNLIMITED,
                    initial_delay=0.1,
                    max_delay=1.0,
                    jitter=False,
                    retryable_exceptions=(OSError,),
                    operation=f"register session {self.session_id}",
                ),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise RegistrationFailedError(
                f"reaper at {host}:{port} did not acknowledge session {self.session_id} "
                f"within {self.connect_timeout}s"
            ) from e

    def _connect_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        with self._lock:
            lock = self._connect_locks.get(loop)
            if lock is None:
                lock = self._connect_locks[loop] = asyncio.Lock()
            return lock

    async def connect(self) -> None:
        """
        Make sure the sidecar runs and has acknowledged this session.

        Idempotent once connected; concurrent callers wait for the first one.

        Raises:
            RegistrationFailedError: The sidecar could not be started or reached.
        """
        async with self._connect_lock():
            if self.state is ReaperState.CONNECTED:
                return
            if self.state is ReaperState.RELEASED:
                raise RegistrationFailedError(f"reaper for session {self.session_id} was already released")

            self.state = ReaperState.REGISTERING
            try:
                sidecar = await self.ensure()
                host = await sidecar.host()
                port = await sidecar.mapped_port(REAPER_PORT)
                await self.register(host, port)
            except RegistrationFailedError:
                self.state = ReaperState.DISCONNECTED
                raise
            except TestHarborError as e:
                self.state = ReaperState.DISCONNECTED
                raise RegistrationFailedError(
                    f"could not engage reaper for session {self.session_id}: {e}"
                ) from e

            self.state = ReaperState.CONNECTED
            log.info("Session %s registered with reaper %s:%s", self.session_id, host, port)

    async def close(self) -> None:
        """Close the liveness channel; the sidecar then sweeps this session."""
        with self._lock:
            sock, self._sock = self._sock, None
            self.state = ReaperState.RELEASED
        if sock is not None:
            await asyncio.to_thread(sock.close)
            log.info("Released reaper connection for session %s", self.session_id)
