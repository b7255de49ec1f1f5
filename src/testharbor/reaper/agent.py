"""
The reaper sidecar agent.

Sessions connect over TCP, register label filters and keep the connection
open. When the last connection goes away (clean exit, crash and network
failure all look the same from here) and nobody reconnects within the
grace period, every registered filter is swept and the agent stops.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Mapping, Optional, Sequence

from testharbor.config.logging_config import get_logger
from testharbor.reaper.protocol import ACK, MAX_LINE, ProtocolError, decode_filter
from testharbor.reaper.sweeper import SweepReport

log = get_logger(__name__)

DEFAULT_PORT = 8080

SweepFn = Callable[[Sequence[Mapping[str, str]]], SweepReport]


class ReaperAgent:
    """
    TCP server that sweeps registered filters once its sessions are gone.

    Args:
        sweep_fn: Called in a worker thread with every registered filter.
        host: Interface to listen on.
        port: Port to listen on; 0 picks a free one (see ``bound_port``).
        connection_timeout: Give up if no session connects within this many seconds.
        reconnection_timeout: Grace period after the last disconnect.
    """

    def __init__(
        self,
        sweep_fn: SweepFn,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        connection_timeout: float = 60.0,
        reconnection_timeout: float = 10.0,
    ):
        self.sweep_fn = sweep_fn
        self.host = host
        self.port = port
        self.connection_timeout = connection_timeout
        self.reconnection_timeout = reconnection_timeout
        self.filters: list[dict[str, str]] = []
        self.bound_port: Optional[int] = None
        self._connections = 0
        self._changed: Optional[asyncio.Event] = None
        self._first_connection: Optional[asyncio.Event] = None
        self._started: Optional[asyncio.Event] = None

    @property
    def connections(self) -> int:
        return self._connections

    async def wait_started(self) -> int:
        """Wait until the server listens; returns the bound port."""
        while self._started is None:
            await asyncio.sleep(0.01)
        await self._started.wait()
        assert self.bound_port is not None
        return self.bound_port

    def _register(self, labels: dict[str, str]) -> None:
        if labels not in self.filters:
            self.filters.append(labels)
            log.info("Registered filter %s", labels)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        assert self._changed is not None and self._first_connection is not None
        peer = writer.get_extra_info("peername")
        self._connections += 1
        self._first_connection.set()
        self._changed.set()
        log.info("Session connected from %s (%d active)", peer, self._connections)
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                try:
                    labels = decode_filter(line)
                except ProtocolError as e:
                    log.warning("Rejected registration from %s: %s", peer, e)
                    writer.write(b"ERROR\n")
                    await writer.drain()
                    continue
                self._register(labels)
                writer.write(ACK)
                await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError, asyncio.LimitOverrunError) as e:
            log.info("Connection from %s failed: %r", peer, e)
        finally:
            self._connections -= 1
            self._changed.set()
            log.info("Session disconnected from %s (%d active)", peer, self._connections)
            writer.close()

    async def _wait_until(self, predicate: Callable[[], bool]) -> None:
        assert self._changed is not None
        while not predicate():
            self._changed.clear()
            await self._changed.wait()

    async def serve(self) -> Optional[SweepReport]:
        """
        Run until sessions have come and gone, then sweep.

        Returns:
            The sweep report, or ``None`` if no session ever connected.
        """
        self._changed = asyncio.Event()
        self._first_connection = asyncio.Event()
        self._started = asyncio.Event()

        server = await asyncio.start_server(self._handle, self.host, self.port, limit=MAX_LINE)
        self.bound_port = server.sockets[0].getsockname()[1]
        log.info("Reaper listening on %s:%s", self.host, self.bound_port)
        self._started.set()

        async with server:
            try:
                await asyncio.wait_for(self._first_connection.wait(), timeout=self.connection_timeout)
            except asyncio.TimeoutError:
                log.warning("No session connected within %.0fs, exiting", self.connection_timeout)
                return None

            while True:
                await self._wait_until(lambda: self._connections == 0)
                try:
                    await asyncio.wait_for(
                        self._wait_until(lambda: self._connections > 0),
                        timeout=self.reconnection_timeout,
                    )
                except asyncio.TimeoutError:
                    break

        log.info("All sessions gone, sweeping %d filters", len(self.filters))
        report = await asyncio.to_thread(self.sweep_fn, list(self.filters))
        log.info("Sweep finished: %s", report.summary())
        return report
