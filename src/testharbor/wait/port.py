import asyncio

from testharbor.errors import NotFoundError, StrategyError
from testharbor.wait.strategy import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STARTUP_TIMEOUT,
    Verdict,
    WaitStrategy,
    WaitTarget,
)

CONNECT_TIMEOUT = 1.0


class ForListeningPort(WaitStrategy):
    """Ready once the mapped host port of ``port`` accepts TCP connections."""

    def __init__(
        self,
        port: int | str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
    ):
        super().__init__(poll_interval, startup_timeout)
        self.port = port

    def describe(self) -> str:
        return f"ForListeningPort({self.port})"

    async def check(self, target: WaitTarget) -> Verdict:
        state = await target.state()
        if not state.running:
            raise StrategyError(f"container is {state.status}, port {self.port} will never listen")

        try:
            host_port = await target.mapped_port(self.port)
        except NotFoundError as e:
            return Verdict.not_yet(f"port {self.port} is not published yet", e)
        host = await target.host()

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, host_port),
                timeout=CONNECT_TIMEOUT,
            )
        except (OSError, asyncio.TimeoutError) as e:
            return Verdict.not_yet(f"{host}:{host_port} not accepting connections: {e!r}", e)

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return Verdict.ok()
