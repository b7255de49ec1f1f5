from typing import Callable, Mapping, Optional

import httpx

from testharbor.errors import NotFoundError, StrategyError
from testharbor.wait.strategy import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STARTUP_TIMEOUT,
    Verdict,
    WaitStrategy,
    WaitTarget,
)

REQUEST_TIMEOUT = 5.0


def _status_ok(status: int) -> bool:
    return status == 200


class ForHTTP(WaitStrategy):
    """
    Ready once an HTTP request against the container succeeds.

    Args:
        path: Request path, e.g. ``"/health"``.
        port: Container port to target. Defaults to the lowest exposed TCP port.
        method: HTTP method.
        headers: Extra request headers.
        body: Optional request body.
        use_tls: Use ``https`` instead of ``http``.
        allow_insecure: Skip TLS certificate verification.
        status_predicate: Accepts the status code; defaults to ``== 200``.
        response_predicate: Accepts the decoded response body.
    """

    def __init__(
        self,
        path: str = "/",
        port: int | str | None = None,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes | str] = None,
        use_tls: bool = False,
        allow_insecure: bool = False,
        status_predicate: Callable[[int], bool] = _status_ok,
        response_predicate: Optional[Callable[[str], bool]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
    ):
        super().__init__(poll_interval, startup_timeout)
        if not path.startswith("/"):
            path = "/" + path
        self.path = path
        self.port = port
        self.method = method.upper()
        self.headers = dict(headers or {})
        self.body = body
        self.use_tls = use_tls
        self.allow_insecure = allow_insecure
        self.status_predicate = status_predicate
        self.response_predicate = response_predicate

    def describe(self) -> str:
        return f"ForHTTP({self.method} {self.path}, port={self.port})"

    async def _target_port(self, target: WaitTarget) -> int | str:
        if self.port is not None:
            return self.port

        tcp_ports = []
        for key in (await target.ports()) or {}:
            number, _, proto = key.partition("/")
            if proto in ("", "tcp"):
                tcp_ports.append(int(number))
        if not tcp_ports:
            raise StrategyError("container exposes no TCP port to probe over HTTP")
        return f"{min(tcp_ports)}/tcp"

    async def check(self, target: WaitTarget) -> Verdict:
        port = await self._target_port(target)
        try:
            host_port = await target.mapped_port(port)
        except NotFoundError as e:
            return Verdict.not_yet(f"port {port} is not published yet", e)
        host = await target.host()

        scheme = "https" if self.use_tls else "http"
        url = f"{scheme}://{host}:{host_port}{self.path}"
        try:
            async with httpx.AsyncClient(
                verify=not self.allow_insecure,
                trust_env=False,
                timeout=REQUEST_TIMEOUT,
            ) as client:
                response = await client.request(
                    self.method,
                    url,
                    headers=self.headers,
                    content=self.body,
                )
        except httpx.InvalidURL as e:
            raise StrategyError(f"invalid readiness URL {url}: {e}") from e
        except httpx.HTTPError as e:
            return Verdict.not_yet(f"{self.method} {url} failed: {e!r}", e)

        if not self.status_predicate(response.status_code):
            return Verdict.not_yet(f"{self.method} {url} returned status {response.status_code}")
        if self.response_predicate is not None and not self.response_predicate(response.text):
            return Verdict.not_yet(f"{self.method} {url} response did not match")
        return Verdict.ok()
