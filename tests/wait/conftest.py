"""
Fixtures for readiness strategy tests.

``FakeTarget`` stands in for a container handle: tests mutate its
attributes between polls to simulate a container coming up.
"""

from dataclasses import dataclass
from typing import Any, Mapping

import pytest

from testharbor.errors import NotFoundError


@dataclass
class FakeState:
    status: str = "running"
    running: bool = True


class FakeTarget:
    def __init__(self) -> None:
        self.host_name = "127.0.0.1"
        self.port_map: dict[str, int] = {}
        self.exposed: Mapping[str, Any] = {}
        self.output = b""
        self.current_state = FakeState()
        self.resets = 0

    async def host(self) -> str:
        return self.host_name

    async def mapped_port(self, port: int | str) -> int:
        key = str(port) if "/" in str(port) else f"{port}/tcp"
        if key not in self.port_map:
            raise NotFoundError(f"port {port} is not published")
        return self.port_map[key]

    async def ports(self) -> Mapping[str, Any]:
        return self.exposed

    async def logs(self) -> bytes:
        return self.output

    async def state(self) -> FakeState:
        return self.current_state

    def reset_cache(self) -> None:
        self.resets += 1

    def stop(self) -> None:
        self.current_state = FakeState(status="exited", running=False)


@pytest.fixture
def target() -> FakeTarget:
    return FakeTarget()
