"""
Parsing of Docker-style port specifications.

Supported forms::

    80            80/udp
    8080:80       8080:80/tcp
    127.0.0.1:8080:80/tcp
    127.0.0.1::80
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from testharbor.errors import ConfigurationError

PROTOCOLS = ("tcp", "udp", "sctp")


def _parse_number(value: str, spec: str) -> int:
    if not value.isdigit():
        raise ConfigurationError(f"Invalid port {value!r} in port specification {spec!r}")
    number = int(value)
    if not 1 <= number <= 65535:
        raise ConfigurationError(f"Port {number} out of range in port specification {spec!r}")
    return number


@dataclass(frozen=True)
class Port:
    """A container port with an optional protocol (``None`` matches any)."""

    number: int
    protocol: Optional[str] = None

    @classmethod
    def parse(cls, value: int | str | "Port") -> "Port":
        if isinstance(value, Port):
            return value
        if isinstance(value, int):
            return cls(_parse_number(str(value), str(value)))

        spec = value.strip()
        number, sep, proto = spec.partition("/")
        if sep and proto.lower() not in PROTOCOLS:
            raise ConfigurationError(f"Unknown protocol {proto!r} in port {value!r}")
        return cls(_parse_number(number, spec), proto.lower() if sep else None)

    def key(self) -> str:
        """Docker port-map key, defaulting the protocol to tcp."""
        return f"{self.number}/{self.protocol or 'tcp'}"

    def __str__(self) -> str:
        return f"{self.number}/{self.protocol}" if self.protocol else str(self.number)


@dataclass(frozen=True)
class PortBinding:
    """An exposed container port and how it is published on the host."""

    container_port: int
    protocol: str = "tcp"
    host_port: Optional[int] = None
    host_ip: Optional[str] = None

    @classmethod
    def parse(cls, spec: str) -> "PortBinding":
        if not isinstance(spec, str) or not spec.strip():
            raise ConfigurationError(f"Empty port specification: {spec!r}")
        raw = spec.strip()

        rest, sep, proto = raw.partition("/")
        if sep:
            proto = proto.lower()
            if proto not in PROTOCOLS:
                raise ConfigurationError(f"Unknown protocol {proto!r} in port specification {spec!r}")
        else:
            proto = "tcp"

        host_ip: Optional[str] = None
        host_port: Optional[int] = None
        match rest.rsplit(":", 2) if rest.count(":") <= 2 else None:
            case [container]:
                pass
            case [host, container]:
                host_port = _parse_number(host, spec)
            case [ip, host, container]:
                if not ip:
                    raise ConfigurationError(f"Empty host IP in port specification {spec!r}")
                host_ip = ip
                host_port = _parse_number(host, spec) if host else None
            case _:
                raise ConfigurationError(f"Invalid port specification {spec!r}")

        return cls(_parse_number(container, spec), proto, host_port, host_ip)

    def key(self) -> str:
        return f"{self.container_port}/{self.protocol}"

    def docker_binding(self) -> Any:
        """Value for docker-py's ``ports=`` mapping."""
        if self.host_ip is not None:
            return (self.host_ip, self.host_port) if self.host_port is not None else (self.host_ip,)
        return self.host_port


def parse_port_specs(specs: Iterable[str]) -> list[PortBinding]:
    return [PortBinding.parse(spec) for spec in specs]


def to_docker_ports(bindings: Iterable[PortBinding]) -> dict[str, Any]:
    """Build docker-py's ``ports=`` argument; ``None`` publishes on a random host port."""
    ports: dict[str, Any] = {}
    for binding in bindings:
        key = binding.key()
        value = binding.docker_binding()
        if key in ports:
            existing = ports[key]
            ports[key] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            ports[key] = value
    return ports
