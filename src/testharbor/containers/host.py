"""
Resolution of the host under which published container ports are reachable.

The host is derived from the Docker daemon address. Addresses whose scheme
gives no usable host, such as ``ssh://`` tunnels, raise
:class:`ConfigurationError`; set ``TESTHARBOR_HOST`` in such setups.
"""

import os
import socket
import struct
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from testharbor.errors import ConfigurationError

LOCAL_SCHEMES = ("unix", "npipe", "http+unix", "http+docker")
REMOTE_SCHEMES = ("http", "https", "tcp")

DOCKERENV_PATH = Path("/.dockerenv")
ROUTE_TABLE_PATH = Path("/proc/net/route")


def in_a_container(marker: Path = DOCKERENV_PATH) -> bool:
    return marker.exists()


def default_gateway_ip(route_table: Path = ROUTE_TABLE_PATH) -> str:
    """
    Read the default gateway from the kernel routing table.

    Raises:
        ConfigurationError: If no default route can be found.
    """
    try:
        lines = route_table.read_text().splitlines()
    except OSError as e:
        raise ConfigurationError(f"Failed to read routing table {route_table}: {e}") from e

    for line in lines[1:]:
        fields = line.split()
        # Iface Destination Gateway Flags ...
        if len(fields) < 3 or fields[1] != "00000000":
            continue
        gateway = int(fields[2], 16)
        if gateway == 0:
            continue
        return socket.inet_ntoa(struct.pack("<L", gateway))

    raise ConfigurationError("Failed to detect the default gateway of this container")


def resolve_daemon_host(
    daemon_url: str,
    override: Optional[str] = None,
    inside_container: Optional[bool] = None,
    route_table: Path = ROUTE_TABLE_PATH,
) -> str:
    """
    Work out the host name or IP to reach published container ports on.

    Args:
        daemon_url: Address of the Docker daemon (``DOCKER_HOST`` or the
            client's base URL).
        override: Explicit host (``TESTHARBOR_HOST``); wins when set.
        inside_container: Whether this process runs in a container; detected
            when not given.

    Raises:
        ConfigurationError: If the daemon address scheme is not understood.
    """
    if override:
        return override

    parsed = urlparse(daemon_url)
    scheme = parsed.scheme.lower()
    if scheme in REMOTE_SCHEMES and parsed.hostname:
        return parsed.hostname
    if scheme in LOCAL_SCHEMES:
        if inside_container is None:
            inside_container = in_a_container()
        if inside_container:
            return default_gateway_ip(route_table)
        return "localhost"

    raise ConfigurationError(
        f"Could not determine the container host from daemon address {daemon_url!r}; set TESTHARBOR_HOST"
    )


def daemon_url_for(client_base_url: str) -> str:
    """Prefer ``DOCKER_HOST`` over the client's transport URL."""
    return os.environ.get("DOCKER_HOST") or client_base_url
