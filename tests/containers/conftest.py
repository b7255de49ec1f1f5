"""
Pytest fixtures for container tests that run against a mocked docker client.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from testharbor.containers.provider import DockerProvider

CONTAINER_ID = "4f1c2d3e5a6b7c8d9e0f1a2b3c4d5e6f7a8b9c0d1e2f3a4b5c6d7e8f9a0b1c2d"


def inspect_attrs(running: bool = True, ports=None, labels=None) -> dict:
    """A trimmed ``docker inspect`` payload."""
    return {
        "Id": CONTAINER_ID,
        "Name": "/web-1",
        "Image": "sha256:abc",
        "Config": {"Labels": labels or {}},
        "State": {
            "Status": "running" if running else "exited",
            "Running": running,
            "ExitCode": 0 if running else 1,
        },
        "NetworkSettings": {
            "Ports": ports
            if ports is not None
            else {
                "80/tcp": [
                    {"HostIp": "0.0.0.0", "HostPort": "32768"},
                    {"HostIp": "::", "HostPort": "32768"},
                ],
                "443/tcp": None,
            }
        },
    }


@pytest.fixture
def client() -> Mock:
    client = Mock()
    client.api.base_url = "http+docker://localhost"
    client.api.inspect_container.return_value = inspect_attrs()
    client.containers.create.return_value = Mock(id=CONTAINER_ID)
    return client


@pytest.fixture
def reaper() -> Mock:
    reaper = Mock()
    reaper.connect = AsyncMock()
    reaper.close = AsyncMock()
    return reaper


@pytest.fixture
def provider(client, reaper, monkeypatch) -> DockerProvider:
    monkeypatch.setenv("TESTHARBOR_HOST", "localhost")
    provider = DockerProvider(client=client, session_id="session-1")
    provider._reaper = reaper
    return provider


@pytest.fixture
def make_attrs():
    return inspect_attrs
