"""Tests for DockerContainer against a mocked docker client."""

from unittest.mock import Mock

import pytest
from docker.errors import APIError, NotFound

from testharbor.containers.container import ContainerState, DockerContainer
from testharbor.errors import CollaboratorError, NotFoundError, StrategyError
from testharbor.wait import ForLog

CONTAINER_ID = "4f1c2d3e5a6b7c8d9e0f1a2b3c4d5e6f7a8b9c0d1e2f3a4b5c6d7e8f9a0b1c2d"


def _api_error(status: int) -> APIError:
    return APIError("daemon error", response=Mock(status_code=status))


class TestPorts:
    @pytest.mark.asyncio
    async def test_mapped_port_by_number_and_protocol(self, provider):
        container = DockerContainer(CONTAINER_ID, provider)
        assert await container.mapped_port(80) == 32768
        assert await container.mapped_port("80/tcp") == 32768

    @pytest.mark.asyncio
    async def test_unmapped_protocol_raises(self, provider):
        container = DockerContainer(CONTAINER_ID, provider)
        with pytest.raises(NotFoundError):
            await container.mapped_port("80/udp")

    @pytest.mark.asyncio
    async def test_exposed_but_unpublished_raises(self, provider):
        container = DockerContainer(CONTAINER_ID, provider)
        with pytest.raises(NotFoundError):
            await container.mapped_port(443)

    @pytest.mark.asyncio
    async def test_endpoints(self, provider):
        container = DockerContainer(CONTAINER_ID, provider)
        assert await container.port_endpoint(80, "http") == "http://localhost:32768"
        assert await container.port_endpoint(80) == "localhost:32768"

    @pytest.mark.asyncio
    async def test_endpoint_uses_lowest_port(self, provider, client, make_attrs):
        client.api.inspect_container.return_value = make_attrs(
            ports={
                "9000/tcp": [{"HostIp": "0.0.0.0", "HostPort": "40001"}],
                "8080/tcp": [{"HostIp": "0.0.0.0", "HostPort": "40000"}],
            }
        )
        container = DockerContainer(CONTAINER_ID, provider)
        assert await container.endpoint("http") == "http://localhost:40000"

    @pytest.mark.asyncio
    async def test_endpoint_without_ports(self, provider, client, make_attrs):
        client.api.inspect_container.return_value = make_attrs(ports={})
        with pytest.raises(NotFoundError):
            await DockerContainer(CONTAINER_ID, provider).endpoint()


class TestInspectCache:
    @pytest.mark.asyncio
    async def test_inspect_is_cached_until_reset(self, provider, client):
        container = DockerContainer(CONTAINER_ID, provider)
        await container.name()
        await container.labels()
        assert client.api.inspect_container.call_count == 1

        container.reset_cache()
        assert await container.name() == "web-1"
        assert client.api.inspect_container.call_count == 2

    @pytest.mark.asyncio
    async def test_state_is_always_fresh(self, provider, client, make_attrs):
        container = DockerContainer(CONTAINER_ID, provider)
        assert await container.is_running()

        client.api.inspect_container.return_value = make_attrs(running=False)
        state = await container.state()
        assert state == ContainerState(status="exited", running=False, exit_code=1)

    @pytest.mark.asyncio
    async def test_inspect_missing_container(self, provider, client):
        client.api.inspect_container.side_effect = NotFound("No such container")
        with pytest.raises(NotFoundError):
            await DockerContainer(CONTAINER_ID, provider).inspect()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_waits_for_strategy(self, provider, client):
        client.api.logs.side_effect = [b"booting\n", b"booting\nready\n"]
        container = DockerContainer(
            CONTAINER_ID,
            provider,
            wait_for=ForLog("ready", poll_interval=0.01, startup_timeout=2),
        )
        await container.start()
        client.api.start.assert_called_once_with(CONTAINER_ID)
        assert client.api.logs.call_count == 2

    @pytest.mark.asyncio
    async def test_start_propagates_strategy_failure(self, provider, client, make_attrs):
        client.api.logs.return_value = b"panic\n"
        client.api.inspect_container.return_value = make_attrs(running=False)
        container = DockerContainer(CONTAINER_ID, provider, wait_for=ForLog("ready", poll_interval=0.01))
        with pytest.raises(StrategyError):
            await container.start()

    @pytest.mark.asyncio
    async def test_stop_passes_timeout(self, provider, client):
        container = DockerContainer(CONTAINER_ID, provider)
        await container.stop(timeout=3)
        client.api.stop.assert_called_once_with(CONTAINER_ID, timeout=3)

    @pytest.mark.asyncio
    async def test_terminate_removes_volumes(self, provider, client):
        await DockerContainer(CONTAINER_ID, provider).terminate()
        client.api.remove_container.assert_called_once_with(CONTAINER_ID, v=True, force=True)

    @pytest.mark.asyncio
    async def test_terminate_is_idempotent(self, provider, client):
        container = DockerContainer(CONTAINER_ID, provider)
        await container.terminate()
        client.api.remove_container.side_effect = NotFound("No such container")
        await container.terminate()
        client.api.remove_container.side_effect = _api_error(409)
        await container.terminate()
        assert client.api.remove_container.call_count == 3

    @pytest.mark.asyncio
    async def test_terminate_reports_other_failures(self, provider, client):
        client.api.remove_container.side_effect = _api_error(500)
        with pytest.raises(CollaboratorError) as exc_info:
            await DockerContainer(CONTAINER_ID, provider).terminate()
        assert exc_info.value.operation == "terminate"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_async_context_terminates(self, provider, client):
        async with DockerContainer(CONTAINER_ID, provider) as container:
            assert container.id == CONTAINER_ID
        client.api.remove_container.assert_called_once()

    @pytest.mark.asyncio
    async def test_logs_snapshot(self, provider, client):
        client.api.logs.return_value = b"hello\n"
        assert await DockerContainer(CONTAINER_ID, provider).logs(tail=10) == b"hello\n"
        client.api.logs.assert_called_once_with(CONTAINER_ID, stdout=True, stderr=True, tail=10)
