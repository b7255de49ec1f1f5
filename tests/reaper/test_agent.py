"""Tests for the reaper sidecar agent over a real local TCP socket."""

import asyncio

import pytest

from testharbor.reaper.agent import ReaperAgent
from testharbor.reaper.protocol import ACK, encode_filter
from testharbor.reaper.sweeper import SweepReport
from testharbor.session import labels_for


class RecordingSweep:
    def __init__(self):
        self.calls = []

    def __call__(self, filters):
        self.calls.append(list(filters))
        return SweepReport(removed=[f"container/{i}" for i, _ in enumerate(filters)])


def make_agent(sweep_fn, **kwargs) -> ReaperAgent:
    kwargs.setdefault("connection_timeout", 2)
    kwargs.setdefault("reconnection_timeout", 0.1)
    return ReaperAgent(sweep_fn, host="127.0.0.1", port=0, **kwargs)


async def register(port: int, labels: dict) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(encode_filter(labels))
    await writer.drain()
    assert await reader.readline() == ACK
    return reader, writer


async def close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    await writer.wait_closed()


class TestReaperAgent:
    @pytest.mark.asyncio
    async def test_sweeps_after_session_disconnects(self):
        sweep_fn = RecordingSweep()
        agent = make_agent(sweep_fn)
        serving = asyncio.create_task(agent.serve())
        port = await agent.wait_started()

        _, writer = await register(port, labels_for("s1"))
        await asyncio.sleep(0.05)
        assert sweep_fn.calls == []
        await close(writer)

        report = await asyncio.wait_for(serving, timeout=5)
        assert sweep_fn.calls == [[labels_for("s1")]]
        assert report.ok

    @pytest.mark.asyncio
    async def test_waits_for_every_session(self):
        sweep_fn = RecordingSweep()
        agent = make_agent(sweep_fn)
        serving = asyncio.create_task(agent.serve())
        port = await agent.wait_started()

        _, first = await register(port, labels_for("s1"))
        _, second = await register(port, labels_for("s2"))
        await close(first)
        await asyncio.sleep(0.3)
        assert not serving.done()
        assert agent.connections == 1

        await close(second)
        await asyncio.wait_for(serving, timeout=5)
        assert sweep_fn.calls == [[labels_for("s1"), labels_for("s2")]]

    @pytest.mark.asyncio
    async def test_reconnect_within_grace_period_postpones_sweep(self):
        sweep_fn = RecordingSweep()
        agent = make_agent(sweep_fn, reconnection_timeout=0.5)
        serving = asyncio.create_task(agent.serve())
        port = await agent.wait_started()

        _, writer = await register(port, labels_for("s1"))
        await close(writer)
        await asyncio.sleep(0.1)
        _, writer = await register(port, labels_for("s1"))
        await asyncio.sleep(0.6)
        assert not serving.done()

        await close(writer)
        await asyncio.wait_for(serving, timeout=5)
        assert sweep_fn.calls == [[labels_for("s1")]]

    @pytest.mark.asyncio
    async def test_malformed_registration_gets_error(self):
        agent = make_agent(RecordingSweep())
        serving = asyncio.create_task(agent.serve())
        port = await agent.wait_started()

        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        writer.write(b"nonsense\n")
        await writer.drain()
        assert await reader.readline() == b"ERROR\n"
        await close(writer)

        await asyncio.wait_for(serving, timeout=5)
        assert agent.filters == []

    @pytest.mark.asyncio
    async def test_exits_without_sweep_when_nobody_connects(self):
        sweep_fn = RecordingSweep()
        agent = make_agent(sweep_fn, connection_timeout=0.1)
        assert await agent.serve() is None
        assert sweep_fn.calls == []
