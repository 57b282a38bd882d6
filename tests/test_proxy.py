"""
Tests for the HLX proxy: a simulator upstream, the proxy on an ephemeral
port and raw telnet clients downstream.
"""

import asyncio
from pathlib import Path

import pytest

from openhlx.core import HlxIOError
from openhlx.core.events import event_bus
from openhlx.protocol import commands
from openhlx.proxy import HlxProxy, response_for
from openhlx.proxy.__main__ import parse_args
from openhlx.simulator import HlxSimulator

TIMEOUT = 2.0

# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


class RawClient:
    """A bare telnet client speaking bracketed requests."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.reader = reader
        self.writer = writer

    @classmethod
    async def connect(cls, port: int) -> "RawClient":
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        await asyncio.wait_for(reader.readuntil(b"\n"), TIMEOUT)
        return cls(reader, writer)

    async def send(self, payload: str) -> None:
        self.writer.write(f"[{payload}]\r\n".encode("ascii"))
        await self.writer.drain()

    async def line(self) -> str:
        raw = await asyncio.wait_for(self.reader.readuntil(b"\n"), TIMEOUT)
        return raw.decode("ascii").strip()[1:-1]

    async def request(self, payload: str, last: str | None = None) -> list[str]:
        await self.send(payload)
        last = last if last is not None else payload
        lines: list[str] = []
        while True:
            lines.append(await self.line())
            if lines[-1] == last:
                return lines

    async def close(self) -> None:
        self.writer.close()
        await self.writer.wait_closed()


async def wait_until(condition, what: str) -> None:
    for _ in range(200):
        if condition():
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"timed out waiting for {what}")


@pytest.fixture
async def simulator(tmp_path: Path):
    await event_bus.clear()
    sim = HlxSimulator(host="127.0.0.1", port=0, backup_path=tmp_path / "backup.db", autosave_interval=0)
    await sim.start()
    yield sim
    await sim.stop()
    await event_bus.clear()


@pytest.fixture
async def proxy(simulator: HlxSimulator):
    hlx = HlxProxy(
        "127.0.0.1",
        simulator.port,
        host="127.0.0.1",
        port=0,
        request_timeout=TIMEOUT,
        handshake_timeout=TIMEOUT,
        reconnect_interval=60.0,
    )
    await hlx.start()
    yield hlx
    await hlx.stop()


@pytest.fixture
async def clients(proxy: HlxProxy):
    first = await RawClient.connect(proxy.port)
    second = await RawClient.connect(proxy.port)
    await wait_until(lambda: proxy.connected_clients == 2, "two downstream clients")
    yield first, second
    await second.close()
    await first.close()


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------


class TestResponseFor:
    def test_adjustment_completes_on_state_line(self) -> None:
        match = commands.ZONE_VOLUME_UP.match("VO3U")
        assert match is not None
        pattern, expect = response_for(commands.ZONE_VOLUME_UP, match)
        assert pattern is commands.ZONE_VOLUME
        assert expect is not None

        other = commands.ZONE_VOLUME.match("VO4R-10")
        same = commands.ZONE_VOLUME.match("VO3R-10")
        assert other is not None and same is not None
        assert not expect(other)
        assert expect(same)

    def test_mute_identifier_is_second(self) -> None:
        match = commands.ZONE_MUTE.match("VMO12")
        assert match is not None
        pattern, expect = response_for(commands.ZONE_MUTE, match)
        assert pattern is commands.ZONE_MUTE
        assert expect is not None

        unmuted = commands.ZONE_MUTE.match("VUMO12")
        assert unmuted is not None
        assert expect(unmuted)

    @pytest.mark.parametrize(
        ("pattern", "payload"),
        [(commands.ZONE_VOLUME_ALL, "VXR-20"), (commands.GROUP_CLEAR_ALL, "GAR"), (commands.CONFIGURATION_SAVE, "SAVE")],
    )
    def test_matrix_wide_requests_are_not_filtered(self, pattern, payload: str) -> None:
        match = pattern.match(payload)
        assert match is not None
        assert response_for(pattern, match) == (pattern, None)


# -----------------------------------------------------------------------------
# Proxying
# -----------------------------------------------------------------------------


class TestProxy:
    async def test_query_is_answered_from_mirror(self, proxy: HlxProxy, clients) -> None:
        first, _ = clients
        lines = await first.request("QO1")
        assert lines[0] == 'NO1"Zone Name 1"'
        assert lines[-1] == "QO1"

    async def test_configuration_query(self, proxy: HlxProxy, clients) -> None:
        first, _ = clients
        lines = await first.request("QX")
        assert 'NI1"Source Name 1"' in lines
        assert 'NO24"Zone Name 24"' in lines
        assert lines[-1] == "QX"

    async def test_change_reaches_upstream_and_every_client(
        self, simulator: HlxSimulator, proxy: HlxProxy, clients
    ) -> None:
        first, second = clients
        assert await first.request("VO3R-20") == ["VO3R-20"]
        assert await second.line() == "VO3R-20"

        upstream = simulator.repository.zones.get(3)
        mirrored = proxy.repository.zones.get(3)
        assert upstream is not None and mirrored is not None
        assert upstream.volume.level == -20
        assert mirrored.volume.level == -20

    async def test_adjustment_completes_on_state_line(self, proxy: HlxProxy, clients) -> None:
        first, _ = clients
        await first.request("VO3R-20")
        assert await first.request("VO3U", "VO3R-19") == ["VO3R-19"]

    async def test_upstream_change_is_relayed(self, simulator: HlxSimulator, proxy: HlxProxy, clients) -> None:
        first, second = clients
        direct = await RawClient.connect(simulator.port)
        try:
            await direct.request("VO4R-10")
            assert await first.line() == "VO4R-10"
            assert await second.line() == "VO4R-10"
        finally:
            await direct.close()

        zone = proxy.repository.zones.get(4)
        assert zone is not None
        assert zone.volume.level == -10

    async def test_error_reaches_only_the_initiator(self, proxy: HlxProxy, clients) -> None:
        first, second = clients
        # Zones start at the minimum level
        await first.send("VO3D")
        assert await first.line() == "ERROR"

        await first.request("VO3R-20")
        assert await second.line() == "VO3R-20"

    async def test_save_progress_goes_to_the_initiator(self, proxy: HlxProxy, clients) -> None:
        first, second = clients
        assert await first.request("SAVE") == ["SAVING...", "SAVING0%", "SAVING50%", "SAVING100%", "SAVE"]

        await first.request("VO3R-20")
        assert await second.line() == "VO3R-20"

    async def test_lost_upstream_rejects_changes(self, simulator: HlxSimulator, proxy: HlxProxy, clients) -> None:
        first, _ = clients
        await simulator.stop()
        await wait_until(lambda: not proxy.upstream.is_connected, "upstream loss")

        await first.send("VO3R-20")
        assert await first.line() == "ERROR"

        lines = await first.request("QO1")
        assert lines[-1] == "QO1"

    async def test_unreachable_upstream_fails_start(self) -> None:
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        hlx = HlxProxy("127.0.0.1", port, host="127.0.0.1", port=0, handshake_timeout=TIMEOUT)
        with pytest.raises(HlxIOError):
            await hlx.start()
        assert not hlx.is_running


# -----------------------------------------------------------------------------
# Command line
# -----------------------------------------------------------------------------


class TestProxyArgs:
    def test_defaults(self) -> None:
        args = parse_args([])
        assert args.upstream is None
        assert args.port is None
        assert args.timeout is None

    def test_overrides(self) -> None:
        args = parse_args(["-p", "2323", "--host", "127.0.0.1", "--timeout", "3", "192.168.1.48:23"])
        assert args.upstream == "192.168.1.48:23"
        assert args.port == 2323
        assert args.timeout == 3.0
