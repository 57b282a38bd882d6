"""
End-to-end tests: a simulator on an ephemeral port driven by raw telnet
clients and by HlxClient.
"""

import asyncio
from pathlib import Path

import pytest

from openhlx.client import HlxClient
from openhlx.core import CommandRejectedError, DisconnectedError
from openhlx.core.events import (
    ConfigurationLifecycleEvent,
    Event,
    LifecyclePhase,
    ZoneVolumeEvent,
    event_bus,
)
from openhlx.simulator import HlxSimulator

TIMEOUT = 2.0

# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


class RawClient:
    """A bare telnet client speaking bracketed requests."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, greeting: str) -> None:
        self.reader = reader
        self.writer = writer
        self.greeting = greeting

    @classmethod
    async def connect(cls, port: int) -> "RawClient":
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        greeting = await asyncio.wait_for(reader.readuntil(b"\n"), TIMEOUT)
        return cls(reader, writer, greeting.decode("ascii"))

    async def send(self, payload: str) -> None:
        self.writer.write(f"[{payload}]\r\n".encode("ascii"))
        await self.writer.drain()

    async def line(self) -> str:
        raw = await asyncio.wait_for(self.reader.readuntil(b"\n"), TIMEOUT)
        text = raw.decode("ascii").strip()
        assert text.startswith("(") and text.endswith(")"), text
        return text[1:-1]

    async def until(self, last: str) -> list[str]:
        """Collect response payloads up to and including ``last``."""
        lines: list[str] = []
        while True:
            payload = await self.line()
            lines.append(payload)
            if payload == last:
                return lines

    async def request(self, payload: str, last: str | None = None) -> list[str]:
        await self.send(payload)
        return await self.until(last if last is not None else payload)

    async def close(self) -> None:
        self.writer.close()
        await self.writer.wait_closed()


async def wait_for_clients(simulator: HlxSimulator, count: int) -> None:
    for _ in range(200):
        if simulator.connected_clients == count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"expected {count} clients, have {simulator.connected_clients}")


def make_simulator(path: Path) -> HlxSimulator:
    return HlxSimulator(host="127.0.0.1", port=0, backup_path=path, autosave_interval=0)


@pytest.fixture
async def simulator(tmp_path: Path):
    await event_bus.clear()
    sim = make_simulator(tmp_path / "backup.db")
    await sim.start()
    yield sim
    await sim.stop()
    await event_bus.clear()


@pytest.fixture
async def raw(simulator: HlxSimulator):
    client = await RawClient.connect(simulator.port)
    await wait_for_clients(simulator, 1)
    yield client
    await client.close()


@pytest.fixture
async def client(simulator: HlxSimulator):
    hlx = HlxClient(request_timeout=TIMEOUT, handshake_timeout=TIMEOUT)
    await hlx.connect("127.0.0.1", simulator.port)
    yield hlx
    await hlx.disconnect()


# -----------------------------------------------------------------------------
# Connections
# -----------------------------------------------------------------------------


class TestConnections:
    async def test_greeting_names_connection(self, simulator: HlxSimulator) -> None:
        first = await RawClient.connect(simulator.port)
        second = await RawClient.connect(simulator.port)
        try:
            assert first.greeting == "telnet_client_1: connected\r\n"
            assert second.greeting == "telnet_client_2: connected\r\n"
        finally:
            await second.close()
            await first.close()

    async def test_request_before_greeting_is_answered_after_it(self, simulator: HlxSimulator) -> None:
        reader, writer = await asyncio.open_connection("127.0.0.1", simulator.port)
        writer.write(b"[QO1]\r\n")
        await writer.drain()

        early = RawClient(reader, writer, "")
        try:
            first = await asyncio.wait_for(reader.readuntil(b"\n"), TIMEOUT)
            assert first == b"telnet_client_1: connected\r\n"
            lines = await early.until("QO1")
            assert lines[0] == 'NO1"Zone Name 1"'
        finally:
            await early.close()

    async def test_identifier_is_reused(self, simulator: HlxSimulator) -> None:
        first = await RawClient.connect(simulator.port)
        second = await RawClient.connect(simulator.port)
        await wait_for_clients(simulator, 2)

        await first.close()
        await wait_for_clients(simulator, 1)
        for _ in range(200):
            if not simulator.listener.identifiers.is_claimed("telnet", 1):
                break
            await asyncio.sleep(0.01)

        third = await RawClient.connect(simulator.port)
        try:
            assert third.greeting == "telnet_client_1: connected\r\n"
        finally:
            await third.close()
            await second.close()


# -----------------------------------------------------------------------------
# Zones
# -----------------------------------------------------------------------------


class TestZones:
    async def test_query_order(self, raw: RawClient) -> None:
        assert await raw.request("QO3") == [
            'NO3"Zone Name 3"',
            "CO3I1",
            "VO3R-80",
            "VMO3",
            "EO3M0",
            "BO3C",
            "QO3",
        ]

    async def test_single_value_queries(self, raw: RawClient) -> None:
        await raw.send("QVO3")
        assert await raw.line() == "VO3R-80"
        await raw.send("QVMO3")
        assert await raw.line() == "VMO3"
        await raw.send("QCO3")
        assert await raw.line() == "CO3I1"

    async def test_volume_unmutes_first(self, raw: RawClient) -> None:
        assert await raw.request("VO3R-20") == ["VUMO3", "VO3R-20"]
        # Already unmuted and already at the level: just the echo
        assert await raw.request("VO3R-20") == ["VO3R-20"]

    async def test_volume_steps(self, raw: RawClient) -> None:
        await raw.request("VO3R-20")
        assert await raw.request("VO3U", "VO3R-19") == ["VO3R-19"]
        assert await raw.request("VO3D", "VO3R-20") == ["VO3R-20"]

    async def test_volume_locked_zone_refuses(self, raw: RawClient) -> None:
        assert await raw.request("VO3F1") == ["VO3F1"]
        assert await raw.request("VO3R-20", "ERROR") == ["ERROR"]

    async def test_mute_and_toggle(self, raw: RawClient) -> None:
        assert await raw.request("VUMO4") == ["VUMO4"]
        assert await raw.request("VMTO4", "VMO4") == ["VMO4"]

    async def test_name_is_truncated(self, raw: RawClient) -> None:
        assert await raw.request('NO1"Living Room Upstairs"', 'NO1"Living Room Upst"') == [
            'NO1"Living Room Upst"'
        ]

    @pytest.mark.parametrize("payload", ['NO1"aaaaaaaaaaaaaaa""b"', 'NO1"a"b"'])
    async def test_quote_in_name_is_refused(self, raw: RawClient, payload: str) -> None:
        assert await raw.request(payload, "ERROR") == ["ERROR"]
        await raw.send("QVO1")
        assert await raw.line() == "VO1R-80"

    async def test_balance(self, raw: RawClient) -> None:
        assert await raw.request("BO2L10") == ["BO2L10"]
        assert await raw.request("BO2RU", "BO2L9") == ["BO2L9"]

    @pytest.mark.parametrize("payload", ["VO3R-100", "VO25R-10", "QO0", "CO1I9", "NONSENSE"])
    async def test_bad_requests_answer_error(self, raw: RawClient, payload: str) -> None:
        assert await raw.request(payload, "ERROR") == ["ERROR"]
        # The connection stays usable
        await raw.send("QVO1")
        assert await raw.line() == "VO1R-80"

    async def test_changes_are_broadcast(self, simulator: HlxSimulator, raw: RawClient) -> None:
        observer = await RawClient.connect(simulator.port)
        await wait_for_clients(simulator, 2)
        try:
            await raw.request("VO3R-20")
            assert await observer.until("VO3R-20") == ["VUMO3", "VO3R-20"]
        finally:
            await observer.close()

    async def test_error_reaches_only_the_initiator(self, simulator: HlxSimulator, raw: RawClient) -> None:
        observer = await RawClient.connect(simulator.port)
        await wait_for_clients(simulator, 2)
        try:
            await raw.request("VO3R-1")
            assert await observer.until("VO3R-1") == ["VUMO3", "VO3R-1"]
            assert await raw.request("VO3U", "VO3R0") == ["VO3R0"]
            assert await observer.line() == "VO3R0"

            assert await raw.request("VO3U", "ERROR") == ["ERROR"]

            # The next thing the observer hears is the following change
            await raw.request("VO4R-10")
            assert await observer.line() == "VUMO4"
        finally:
            await observer.close()


# -----------------------------------------------------------------------------
# Groups
# -----------------------------------------------------------------------------


class TestGroups:
    async def test_volume_expands_to_members_in_order(self, raw: RawClient) -> None:
        await raw.request("G1AO5")
        await raw.request("G1AO2")

        assert await raw.request("VG1R-30") == ["VUMO2", "VO2R-30", "VUMO5", "VO5R-30", "VG1R-30"]

    async def test_locked_member_is_skipped(self, raw: RawClient) -> None:
        await raw.request("G1AO2")
        await raw.request("G1AO5")
        await raw.request("VO2F1")

        assert await raw.request("VG1R-30") == ["VUMO5", "VO5R-30", "VG1R-30"]

    async def test_source_fan_out_reaches_every_observer(self, simulator: HlxSimulator, raw: RawClient) -> None:
        for zone in (9, 5, 7):
            await raw.request(f"G2AO{zone}")
        observers = [await RawClient.connect(simulator.port) for _ in range(2)]
        await wait_for_clients(simulator, 3)
        expected = ["CO5I4", "CO7I4", "CO9I4", "CG2I4"]
        try:
            assert await raw.request("CG2I4") == expected
            for observer in observers:
                assert await observer.until("CG2I4") == expected
        finally:
            for observer in observers:
                await observer.close()

    async def test_query(self, raw: RawClient) -> None:
        await raw.request("G2AO7")
        assert await raw.request("QG2") == ['NG2"Group Name 2"', "G2AO7", "VG2R-80", "VMG2", "QG2"]

    async def test_clear_all(self, raw: RawClient) -> None:
        await raw.request("G1AO3")
        await raw.request("G2AO4")
        assert await raw.request("GAR") == ["G1RO3", "G2RO4", "GAR"]


# -----------------------------------------------------------------------------
# Front panel and infrared
# -----------------------------------------------------------------------------


class TestSystem:
    async def test_infrared_query_is_a_bare_state_line(self, raw: RawClient) -> None:
        await raw.send("QIRL")
        assert await raw.line() == "IRL0"

    async def test_brightness(self, raw: RawClient) -> None:
        assert await raw.request("SD1") == ["SD1"]
        await raw.send("SD9")
        assert await raw.line() == "ERROR"


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


class TestConfiguration:
    async def test_save_reports_progress(self, raw: RawClient) -> None:
        events: list[Event] = []

        async def record(event: Event) -> None:
            events.append(event)

        await event_bus.subscribe("configuration.lifecycle", record)

        assert await raw.request("SAVE") == ["SAVING...", "SAVING0%", "SAVING50%", "SAVING100%", "SAVE"]
        assert [e.phase for e in events if isinstance(e, ConfigurationLifecycleEvent)] == [
            LifecyclePhase.WILL,
            LifecyclePhase.IN_PROGRESS,
            LifecyclePhase.IN_PROGRESS,
            LifecyclePhase.IN_PROGRESS,
            LifecyclePhase.DID,
        ]

    async def test_load_restores_backup(self, raw: RawClient) -> None:
        await raw.request("VO3R-20")

        assert await raw.request("LOAD") == ["LOADING...", "LOADING0%", "LOADING50%", "LOADING100%", "LOAD"]
        await raw.send("QVO3")
        assert await raw.line() == "VO3R-80"

    async def test_reset(self, raw: RawClient) -> None:
        await raw.request('NO1"Kitchen"')

        assert await raw.request("RESET") == ["RESETTING...", "RESETTING0%", "RESETTING100%", "RESET"]
        lines = await raw.request("QO1")
        assert lines[0] == 'NO1"Zone Name 1"'

    async def test_changes_survive_restart(self, tmp_path: Path) -> None:
        path = tmp_path / "restart.db"

        first = make_simulator(path)
        await first.start()
        raw = await RawClient.connect(first.port)
        await raw.request('NO1"Kitchen"')
        await raw.close()
        # Unsaved changes are flushed on stop
        await first.stop()

        second = make_simulator(path)
        await second.start()
        try:
            raw = await RawClient.connect(second.port)
            lines = await raw.request("QO1")
            await raw.close()
        finally:
            await second.stop()

        assert lines[0] == 'NO1"Kitchen"'

    async def test_query_everything(self, raw: RawClient) -> None:
        lines = await raw.request("QX")
        assert lines[-1] == "QX"
        assert 'NI1"Source Name 1"' in lines
        assert "VO24F0" in lines
        assert "IRL0" in lines
        assert "DHCP1" in lines


# -----------------------------------------------------------------------------
# HlxClient
# -----------------------------------------------------------------------------


class TestHlxClient:
    async def test_connect(self, client: HlxClient) -> None:
        assert client.is_connected
        assert client.connection is not None
        assert client.connection.identifier == 1

    async def test_refresh_fills_mirror(self, client: HlxClient) -> None:
        await client.refresh()

        zone = client.zones.zone(5)
        assert zone.name == "Zone Name 5"
        assert zone.volume.level == -80
        assert client.repository.network.dhcp_enabled is True

    async def test_set_volume_updates_mirror_and_publishes(self, client: HlxClient) -> None:
        events: list[Event] = []

        async def record(event: Event) -> None:
            events.append(event)

        await client.events.subscribe("zone.*", record)
        await client.zones.set_volume(3, -20)

        zone = client.zones.zone(3)
        assert zone.volume.level == -20
        assert zone.volume.muted is False
        assert ZoneVolumeEvent(zone=3, level=-20) in events

    async def test_queries(self, client: HlxClient) -> None:
        assert await client.zones.query_volume(2) == -80
        assert await client.zones.query_mute(2) is True
        assert await client.zones.query_source(2) == 1
        assert await client.infrared.query() is False

        zone = await client.zones.query(2)
        assert zone.name == "Zone Name 2"

    async def test_group_operations(self, client: HlxClient) -> None:
        await client.groups.add_zone(1, 4)
        await client.groups.add_zone(1, 6)
        await client.groups.set_volume(1, -40)

        assert client.zones.zone(4).volume.level == -40
        assert client.zones.zone(6).volume.level == -40
        group = await client.groups.query(1)
        assert group.zones == [4, 6]
        assert group.volume.level == -40

    async def test_tone_set_keeps_other_value(self, client: HlxClient) -> None:
        await client.zones.query(7)
        await client.zones.set_tone(7, 2, -3)
        await client.zones.set_bass(7, 4)
        assert (client.zones.zone(7).tone.bass, client.zones.zone(7).tone.treble) == (4, -3)

    async def test_rejected_request(self, client: HlxClient) -> None:
        with pytest.raises(CommandRejectedError):
            await client.zones.set_volume(3, 100)
        # Later requests still work
        assert await client.zones.query_volume(3) == -80

    async def test_save_publishes_lifecycle(self, client: HlxClient) -> None:
        events: list[ConfigurationLifecycleEvent] = []

        async def record(event: Event) -> None:
            assert isinstance(event, ConfigurationLifecycleEvent)
            events.append(event)

        await client.events.subscribe("configuration.lifecycle", record)
        await client.configuration.save()

        assert events[0].phase is LifecyclePhase.WILL
        assert events[-1].phase is LifecyclePhase.DID
        assert [e.percent for e in events if e.phase is LifecyclePhase.IN_PROGRESS] == [0, 50, 100]

    async def test_sees_changes_from_other_clients(self, simulator: HlxSimulator, client: HlxClient) -> None:
        changed = asyncio.Event()

        async def on_volume(event: Event) -> None:
            if isinstance(event, ZoneVolumeEvent) and event.zone == 8:
                changed.set()

        await client.events.subscribe("zone.volume", on_volume)

        other = await RawClient.connect(simulator.port)
        await wait_for_clients(simulator, 2)
        try:
            await other.request("VO8R-12")
            await asyncio.wait_for(changed.wait(), TIMEOUT)
        finally:
            await other.close()

        assert client.zones.zone(8).volume.level == -12

    async def test_server_shutdown_disconnects(self, simulator: HlxSimulator, client: HlxClient) -> None:
        await simulator.stop()

        for _ in range(200):
            if not client.is_connected:
                break
            await asyncio.sleep(0.01)

        assert not client.is_connected
        with pytest.raises(DisconnectedError):
            await client.zones.query_volume(1)
