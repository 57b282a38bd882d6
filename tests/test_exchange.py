"""
Tests for the client exchange manager and the notification mirror.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from openhlx.client import ClientConnection, ExchangeManager, Notifications, captures
from openhlx.core import (
    CommandRejectedError,
    DisconnectedError,
    ExchangeTimeoutError,
    SystemNotInitializedError,
)
from openhlx.core.events import (
    ConfigurationLifecycleEvent,
    Event,
    EventBus,
    GroupZoneRemovedEvent,
    LifecyclePhase,
    ZoneVolumeEvent,
)
from openhlx.model import ModelRepository
from openhlx.protocol import commands
from openhlx.protocol.connection import ConnectionState

# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_writer() -> MagicMock:
    writer = MagicMock(spec=asyncio.StreamWriter)
    writer.get_extra_info = MagicMock(return_value=("192.168.1.48", 23))
    writer.write = MagicMock()
    writer.drain = AsyncMock()
    writer.close = MagicMock()
    writer.wait_closed = AsyncMock()
    return writer


@pytest.fixture
def connection(mock_writer: MagicMock) -> ClientConnection:
    reader = AsyncMock(spec=asyncio.StreamReader)
    connection = ClientConnection(reader, mock_writer, on_response=AsyncMock())
    connection.transition(ConnectionState.CONFIRMED)
    connection.transition(ConnectionState.READY)
    return connection


@pytest.fixture
def exchange(connection: ClientConnection) -> ExchangeManager:
    manager = ExchangeManager(default_timeout=1.0)
    manager.attach(connection)
    return manager


async def wait_pending(exchange: ExchangeManager, request: str) -> None:
    for _ in range(100):
        if exchange.pending == request:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"[{request}] never became pending")


def requests(writer: MagicMock) -> list[bytes]:
    return [call.args[0] for call in writer.write.call_args_list]


# -----------------------------------------------------------------------------
# Exchange manager
# -----------------------------------------------------------------------------


class TestExchangeManager:
    async def test_matching_response_completes(
        self, exchange: ExchangeManager, connection: ClientConnection, mock_writer: MagicMock
    ) -> None:
        task = asyncio.create_task(exchange.submit("VO3R-9", commands.ZONE_VOLUME))
        await wait_pending(exchange, "VO3R-9")

        assert connection.state is ConnectionState.AWAITING_RESPONSE
        assert requests(mock_writer) == [b"[VO3R-9]\r\n"]

        # A notification for another entity leaves the exchange pending
        assert exchange.offer("VUMO3") is False
        assert exchange.offer("VO3R-9") is True

        match = await task
        assert match.group(1) == "3"
        assert exchange.pending is None
        assert connection.state is ConnectionState.READY

    async def test_expectation_filters_responses(self, exchange: ExchangeManager) -> None:
        task = asyncio.create_task(
            exchange.submit("VO3R-9", commands.ZONE_VOLUME, expect=captures(3, -9))
        )
        await wait_pending(exchange, "VO3R-9")

        assert exchange.offer("VO4R-9") is False
        assert exchange.offer("VO3R-8") is False
        assert exchange.offer("VO3R-9") is True
        await task

    async def test_error_rejects(self, exchange: ExchangeManager, connection: ClientConnection) -> None:
        task = asyncio.create_task(exchange.submit("VO3R-100", commands.ZONE_VOLUME))
        await wait_pending(exchange, "VO3R-100")

        assert exchange.offer("ERROR") is True
        with pytest.raises(CommandRejectedError):
            await task
        assert connection.state is ConnectionState.READY

    async def test_timeout(self, exchange: ExchangeManager, connection: ClientConnection) -> None:
        with pytest.raises(ExchangeTimeoutError):
            await exchange.submit("QO1", commands.ZONE_QUERY, timeout=0.01)
        assert exchange.pending is None
        assert connection.state is ConnectionState.READY

    async def test_requests_are_serialised_in_order(
        self, exchange: ExchangeManager, mock_writer: MagicMock
    ) -> None:
        first = asyncio.create_task(exchange.submit("VO1R-1", commands.ZONE_VOLUME))
        second = asyncio.create_task(exchange.submit("VO2R-2", commands.ZONE_VOLUME))
        await wait_pending(exchange, "VO1R-1")

        # Only one request is on the wire at a time
        assert requests(mock_writer) == [b"[VO1R-1]\r\n"]
        assert exchange.offer("VO2R-2") is False

        exchange.offer("VO1R-1")
        await wait_pending(exchange, "VO2R-2")
        exchange.offer("VO2R-2")

        await asyncio.gather(first, second)
        assert requests(mock_writer) == [b"[VO1R-1]\r\n", b"[VO2R-2]\r\n"]

    async def test_fail_all(self, exchange: ExchangeManager, connection: ClientConnection) -> None:
        task = asyncio.create_task(exchange.submit("QX", commands.CONFIGURATION_QUERY))
        await wait_pending(exchange, "QX")

        exchange.fail_all(DisconnectedError("peer closed"))
        with pytest.raises(DisconnectedError):
            await task

        await connection.close()
        with pytest.raises(DisconnectedError):
            await exchange.submit("QX", commands.CONFIGURATION_QUERY)

    async def test_write_failure_disconnects(self, mock_writer: MagicMock) -> None:
        mock_writer.drain = AsyncMock(side_effect=ConnectionResetError("reset by peer"))
        on_closed = AsyncMock()
        connection = ClientConnection(
            AsyncMock(spec=asyncio.StreamReader), mock_writer, on_response=AsyncMock(), on_closed=on_closed
        )
        connection.transition(ConnectionState.CONFIRMED)
        connection.transition(ConnectionState.READY)
        exchange = ExchangeManager(default_timeout=1.0)
        exchange.attach(connection)

        with pytest.raises(DisconnectedError):
            await exchange.submit("QX", commands.CONFIGURATION_QUERY)

        assert connection.state is ConnectionState.CLOSED
        assert exchange.pending is None
        on_closed.assert_awaited_once()

        # Later requests fail the same way
        with pytest.raises(DisconnectedError):
            await exchange.submit("QX", commands.CONFIGURATION_QUERY)

    async def test_never_connected(self) -> None:
        with pytest.raises(SystemNotInitializedError):
            await ExchangeManager().submit("QX", commands.CONFIGURATION_QUERY)

    def test_offer_without_pending(self, exchange: ExchangeManager) -> None:
        assert exchange.offer("VO3R-9") is False


class TestCaptures:
    def test_wildcards_and_flags(self) -> None:
        match = commands.ZONE_VOLUME_LOCKED.match("VO3F1")
        assert match is not None
        assert captures(3, True)(match)
        assert captures(None, True)(match)
        assert not captures(3, False)(match)
        assert not captures(4)(match)


# -----------------------------------------------------------------------------
# Notifications
# -----------------------------------------------------------------------------


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def notifications(events: EventBus) -> Notifications:
    repository = ModelRepository()
    repository.reset_to_defaults()
    return Notifications(repository, events)


@pytest.fixture
async def received(events: EventBus) -> list[Event]:
    seen: list[Event] = []

    async def record(event: Event) -> None:
        seen.append(event)

    await events.subscribe("*", record)
    return seen


class TestNotifications:
    async def test_state_line_updates_mirror(self, notifications: Notifications, received: list[Event]) -> None:
        assert await notifications.handle("VO3R-9") is True

        zone = notifications.repository.zones.get(3)
        assert zone is not None
        assert zone.volume.level == -9
        assert received == [ZoneVolumeEvent(zone=3, level=-9)]

    async def test_unchanged_value_publishes_nothing(
        self, notifications: Notifications, received: list[Event]
    ) -> None:
        await notifications.handle("VO3R-9")
        await notifications.handle("VO3R-9")
        assert len(received) == 1

    async def test_unknown_payload(self, notifications: Notifications) -> None:
        assert await notifications.handle("QO3") is False

    async def test_mute_and_balance(self, notifications: Notifications) -> None:
        await notifications.handle("VUMO2")
        await notifications.handle("BO2L12")

        zone = notifications.repository.zones.get(2)
        assert zone is not None
        assert zone.volume.muted is False
        assert zone.balance.balance == -12

    async def test_name(self, notifications: Notifications) -> None:
        await notifications.handle('NO5"Kitchen"')
        zone = notifications.repository.zones.get(5)
        assert zone is not None
        assert zone.name == "Kitchen"

    async def test_volume_all_skips_locked_zones(self, notifications: Notifications) -> None:
        repository = notifications.repository
        locked = repository.zones.get(1)
        assert locked is not None
        locked.volume.set_locked(True)

        await notifications.handle("VXR-30")

        assert locked.volume.level != -30
        assert all(zone.volume.level == -30 for zone in repository.zones if zone.identifier != 1)

    async def test_group_membership(self, notifications: Notifications, received: list[Event]) -> None:
        await notifications.handle("G1AO4")
        await notifications.handle("G1AO2")
        group = notifications.repository.groups.get(1)
        assert group is not None
        assert group.zones == [2, 4]

        # Removal of a non-member is ignored
        received.clear()
        await notifications.handle("G1RO9")
        assert received == []

        await notifications.handle("GAR")
        assert group.zones == []
        assert received == [
            GroupZoneRemovedEvent(group=1, zone=2),
            GroupZoneRemovedEvent(group=1, zone=4),
        ]

    async def test_configuration_lifecycle(self, notifications: Notifications, received: list[Event]) -> None:
        for payload in ("SAVING...", "SAVING50%", "SAVING100%", "SAVE"):
            await notifications.handle(payload)

        assert [(e.operation, e.phase) for e in received if isinstance(e, ConfigurationLifecycleEvent)] == [
            ("SAVE", LifecyclePhase.WILL),
            ("SAVE", LifecyclePhase.IN_PROGRESS),
            ("SAVE", LifecyclePhase.IN_PROGRESS),
            ("SAVE", LifecyclePhase.DID),
        ]
        progress = [e for e in received if isinstance(e, ConfigurationLifecycleEvent) and e.percent]
        assert [e.percent for e in progress] == [50, 100]
