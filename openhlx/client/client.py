"""
HLX client.

Composes the connection, the exchange manager, a local model mirror, the
per-entity controllers and the notification bus:

    server line -> notifications (mirror + typed event) -> pending exchange

Usage:
    client = HlxClient()
    await client.connect("192.168.1.48")
    await client.events.subscribe("zone.volume", on_volume)
    await client.zones.set_volume(3, -20)
    await client.disconnect()
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from openhlx.core import DisconnectedError, ExchangeCancelledError, HlxIOError
from openhlx.core.events import ConnectionStateEvent, EventBus
from openhlx.model import ModelRepository
from openhlx.protocol.connection import DEFAULT_PORT

from openhlx.client.connection import ClientConnection
from openhlx.client.controllers import (
    ConfigurationController,
    EqualizerPresetsController,
    FavoritesController,
    FrontPanelController,
    GroupsController,
    InfraredController,
    NetworkController,
    SourcesController,
    ZonesController,
)
from openhlx.client.exchange import ExchangeManager
from openhlx.client.notifications import Notifications

logger = logging.getLogger(__name__)

LineListener = Callable[[str], Awaitable[None]]


class HlxClient:
    """
    A controller for one HLX server.

    Attributes:
        repository: Mirror of the server state, filled by responses.
        events: Notification bus for typed state-change events.
    """

    def __init__(
        self,
        *,
        request_timeout: float | None = 10.0,
        handshake_timeout: float = 5.0,
    ) -> None:
        self.handshake_timeout = handshake_timeout

        self.repository = ModelRepository()
        self.events = EventBus()
        self.exchange = ExchangeManager(default_timeout=request_timeout)
        self.notifications = Notifications(self.repository, self.events)
        self.connection: ClientConnection | None = None
        self._line_listeners: list[LineListener] = []

        self.zones = ZonesController(self.exchange, self.repository)
        self.groups = GroupsController(self.exchange, self.repository)
        self.sources = SourcesController(self.exchange, self.repository)
        self.equalizer_presets = EqualizerPresetsController(self.exchange, self.repository)
        self.favorites = FavoritesController(self.exchange, self.repository)
        self.front_panel = FrontPanelController(self.exchange, self.repository)
        self.infrared = InfraredController(self.exchange, self.repository)
        self.network = NetworkController(self.exchange, self.repository)
        self.configuration = ConfigurationController(self.exchange, self.repository, self.events)

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and not self.connection.is_closed

    async def connect(self, host: str, port: int = DEFAULT_PORT) -> None:
        """
        Connect and complete the confirmation handshake.

        Raises:
            HlxIOError: If the server cannot be reached or never greets.
        """
        if self.is_connected:
            logger.warning("Already connected to %s", self.connection.remote_addr)  # type: ignore[union-attr]
            return

        try:
            connection = await ClientConnection.open(
                host,
                port,
                on_response=self._on_response,
                on_closed=self._on_closed,
                timeout=self.handshake_timeout,
            )
        except HlxIOError as e:
            await self._publish_state("closed", f"{host}:{port}", str(e))
            raise

        self.connection = connection
        self.exchange.attach(connection)
        await self._publish_state(connection.state.value, connection.remote_addr)

    async def disconnect(self) -> None:
        """Close the connection; pending requests fail as cancelled."""
        connection, self.connection = self.connection, None
        if connection is None:
            return
        self.exchange.fail_all(ExchangeCancelledError("Client disconnected"))
        await connection.close()
        logger.info("Disconnected from %s", connection.remote_addr)
        await self._publish_state(connection.state.value, connection.remote_addr)

    async def refresh(self) -> None:
        """Fill the mirror with the complete server state (``QX``)."""
        await self.configuration.query()

    async def __aenter__(self) -> HlxClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    def add_line_listener(self, listener: LineListener) -> None:
        """Receive every server response payload, after the mirror has seen it."""
        self._line_listeners.append(listener)

    async def _on_response(self, payload: str) -> None:
        matched = await self.notifications.handle(payload)
        for listener in self._line_listeners:
            await listener(payload)
        completed = self.exchange.offer(payload)
        if not matched and not completed:
            logger.debug("Unhandled response (%s)", payload)

    async def _on_closed(self, error: Exception | None) -> None:
        connection = self.connection
        self.connection = None
        reason = str(error) if error else "closed by server"
        self.exchange.fail_all(DisconnectedError(f"Connection lost: {reason}"))
        remote = connection.remote_addr if connection else ""
        await self._publish_state("closed", remote, reason)

    async def _publish_state(self, state: str, remote_addr: str, error: str = "") -> None:
        await self.events.publish(ConnectionStateEvent(state=state, remote_addr=remote_addr, error=error))
