"""
HLX proxy: serves HLX clients from a mirror of an upstream HLX server.

    downstream client --[request]--> proxy --[request]--> upstream server
                      <--(response)--      <--(response)--

Queries are answered locally from the mirror the upstream client keeps
current, using the same query handlers as the simulator. Every other
request is forwarded upstream verbatim, one at a time, and completes when
the upstream answers it. What the upstream says is relayed:

- state lines are broadcast to every downstream client
- configuration progress lines go to the client whose request is being
  forwarded
- ``(ERROR)`` is answered to that client only

While the upstream is unreachable, queries are still answered from the
mirror and forwarded requests are answered with ``(ERROR)``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import re
import signal

from openhlx.client import HlxClient
from openhlx.client.exchange import Expectation
from openhlx.core import CommandRejectedError, ExchangeError, HlxIOError, SystemNotInitializedError
from openhlx.core.events import ConnectionStateEvent, Event
from openhlx.model import Status
from openhlx.protocol import commands
from openhlx.protocol.connection import DEFAULT_PORT, DEFAULT_SCHEME
from openhlx.protocol.dispatch import CommandPattern
from openhlx.server import CommandManager, ConnectionRegistry, ServerConnection, TelnetServer
from openhlx.simulator import (
    ChangeTracker,
    Controller,
    EqualizerPresetsController,
    FavoritesController,
    FrontPanelController,
    GroupsController,
    InfraredController,
    NetworkController,
    SourcesController,
    ZonesController,
)

logger = logging.getLogger(__name__)

# Requests completed by a response of another form
_RESPONSES: dict[str, CommandPattern] = {
    commands.ZONE_VOLUME_UP.name: commands.ZONE_VOLUME,
    commands.ZONE_VOLUME_DOWN.name: commands.ZONE_VOLUME,
    commands.ZONE_TOGGLE_MUTE.name: commands.ZONE_MUTE,
    commands.ZONE_BALANCE_ADJUST.name: commands.ZONE_BALANCE,
    commands.ZONE_BASS_UP.name: commands.ZONE_TONE,
    commands.ZONE_BASS_DOWN.name: commands.ZONE_TONE,
    commands.ZONE_TREBLE_UP.name: commands.ZONE_TONE,
    commands.ZONE_TREBLE_DOWN.name: commands.ZONE_TONE,
    commands.ZONE_EQUALIZER_BAND_UP.name: commands.ZONE_EQUALIZER_BAND,
    commands.ZONE_EQUALIZER_BAND_DOWN.name: commands.ZONE_EQUALIZER_BAND,
    commands.GROUP_VOLUME_UP.name: commands.GROUP_VOLUME,
    commands.GROUP_VOLUME_DOWN.name: commands.GROUP_VOLUME,
    commands.GROUP_TOGGLE_MUTE.name: commands.GROUP_MUTE,
    commands.EQUALIZER_PRESET_BAND_UP.name: commands.EQUALIZER_PRESET_BAND,
    commands.EQUALIZER_PRESET_BAND_DOWN.name: commands.EQUALIZER_PRESET_BAND,
}

# Capture holding the entity identifier, where it is not the first
_ENTITY_GROUP = {commands.ZONE_MUTE.name: 2, commands.GROUP_MUTE.name: 2}

_ENTITY_KINDS = ("zone", "group", "source", "equalizer_preset", "favorite")
_MATRIX_WIDE = {commands.ZONE_VOLUME_ALL.name, commands.ZONE_SOURCE_ALL.name, commands.GROUP_CLEAR_ALL.name}

_CONFIGURATION_OPERATIONS = (
    commands.CONFIGURATION_LOAD,
    commands.CONFIGURATION_SAVE,
    commands.CONFIGURATION_RESET,
)

# Unicast by the server to the initiator of a configuration operation
_CONFIGURATION_PROGRESS = (
    *_CONFIGURATION_OPERATIONS,
    commands.CONFIGURATION_LOADING,
    commands.CONFIGURATION_LOADING_PROGRESS,
    commands.CONFIGURATION_SAVING,
    commands.CONFIGURATION_SAVING_PROGRESS,
    commands.CONFIGURATION_RESETTING,
    commands.CONFIGURATION_RESETTING_PROGRESS,
)


def _entity(pattern: CommandPattern, match: re.Match[str]) -> int | None:
    kind = pattern.name.split(".", 1)[0]
    if kind not in _ENTITY_KINDS or pattern.name in _MATRIX_WIDE:
        return None
    return int(match.group(_ENTITY_GROUP.get(pattern.name, 1)))


def response_for(pattern: CommandPattern, match: re.Match[str]) -> tuple[CommandPattern, Expectation | None]:
    """
    The response that completes a forwarded request.

    Returns the response pattern and, for requests addressed to one
    entity, a filter accepting only responses about that entity.
    """
    response = _RESPONSES.get(pattern.name, pattern)
    entity = _entity(pattern, match)
    if entity is None:
        return response, None
    index = _ENTITY_GROUP.get(response.name, 1)
    return response, lambda m: int(m.group(index)) == entity


class HlxProxy:
    """
    The proxy server.

    Start-up order:
        upstream connection -> mirror refresh -> listener

    A lost upstream is reconnected every ``reconnect_interval`` seconds;
    with an interval of 0 the proxy shuts down instead.
    """

    def __init__(
        self,
        upstream_host: str,
        upstream_port: int = DEFAULT_PORT,
        *,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        scheme: str = DEFAULT_SCHEME,
        request_timeout: float | None = 10.0,
        handshake_timeout: float = 5.0,
        reconnect_interval: float = 5.0,
    ) -> None:
        self.upstream_host = upstream_host
        self.upstream_port = upstream_port
        self.host = host
        self.reconnect_interval = reconnect_interval

        self.upstream = HlxClient(request_timeout=request_timeout, handshake_timeout=handshake_timeout)
        self.repository = self.upstream.repository
        self.registry = ConnectionRegistry()
        self.command_manager = CommandManager(self.registry)

        # QX reports entities in this order
        args = (self.repository, self.command_manager, ChangeTracker())
        zones = ZonesController(*args)
        self.controllers: list[Controller] = [
            SourcesController(*args),
            zones,
            GroupsController(*args, zones=zones),
            EqualizerPresetsController(*args),
            FavoritesController(*args),
            FrontPanelController(*args),
            InfraredController(*args),
            NetworkController(*args),
        ]
        self._queries: list[CommandPattern] = []
        self._register()

        self.upstream.add_line_listener(self._relay)
        self.listener = TelnetServer(self.command_manager, host=host, port=port, scheme=scheme)

        self._initiator: ServerConnection | None = None
        self._running = False
        self._shutdown_event: asyncio.Event | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    def _register(self) -> None:
        for controller in self.controllers:
            for pattern, handler in controller.requests():
                if ".query" in pattern.name:
                    self._queries.append(pattern)
                    self.command_manager.register(pattern, handler)
                else:
                    self.command_manager.register(pattern, functools.partial(self._forward, pattern))

        self._queries.append(commands.CONFIGURATION_QUERY)
        self.command_manager.register(commands.CONFIGURATION_QUERY, self._handle_configuration_query)
        for pattern in _CONFIGURATION_OPERATIONS:
            self.command_manager.register(pattern, functools.partial(self._forward, pattern))

    # -----------------------------------------------------------------------------
    # Requests
    # -----------------------------------------------------------------------------

    async def _forward(self, pattern: CommandPattern, connection: ServerConnection, match: re.Match[str]) -> Status:
        request = match.string
        if not self.upstream.is_connected:
            logger.warning("Cannot forward [%s] from %s: upstream not connected", request, connection.name)
            return Status.NOT_INITIALIZED

        response, expect = response_for(pattern, match)
        self._initiator = connection
        try:
            await self.upstream.exchange.submit(request, response, expect=expect)
        except CommandRejectedError:
            logger.debug("Upstream rejected [%s] from %s", request, connection.name)
            return Status.INVALID_ARGUMENT
        except (ExchangeError, SystemNotInitializedError) as e:
            logger.warning("Forwarding [%s] from %s failed: %s", request, connection.name, e)
            return Status.NOT_INITIALIZED
        finally:
            self._initiator = None

        if pattern.name in (commands.CONFIGURATION_LOAD.name, commands.CONFIGURATION_RESET.name):
            # The upstream reports the new state only when asked
            await self._refresh()
        return Status.SUCCESS

    async def _handle_configuration_query(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        for controller in self.controllers:
            await controller.reply(connection, controller.configuration_lines())
        await self.command_manager.send_response(connection, match.string)
        return Status.SUCCESS

    # -----------------------------------------------------------------------------
    # Upstream
    # -----------------------------------------------------------------------------

    async def _relay(self, payload: str) -> None:
        """Pass an upstream line on to the downstream clients."""
        if commands.ERROR.match(payload) is not None:
            return
        if any(pattern.match(payload) is not None for pattern in self._queries):
            return

        if any(pattern.match(payload) is not None for pattern in _CONFIGURATION_PROGRESS):
            initiator = self._initiator
            if initiator is None or initiator.is_closed:
                logger.debug("Dropping unsolicited (%s)", payload)
                return
            try:
                await self.command_manager.send_response(initiator, payload)
            except HlxIOError as e:
                logger.debug("Relay to %s failed: %s", initiator.name, e)
            return

        await self.command_manager.broadcast(payload)

    async def _refresh(self) -> None:
        try:
            await self.upstream.refresh()
        except ExchangeError as e:
            logger.warning("Refreshing the mirror from %s failed: %s", self.upstream_address, e)

    async def _on_upstream_state(self, event: Event) -> None:
        if not isinstance(event, ConnectionStateEvent) or event.state != "closed":
            return
        if not self._running:
            return

        if self.reconnect_interval <= 0:
            logger.error("Lost upstream %s (%s); shutting down", self.upstream_address, event.error)
            if self._shutdown_event:
                self._shutdown_event.set()
            return

        if self._reconnect_task is None or self._reconnect_task.done():
            logger.warning(
                "Lost upstream %s (%s); reconnecting every %ss",
                self.upstream_address,
                event.error or "closed",
                self.reconnect_interval,
            )
            self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        while self._running and not self.upstream.is_connected:
            await asyncio.sleep(self.reconnect_interval)
            try:
                await self.upstream.connect(self.upstream_host, self.upstream_port)
            except HlxIOError as e:
                logger.info("Upstream %s still unreachable: %s", self.upstream_address, e)
                continue
            logger.info("Reconnected to upstream %s", self.upstream_address)
            await self._refresh()

    # -----------------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------------

    async def start(self) -> None:
        """
        Connect upstream, fill the mirror and start listening.

        Raises:
            HlxIOError: If the upstream cannot be reached.
        """
        logger.info("Starting HLX proxy for %s on %s:%d", self.upstream_address, self.host, self.listener.port)

        self._running = True
        self._shutdown_event = asyncio.Event()

        try:
            await self.upstream.connect(self.upstream_host, self.upstream_port)
            await self.upstream.refresh()
        except (HlxIOError, ExchangeError):
            self._running = False
            await self.upstream.disconnect()
            raise

        await self.upstream.events.subscribe("connection.state", self._on_upstream_state)
        await self.listener.start()

        logger.info("HLX proxy started on port %d", self.port)

    async def stop(self) -> None:
        """Stop listening and drop the upstream connection."""
        if not self._running:
            return

        logger.info("Stopping HLX proxy...")
        self._running = False

        task, self._reconnect_task = self._reconnect_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self.listener.stop()
        await self.upstream.disconnect()

        if self._shutdown_event:
            self._shutdown_event.set()

        logger.info("HLX proxy stopped")

    async def run(self) -> None:
        """
        Run the proxy until shutdown is requested (SIGINT or SIGTERM).
        """
        await self.start()

        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            if self._shutdown_event:
                self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                # Signal handlers not supported on Windows
                pass

        if self._shutdown_event:
            await self._shutdown_event.wait()

        await self.stop()

    @property
    def upstream_address(self) -> str:
        return f"{self.upstream_host}:{self.upstream_port}"

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> int:
        """The bound telnet port."""
        return self.listener.bound_port

    @property
    def connected_clients(self) -> int:
        return len(self.registry)
