"""
HLX telnet listener.

Accepts TCP connections and runs one message loop per client:

    accept -> claim identifier -> greeting -> CONFIRMED -> READY
           -> read / telnet filter / framer / command manager ...
           -> CLOSED -> release identifier

Nothing a client sends is looked at before the greeting has been
written; early requests simply wait in the socket buffer.
"""

from __future__ import annotations

import asyncio
import logging

from openhlx.core import HlxIOError
from openhlx.core.events import ConnectionClosedEvent, ConnectionOpenedEvent, event_bus
from openhlx.protocol.connection import DEFAULT_PORT, DEFAULT_SCHEME, ConnectionState
from openhlx.protocol.framing import Framer, Role, TelnetFilter
from openhlx.protocol.identifiers import SchemeIdentifierManager
from openhlx.server.commands import CommandManager
from openhlx.server.connection import ServerConnection
from openhlx.server.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class TelnetServer:
    """
    Telnet-scheme listener for the HLX control protocol.

    Attributes:
        host: The host address to bind to.
        port: The TCP port to listen on (0 picks a free port; see ``bound_port``).
        scheme: URL scheme used to name connections.
        registry: Registry of confirmed connections.
        command_manager: Dispatches request payloads.
    """

    def __init__(
        self,
        command_manager: CommandManager,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        scheme: str = DEFAULT_SCHEME,
    ) -> None:
        self.host = host
        self.port = port
        self.scheme = scheme
        self.command_manager = command_manager
        self.registry: ConnectionRegistry = command_manager.registry
        self.identifiers = SchemeIdentifierManager()

        self._server: asyncio.Server | None = None
        self._running = False
        self._client_tasks: dict[int, asyncio.Task[None]] = {}

    async def start(self) -> None:
        """
        Start accepting connections.

        Raises:
            HlxIOError: If the address cannot be bound.
        """
        if self._running:
            logger.warning("Telnet server already running")
            return

        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                host=self.host,
                port=self.port,
                reuse_address=True,
            )
        except OSError as e:
            raise HlxIOError(f"Cannot listen on {self.host}:{self.port}: {e}") from e

        self._running = True
        logger.info("Telnet server listening on %s:%d", self.host, self.bound_port)

    async def stop(self) -> None:
        """Stop the server and close all connections."""
        if not self._running:
            return

        logger.info("Stopping telnet server...")
        self._running = False

        if self._server:
            self._server.close()

        # Cancel all client handler tasks
        for task in self._client_tasks.values():
            task.cancel()

        if self._client_tasks:
            await asyncio.gather(*self._client_tasks.values(), return_exceptions=True)
            self._client_tasks.clear()

        await self.registry.disconnect_all()

        if self._server:
            await self._server.wait_closed()
            self._server = None

        logger.info("Telnet server stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bound_port(self) -> int:
        """The port actually bound, which differs from ``port`` when it was 0."""
        if self._server and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self.port

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """
        Handle a new incoming connection.

        This is called by asyncio for each new client connection.
        """
        identifier = self.identifiers.claim(self.scheme)
        connection = ServerConnection(reader, writer, self.scheme, identifier)
        registered = False

        logger.info("New connection from %s as %s", connection.remote_addr, connection.name)

        if task := asyncio.current_task():
            self._client_tasks[identifier] = task

        try:
            await connection.send_greeting()
            connection.transition(ConnectionState.CONFIRMED)
            connection.transition(ConnectionState.READY)

            await self.registry.register(connection)
            registered = True

            await event_bus.publish(
                ConnectionOpenedEvent(
                    connection_id=identifier,
                    scheme=self.scheme,
                    remote_addr=connection.remote_addr,
                )
            )

            await self._message_loop(connection)
        except asyncio.CancelledError:
            logger.debug("Connection handler cancelled for %s", connection.name)
        except ConnectionResetError:
            logger.info("Connection reset by %s", connection.remote_addr)
        except HlxIOError as e:
            logger.info("I/O error on %s: %s", connection.name, e)
        except Exception as e:
            logger.exception("Error handling connection from %s: %s", connection.remote_addr, e)
        finally:
            self._client_tasks.pop(identifier, None)
            if registered:
                await self.registry.unregister(identifier)
                await event_bus.publish(
                    ConnectionClosedEvent(
                        connection_id=identifier,
                        scheme=self.scheme,
                        remote_addr=connection.remote_addr,
                    )
                )

            await connection.close()
            self.identifiers.release(self.scheme, identifier)
            logger.info("Connection closed: %s", connection.name)

    async def _message_loop(self, connection: ServerConnection) -> None:
        """Read, unframe and dispatch requests until the peer goes away."""
        telnet = TelnetFilter()
        framer = Framer()

        while self._running and not connection.is_closed:
            data = await connection.reader.read(READ_CHUNK_SIZE)
            if not data:
                logger.debug("Client %s disconnected", connection.name)
                break

            clean, replies = telnet.feed(data)
            if replies:
                await connection.send(replies)

            for frame in framer.feed(clean):
                if frame.role is not Role.REQUEST:
                    logger.debug("Ignoring response frame from %s: %s", connection.name, frame.payload)
                    continue
                logger.debug("<- %s: [%s]", connection.name, frame.payload)
                await self.command_manager.dispatch(connection, frame.payload)
