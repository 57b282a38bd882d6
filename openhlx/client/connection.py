"""
Client side of an HLX telnet connection.

    open -> CONNECTED -> greeting matched -> CONFIRMED -> READY
         -> reader task: telnet filter -> framer -> on_response(payload)
         -> peer close / read error -> CLOSED -> on_closed(error)

Requests are written by the exchange manager through :meth:`send_request`;
the connection itself never waits for responses.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from openhlx.core import HlxIOError
from openhlx.protocol.connection import ConnectionBasis, ConnectionState, parse_greeting
from openhlx.protocol.framing import Framer, Role, TelnetFilter, encode_request

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

ResponseCallback = Callable[[str], Awaitable[None]]
ClosedCallback = Callable[[Exception | None], Awaitable[None]]


class ClientConnection(ConnectionBasis):
    """
    A confirmed connection to an HLX server.

    Use :meth:`open` rather than the constructor; it performs the
    confirmation handshake and starts the reader task.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        on_response: ResponseCallback,
        on_closed: ClosedCallback | None = None,
    ) -> None:
        super().__init__(reader, writer)
        self.scheme: str | None = None
        self.identifier: int | None = None
        self._on_response = on_response
        self._on_closed = on_closed
        self._telnet = TelnetFilter()
        self._framer = Framer()
        self._reader_task: asyncio.Task[None] | None = None

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        on_response: ResponseCallback,
        on_closed: ClosedCallback | None = None,
        timeout: float = 5.0,
    ) -> ClientConnection:
        """
        Connect, wait for the greeting and start reading.

        Raises:
            HlxIOError: If the connection fails or no valid greeting arrives
                within ``timeout`` seconds.
        """
        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        except (OSError, asyncio.TimeoutError) as e:
            raise HlxIOError(f"Cannot connect to {host}:{port}: {e}") from e

        connection = cls(reader, writer, on_response, on_closed)
        try:
            await asyncio.wait_for(connection._confirm(), timeout)
        except asyncio.TimeoutError as e:
            await connection.close()
            raise HlxIOError(f"No greeting from {host}:{port} within {timeout}s") from e
        except HlxIOError:
            await connection.close()
            raise

        connection.transition(ConnectionState.READY)
        connection._reader_task = asyncio.create_task(
            connection._read_loop(), name=f"hlx-reader-{connection.remote_addr}"
        )
        logger.info("Connected to %s as %s_client_%s", connection.remote_addr, connection.scheme, connection.identifier)
        return connection

    async def _confirm(self) -> None:
        """Read lines until the greeting; telnet negotiation is answered on the way."""
        pending = b""
        while True:
            try:
                chunk = await self.reader.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                raise HlxIOError(f"{self.remote_addr} closed before greeting") from e
            except (ConnectionError, OSError) as e:
                raise HlxIOError(f"Read from {self.remote_addr} failed: {e}") from e

            data, replies = self._telnet.feed(chunk)
            if replies:
                await self.send(replies)
            pending += data
            if not pending.endswith(b"\n"):
                continue

            greeting = parse_greeting(pending)
            if greeting is not None:
                self.scheme, self.identifier = greeting
                self.transition(ConnectionState.CONFIRMED)
                return
            logger.debug("Ignoring pre-greeting line from %s: %r", self.remote_addr, pending)
            pending = b""

    async def send_request(self, payload: str) -> None:
        logger.debug("%s <- [%s]", self.remote_addr, payload)
        await self.send(encode_request(payload))

    async def _read_loop(self) -> None:
        error: Exception | None = None
        try:
            while True:
                data = await self.reader.read(READ_CHUNK_SIZE)
                if not data:
                    logger.info("Server %s closed the connection", self.remote_addr)
                    break

                clean, replies = self._telnet.feed(data)
                if replies:
                    await self.send(replies)

                for frame in self._framer.feed(clean):
                    if frame.role is not Role.RESPONSE:
                        logger.warning("Dropping request frame from server: [%s]", frame.payload)
                        continue
                    logger.debug("%s -> (%s)", self.remote_addr, frame.payload)
                    await self._on_response(frame.payload)

        except asyncio.CancelledError:
            # Local close
            raise
        except (ConnectionError, OSError, HlxIOError) as e:
            logger.info("Connection to %s lost: %s", self.remote_addr, e)
            error = e

        await self._closed_by_peer(error)

    async def _closed_by_peer(self, error: Exception | None) -> None:
        if self.is_closed:
            return
        self.transition(ConnectionState.CLOSED)
        try:
            self.writer.close()
        except (ConnectionError, OSError) as e:
            logger.debug("Error closing %s: %s", self.remote_addr, e)
        if self._on_closed is not None:
            await self._on_closed(error)

    async def lost(self, error: Exception) -> None:
        """Treat a local write failure like a peer close."""
        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        logger.info("Connection to %s lost: %s", self.remote_addr, error)
        await self._closed_by_peer(error)

    async def close(self) -> None:
        """Stop reading and close the transport; no close callback runs."""
        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await super().close()
