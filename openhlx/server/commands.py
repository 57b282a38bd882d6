"""
Command Manager - routes inbound request payloads to their handlers.

Handlers are registered against a :class:`CommandPattern` and invoked as
``await handler(connection, match)``; ``match.string`` is the payload and
``match.group(n)`` its captures. A handler returns a :class:`Status`:
anything other than SUCCESS or ALREADY_SET is answered with ``(ERROR)``
on the initiating connection, which stays open.

Response routing:
- ``send_response()``: unicast to the initiator (queries, lifecycle lines)
- ``broadcast()``: every registered connection (state-change notifications)
- ``send_error()``: ``(ERROR)`` to the initiator
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable

from openhlx.core import HlxIOError
from openhlx.model.values import Status
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern, DispatchTable
from openhlx.protocol.framing import encode_response
from openhlx.server.connection import ServerConnection
from openhlx.server.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

RequestHandler = Callable[[ServerConnection, "re.Match[str]"], Awaitable[Status]]


class CommandManager:
    """
    Server-side request dispatch.

    Requests are executed one at a time across all connections, so the
    model sees a single mutator in flight and every observer receives a
    group fan-out as one uninterrupted run of notifications.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry
        self._table: DispatchTable[RequestHandler] = DispatchTable()
        self._lock = asyncio.Lock()

    def register(self, pattern: CommandPattern, handler: RequestHandler) -> None:
        """
        Register a request handler.

        Raises:
            InvalidArgumentError: If the pattern is already registered.
        """
        self._table.register(pattern, handler)

    def __len__(self) -> int:
        return len(self._table)

    async def dispatch(self, connection: ServerConnection, payload: str) -> Status:
        """Run the handler for one request payload and answer errors."""
        found = self._table.lookup(payload)
        if found is None:
            logger.warning("Unrecognized request from %s: %r", connection.name, payload)
            await self.send_error(connection)
            return Status.INVALID_ARGUMENT

        registration, match = found
        async with self._lock:
            try:
                status = await registration.handler(connection, match)
            except HlxIOError as e:
                logger.warning("I/O error handling %s from %s: %s", payload, connection.name, e)
                status = Status.INVALID_ARGUMENT
            except Exception as e:
                logger.exception("Error handling %s from %s: %s", payload, connection.name, e)
                status = Status.INVALID_ARGUMENT

        if not status.is_ok:
            logger.debug("%s from %s failed: %s", payload, connection.name, status.value)
            await self.send_error(connection)
        return status

    async def send_response(self, connection: ServerConnection, payload: str) -> None:
        logger.debug("-> %s: (%s)", connection.name, payload)
        await connection.send(encode_response(payload))

    async def send_error(self, connection: ServerConnection) -> None:
        await self.send_response(connection, commands.error())

    async def broadcast(self, payload: str) -> None:
        """Send a notification to every connected client."""
        data = encode_response(payload)
        logger.debug("-> *: (%s)", payload)
        for connection in await self.registry.get_all():
            try:
                await connection.send(data)
            except HlxIOError as e:
                # The connection's own read loop notices and cleans up
                logger.debug("Broadcast to %s failed: %s", connection.name, e)
