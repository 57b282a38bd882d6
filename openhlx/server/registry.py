"""
Connection Registry - the set of confirmed client connections.

Broadcast notifications go to every connection in the registry, so a
connection is only registered once its greeting has been written.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterator

from openhlx.server.connection import ServerConnection

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Registry of connected HLX clients, indexed by connection identifier.

    Thread-safety: This class uses an asyncio lock for safe concurrent
    access from multiple coroutines.
    """

    def __init__(self) -> None:
        self._connections: dict[int, ServerConnection] = {}
        self._lock = asyncio.Lock()

    async def register(self, connection: ServerConnection) -> None:
        async with self._lock:
            self._connections[connection.identifier] = connection
            logger.info("Client registered: %s (%s)", connection.name, connection.remote_addr)

    async def unregister(self, identifier: int) -> ServerConnection | None:
        """
        Remove a connection from the registry.

        Returns:
            The removed connection, or None if not found.
        """
        async with self._lock:
            connection = self._connections.pop(identifier, None)
            if connection:
                logger.info("Client unregistered: %s", connection.name)
            return connection

    async def get(self, identifier: int) -> ServerConnection | None:
        async with self._lock:
            return self._connections.get(identifier)

    async def get_all(self) -> list[ServerConnection]:
        """
        Get all connections in identifier order.

        Returns:
            A list of all registered connections (copy, safe to iterate).
        """
        async with self._lock:
            return [self._connections[key] for key in sorted(self._connections)]

    async def disconnect_all(self) -> None:
        """Close all connections and clear the registry (server shutdown)."""
        async with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()

        # Close outside the lock to avoid holding it during I/O
        for connection in connections:
            await connection.close()

        logger.info("All clients disconnected (%d total)", len(connections))

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, identifier: int) -> bool:
        return identifier in self._connections

    def __iter__(self) -> Iterator[int]:
        return iter(self._connections)

    def __bool__(self) -> bool:
        """A registry instance is always truthy, even when empty."""
        return True
