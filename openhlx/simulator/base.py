"""
Shared plumbing for the simulator's application controllers.

A controller owns the request handlers for one entity kind. It borrows its
slice of the model repository, registers its patterns with the command
manager and reports every successful mutation to the change tracker so the
configuration controller knows the backup is stale.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable

from openhlx.core import ValueAlreadySetError
from openhlx.model import ModelRepository, Status
from openhlx.protocol.dispatch import CommandPattern
from openhlx.server.commands import CommandManager, RequestHandler
from openhlx.server.connection import ServerConnection

logger = logging.getLogger(__name__)


class ChangeTracker:
    """Dirty flag for the configuration with one change listener."""

    def __init__(self) -> None:
        self.dirty = False
        self.generation = 0
        self._listener: Callable[[], None] | None = None

    def set_listener(self, listener: Callable[[], None]) -> None:
        """
        Install the callback run on every change.

        Raises:
            ValueAlreadySetError: If a listener is already installed.
        """
        if self._listener is not None:
            raise ValueAlreadySetError("Change listener is already set")
        self._listener = listener

    def mark_dirty(self) -> None:
        self.dirty = True
        self.generation += 1
        if self._listener is not None:
            self._listener()

    def clear(self, generation: int | None = None) -> None:
        """Mark clean, unless a change newer than ``generation`` happened since."""
        if generation is None or generation == self.generation:
            self.dirty = False


class Controller:
    """Base class for the server-side controllers."""

    def __init__(
        self,
        repository: ModelRepository,
        command_manager: CommandManager,
        changes: ChangeTracker,
    ) -> None:
        self.repository = repository
        self.command_manager = command_manager
        self.changes = changes

    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        """The (pattern, handler) pairs this controller serves."""
        raise NotImplementedError

    def register(self) -> None:
        for pattern, handler in self.requests():
            self.command_manager.register(pattern, handler)

    def configuration_lines(self) -> list[str]:
        """Response payloads describing this controller's state for ``QX``."""
        return []

    async def commit(self, status: Status, compose: Callable[[], str]) -> Status:
        """
        Broadcast the state-change response for a mutation.

        Both SUCCESS and ALREADY_SET are echoed; only SUCCESS marks the
        configuration dirty. Any other status is returned untouched.
        """
        if not status.is_ok:
            return status
        await self.command_manager.broadcast(compose())
        if status is Status.SUCCESS:
            self.changes.mark_dirty()
        return status

    async def reply(self, connection: ServerConnection, lines: Iterable[str]) -> None:
        for line in lines:
            await self.command_manager.send_response(connection, line)

    async def reply_query(
        self,
        connection: ServerConnection,
        lines: Iterable[str],
        match: re.Match[str],
    ) -> Status:
        """Answer a compound query: the data lines, then the query echoed back."""
        await self.reply(connection, lines)
        await self.command_manager.send_response(connection, match.string)
        return Status.SUCCESS


def identifier(match: re.Match[str], index: int = 1) -> int:
    return int(match.group(index))


def flag(match: re.Match[str], index: int = 1) -> bool:
    return match.group(index) == "1"
