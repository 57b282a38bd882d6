"""
Configuration controller (server side).

Handles the four control-plane commands. Lifecycle lines go to the
initiating connection only:

    [SAVE]  -> (SAVING...) (SAVING0%) (SAVING50%) (SAVING100%) (SAVE)
    [LOAD]  -> (LOADING...) (LOADING0%) (LOADING50%) (LOADING100%) (LOAD)
    [RESET] -> (RESETTING...) (RESETTING0%) (RESETTING100%) (RESET)
    [QX]    -> every state line of every controller, then (QX)

A failed operation ends in ``(ERROR)``. Every phase is also published on
the server event bus as a ConfigurationLifecycleEvent.

Any successful mutation marks the configuration dirty; a dirty
configuration is saved to the backup store after ``autosave_interval``
seconds.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Sequence

from openhlx.core import HlxIOError, NotFoundError
from openhlx.core.backup import BackupStore
from openhlx.core.events import ConfigurationLifecycleEvent, LifecyclePhase, event_bus
from openhlx.model import ModelRepository, Status
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern
from openhlx.server.commands import CommandManager, RequestHandler
from openhlx.server.connection import ServerConnection
from openhlx.simulator.base import ChangeTracker, Controller

logger = logging.getLogger(__name__)

Stage = Callable[[], Awaitable[None]]


class ConfigurationController(Controller):
    def __init__(
        self,
        repository: ModelRepository,
        command_manager: CommandManager,
        changes: ChangeTracker,
        store: BackupStore,
        controllers: Sequence[Controller],
        autosave_interval: float = 30.0,
    ) -> None:
        super().__init__(repository, command_manager, changes)
        self.store = store
        self.controllers = list(controllers)
        self.autosave_interval = autosave_interval
        self._autosave_task: asyncio.Task[None] | None = None
        changes.set_listener(self._schedule_autosave)

    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        return [
            (commands.CONFIGURATION_LOAD, self._handle_load),
            (commands.CONFIGURATION_SAVE, self._handle_save),
            (commands.CONFIGURATION_RESET, self._handle_reset),
            (commands.CONFIGURATION_QUERY, self._handle_query),
        ]

    def configuration_lines(self) -> list[str]:
        lines: list[str] = []
        for controller in self.controllers:
            lines.extend(controller.configuration_lines())
        return lines

    # -----------------------------------------------------------------------------
    # Start-up / shutdown
    # -----------------------------------------------------------------------------

    async def restore(self) -> None:
        """
        Bring the model up at start-up.

        Defaults are applied first so values the backup does not carry
        (the network settings) are initialised; the backup is then applied
        on top. Without a backup the defaults are saved as the first one.
        """
        self.repository.reset_to_defaults()
        data = await self.store.load()
        if data is None:
            logger.info("No configuration backup; saving defaults")
            await self.save()
        else:
            self.repository.load_dict(data)
            logger.info("Restored configuration from %s", self.store.path)
        self.changes.clear()

    async def stop(self) -> None:
        """Cancel a pending autosave and flush unsaved changes."""
        task, self._autosave_task = self._autosave_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self.changes.dirty and self.store.is_open:
            try:
                await self.save()
            except HlxIOError as e:
                logger.warning("Could not save configuration on shutdown: %s", e)

    # -----------------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------------

    async def save(self, connection: ServerConnection | None = None) -> Status:
        snapshot: dict[str, Any] = {}
        generation = self.changes.generation

        async def serialise() -> None:
            nonlocal generation
            generation = self.changes.generation
            snapshot.update(self.repository.to_dict())

        async def write() -> None:
            await self.store.save(snapshot)

        status = await self._run("SAVE", connection, [serialise, write])
        if status is Status.SUCCESS:
            self.changes.clear(generation)
        return status

    async def load(self, connection: ServerConnection | None = None) -> Status:
        loaded: dict[str, Any] | None = None

        async def read() -> None:
            nonlocal loaded
            loaded = await self.store.load()
            if loaded is None:
                raise NotFoundError("No configuration backup")

        async def apply() -> None:
            if loaded is not None:
                self.repository.load_dict(loaded)

        status = await self._run("LOAD", connection, [read, apply])
        if status is Status.SUCCESS:
            self.changes.clear()
        return status

    async def reset(self, connection: ServerConnection | None = None) -> Status:
        changed = False

        async def apply_defaults() -> None:
            nonlocal changed
            changed = self.repository.reset_to_defaults()

        status = await self._run("RESET", connection, [apply_defaults])
        if changed:
            self.changes.mark_dirty()
        return status

    async def _run(
        self,
        operation: str,
        connection: ServerConnection | None,
        stages: list[Stage],
    ) -> Status:
        """Run the stages of an operation, reporting each lifecycle phase."""
        total = len(stages)

        await self._report(operation, LifecyclePhase.WILL, connection, commands.configuration_will(operation))
        await self._progress(operation, 0, total, connection)

        for index, stage in enumerate(stages, start=1):
            try:
                await stage()
            except NotFoundError as e:
                await self._did_not(operation, str(e))
                return Status.NOT_FOUND
            except HlxIOError as e:
                await self._did_not(operation, str(e))
                raise
            await self._progress(operation, index, total, connection)

        await self._report(operation, LifecyclePhase.DID, connection, operation)
        return Status.SUCCESS

    async def _progress(
        self,
        operation: str,
        numerator: int,
        denominator: int,
        connection: ServerConnection | None,
    ) -> None:
        await self._report(
            operation,
            LifecyclePhase.IN_PROGRESS,
            connection,
            commands.configuration_progress(operation, numerator, denominator),
            percent=commands.percent(numerator, denominator),
        )

    async def _report(
        self,
        operation: str,
        phase: LifecyclePhase,
        connection: ServerConnection | None,
        payload: str,
        percent: int = 0,
    ) -> None:
        if connection is not None:
            await self.command_manager.send_response(connection, payload)
        await event_bus.publish(
            ConfigurationLifecycleEvent(operation=operation, phase=phase, percent=percent)
        )

    async def _did_not(self, operation: str, reason: str) -> None:
        logger.warning("%s failed: %s", operation, reason)
        await event_bus.publish(
            ConfigurationLifecycleEvent(operation=operation, phase=LifecyclePhase.DID_NOT, reason=reason)
        )

    # -----------------------------------------------------------------------------
    # Autosave
    # -----------------------------------------------------------------------------

    def _schedule_autosave(self) -> None:
        if self.autosave_interval <= 0:
            return
        if self._autosave_task is not None and not self._autosave_task.done():
            return
        self._autosave_task = asyncio.create_task(self._autosave())

    async def _autosave(self) -> None:
        await asyncio.sleep(self.autosave_interval)
        if not self.changes.dirty:
            return
        logger.info("Saving changed configuration")
        try:
            await self.save()
        except HlxIOError as e:
            logger.warning("Autosave failed: %s", e)

    # -----------------------------------------------------------------------------
    # Request handlers
    # -----------------------------------------------------------------------------

    async def _handle_load(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self.load(connection)

    async def _handle_save(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self.save(connection)

    async def _handle_reset(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self.reset(connection)

    async def _handle_query(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        await event_bus.publish(ConfigurationLifecycleEvent(operation="QX", phase=LifecyclePhase.WILL))
        await self.reply(connection, self.configuration_lines())
        await event_bus.publish(ConfigurationLifecycleEvent(operation="QX", phase=LifecyclePhase.DID))
        return await self.reply_query(connection, [], match)
