"""
HLX simulator: a network-attached stand-in for an HLX audio matrix.

Wires the model repository, the server runtime and the per-entity
controllers together and owns the start-up / shutdown sequence.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from openhlx.core.backup import BackupStore
from openhlx.model import ModelRepository
from openhlx.protocol.connection import DEFAULT_PORT, DEFAULT_SCHEME
from openhlx.server import CommandManager, ConnectionRegistry, TelnetServer
from openhlx.simulator.base import ChangeTracker, Controller
from openhlx.simulator.configuration import ConfigurationController
from openhlx.simulator.equalizer_presets import EqualizerPresetsController
from openhlx.simulator.favorites import FavoritesController
from openhlx.simulator.groups import GroupsController
from openhlx.simulator.sources import SourcesController
from openhlx.simulator.system import FrontPanelController, InfraredController, NetworkController
from openhlx.simulator.zones import ZonesController

logger = logging.getLogger(__name__)


class HlxSimulator:
    """
    The simulator server.

    Start-up order:
        backup store -> restore configuration -> listener

    Shutdown runs in reverse, flushing unsaved changes before the backup
    store is closed.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        *,
        scheme: str = DEFAULT_SCHEME,
        backup_path: Path | None = None,
        autosave_interval: float = 30.0,
    ) -> None:
        """
        Initialize the simulator.

        Args:
            host: Host address to bind to.
            port: Telnet port (default 23; 0 picks a free port).
            scheme: URL scheme used to name connections.
            backup_path: SQLite file for the configuration backup.
            autosave_interval: Seconds after a change before it is saved;
                0 disables autosave.
        """
        self.host = host

        self.repository = ModelRepository()
        self.registry = ConnectionRegistry()
        self.command_manager = CommandManager(self.registry)
        self.changes = ChangeTracker()
        self.backup = BackupStore(db_path=str(backup_path or Path("hlx-backup.db")))

        args = (self.repository, self.command_manager, self.changes)
        self.zones = ZonesController(*args)
        self.groups = GroupsController(*args, zones=self.zones)
        self.sources = SourcesController(*args)
        self.equalizer_presets = EqualizerPresetsController(*args)
        self.favorites = FavoritesController(*args)
        self.front_panel = FrontPanelController(*args)
        self.infrared = InfraredController(*args)
        self.network = NetworkController(*args)

        # QX reports entities in this order
        self.configuration = ConfigurationController(
            *args,
            store=self.backup,
            controllers=[
                self.sources,
                self.zones,
                self.groups,
                self.equalizer_presets,
                self.favorites,
                self.front_panel,
                self.infrared,
                self.network,
            ],
            autosave_interval=autosave_interval,
        )

        for controller in self.controllers:
            controller.register()

        self.listener = TelnetServer(self.command_manager, host=host, port=port, scheme=scheme)

        self._running = False
        self._shutdown_event: asyncio.Event | None = None

    @property
    def controllers(self) -> list[Controller]:
        return [*self.configuration.controllers, self.configuration]

    async def start(self) -> None:
        """Start all simulator components."""
        logger.info("Starting HLX simulator on %s:%d", self.host, self.listener.port)

        self._running = True
        self._shutdown_event = asyncio.Event()

        await self.backup.open()
        await self.configuration.restore()
        await self.listener.start()

        logger.info(
            "HLX simulator started (%d request patterns) on port %d",
            len(self.command_manager),
            self.port,
        )

    async def stop(self) -> None:
        """Stop all simulator components gracefully."""
        if not self._running:
            return

        logger.info("Stopping HLX simulator...")
        self._running = False

        await self.listener.stop()
        await self.configuration.stop()
        # Close the backup last, after the final flush.
        await self.backup.close()

        if self._shutdown_event:
            self._shutdown_event.set()

        logger.info("HLX simulator stopped")

    async def run(self) -> None:
        """
        Run the simulator until shutdown is requested (SIGINT or SIGTERM).
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
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> int:
        """The bound telnet port."""
        return self.listener.bound_port

    @property
    def connected_clients(self) -> int:
        return len(self.registry)
