"""Sources controller (server side): source names."""

from __future__ import annotations

import re

from openhlx.model import Status
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern
from openhlx.server.commands import RequestHandler
from openhlx.server.connection import ServerConnection
from openhlx.simulator.base import Controller, identifier


class SourcesController(Controller):
    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        return [(commands.SOURCE_NAME, self._handle_name)]

    def configuration_lines(self) -> list[str]:
        return [
            commands.source_name(source.identifier, source.name)
            for source in self.repository.sources
            if source.name is not None
        ]

    async def _handle_name(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        source = self.repository.sources.get(identifier(match))
        if source is None:
            return Status.OUT_OF_RANGE
        status = source.set_name(match.group(2))
        return await self.commit(status, lambda: commands.source_name(source.identifier, source.name or ""))
