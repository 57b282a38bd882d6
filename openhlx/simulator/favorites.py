"""Favorites controller (server side): favorite names and queries."""

from __future__ import annotations

import re

from openhlx.model import FavoriteModel, Status
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern
from openhlx.server.commands import RequestHandler
from openhlx.server.connection import ServerConnection
from openhlx.simulator.base import Controller, identifier


class FavoritesController(Controller):
    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        return [
            (commands.FAVORITE_QUERY, self._handle_query),
            (commands.FAVORITE_NAME, self._handle_name),
        ]

    @staticmethod
    def favorite_lines(favorite: FavoriteModel) -> list[str]:
        if favorite.name is None:
            return []
        return [commands.favorite_name(favorite.identifier, favorite.name)]

    def configuration_lines(self) -> list[str]:
        lines: list[str] = []
        for favorite in self.repository.favorites:
            lines.extend(self.favorite_lines(favorite))
        return lines

    async def _handle_query(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        favorite = self.repository.favorites.get(identifier(match))
        if favorite is None:
            return Status.OUT_OF_RANGE
        return await self.reply_query(connection, self.favorite_lines(favorite), match)

    async def _handle_name(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        favorite = self.repository.favorites.get(identifier(match))
        if favorite is None:
            return Status.OUT_OF_RANGE
        status = favorite.set_name(match.group(2))
        return await self.commit(
            status, lambda: commands.favorite_name(favorite.identifier, favorite.name or "")
        )
