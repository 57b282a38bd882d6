"""
Equalizer presets controller (server side).

A preset is a name plus ten band levels; zones in preset-equalizer sound
mode refer to one by identifier.
"""

from __future__ import annotations

import re

from openhlx.model import EqualizerPresetModel, Status
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern
from openhlx.server.commands import RequestHandler
from openhlx.server.connection import ServerConnection
from openhlx.simulator.base import Controller, identifier


class EqualizerPresetsController(Controller):
    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        return [
            (commands.EQUALIZER_PRESET_QUERY, self._handle_query),
            (commands.EQUALIZER_PRESET_NAME, self._handle_name),
            (commands.EQUALIZER_PRESET_BAND, self._handle_band),
            (commands.EQUALIZER_PRESET_BAND_UP, self._handle_band_up),
            (commands.EQUALIZER_PRESET_BAND_DOWN, self._handle_band_down),
        ]

    @staticmethod
    def preset_lines(preset: EqualizerPresetModel) -> list[str]:
        p = preset.identifier
        lines: list[str] = []
        if preset.name is not None:
            lines.append(commands.equalizer_preset_name(p, preset.name))
        for band, level in preset.bands.items():
            if level is not None:
                lines.append(commands.equalizer_preset_band(p, band, level))
        return lines

    def configuration_lines(self) -> list[str]:
        lines: list[str] = []
        for preset in self.repository.equalizer_presets:
            lines.extend(self.preset_lines(preset))
        return lines

    def _preset(self, match: re.Match[str]) -> EqualizerPresetModel | None:
        return self.repository.equalizer_presets.get(identifier(match))

    async def _handle_query(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        preset = self._preset(match)
        if preset is None:
            return Status.OUT_OF_RANGE
        return await self.reply_query(connection, self.preset_lines(preset), match)

    async def _handle_name(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        preset = self._preset(match)
        if preset is None:
            return Status.OUT_OF_RANGE
        status = preset.set_name(match.group(2))
        return await self.commit(
            status, lambda: commands.equalizer_preset_name(preset.identifier, preset.name or "")
        )

    async def _handle_band(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        preset = self._preset(match)
        if preset is None:
            return Status.OUT_OF_RANGE
        band, level = identifier(match, 2), int(match.group(3))
        status = preset.bands.set_level(band, level)
        return await self.commit(
            status, lambda: commands.equalizer_preset_band(preset.identifier, band, level)
        )

    async def _adjust_band(self, match: re.Match[str], delta: int) -> Status:
        preset = self._preset(match)
        if preset is None:
            return Status.OUT_OF_RANGE
        band = identifier(match, 2)
        status = preset.bands.adjust_level(band, delta)
        return await self.commit(
            status,
            lambda: commands.equalizer_preset_band(
                preset.identifier, band, preset.bands.get_level(band) or 0
            ),
        )

    async def _handle_band_up(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self._adjust_band(match, 1)

    async def _handle_band_down(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self._adjust_band(match, -1)
