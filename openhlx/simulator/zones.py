"""
Zones controller (server side).

Serves every zone request: queries, volume, mute, lock, source, name,
balance, tone, equalizer bands and preset, sound mode and both crossovers.

Volume rules:
- A volume set or step first unmutes the zone; ``(VUMO<z>)`` is only sent
  when the mute state actually changed.
- A volume-locked zone refuses direct volume changes and is skipped by
  ``VXR`` and by group volume changes.
- A step past either volume limit is refused before anything changes.
"""

from __future__ import annotations

import logging
import re

from openhlx.model import SoundMode, Status, ZoneModel
from openhlx.model.values import VOLUME_MAX, VOLUME_MIN, validate_range
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern
from openhlx.server.commands import RequestHandler
from openhlx.server.connection import ServerConnection
from openhlx.simulator.base import Controller, flag, identifier

logger = logging.getLogger(__name__)


class ZonesController(Controller):
    """Owns the zone request handlers and the per-zone mutations groups reuse."""

    def requests(self) -> list[tuple[CommandPattern, RequestHandler]]:
        return [
            (commands.ZONE_QUERY, self._handle_query),
            (commands.ZONE_QUERY_VOLUME, self._handle_query_volume),
            (commands.ZONE_QUERY_MUTE, self._handle_query_mute),
            (commands.ZONE_QUERY_SOURCE, self._handle_query_source),
            (commands.ZONE_VOLUME, self._handle_volume),
            (commands.ZONE_VOLUME_ALL, self._handle_volume_all),
            (commands.ZONE_VOLUME_UP, self._handle_volume_up),
            (commands.ZONE_VOLUME_DOWN, self._handle_volume_down),
            (commands.ZONE_VOLUME_LOCKED, self._handle_volume_locked),
            (commands.ZONE_MUTE, self._handle_mute),
            (commands.ZONE_TOGGLE_MUTE, self._handle_toggle_mute),
            (commands.ZONE_SOURCE, self._handle_source),
            (commands.ZONE_SOURCE_ALL, self._handle_source_all),
            (commands.ZONE_NAME, self._handle_name),
            (commands.ZONE_BALANCE, self._handle_balance),
            (commands.ZONE_BALANCE_ADJUST, self._handle_balance_adjust),
            (commands.ZONE_TONE, self._handle_tone),
            (commands.ZONE_BASS_UP, self._handle_bass_up),
            (commands.ZONE_BASS_DOWN, self._handle_bass_down),
            (commands.ZONE_TREBLE_UP, self._handle_treble_up),
            (commands.ZONE_TREBLE_DOWN, self._handle_treble_down),
            (commands.ZONE_EQUALIZER_BAND, self._handle_equalizer_band),
            (commands.ZONE_EQUALIZER_BAND_UP, self._handle_equalizer_band_up),
            (commands.ZONE_EQUALIZER_BAND_DOWN, self._handle_equalizer_band_down),
            (commands.ZONE_EQUALIZER_PRESET, self._handle_equalizer_preset),
            (commands.ZONE_SOUND_MODE, self._handle_sound_mode),
            (commands.ZONE_HIGHPASS, self._handle_highpass),
            (commands.ZONE_LOWPASS, self._handle_lowpass),
        ]

    # -----------------------------------------------------------------------------
    # State lines
    # -----------------------------------------------------------------------------

    def zone_lines(self, zone: ZoneModel, *, configuration: bool = False) -> list[str]:
        """
        Describe a zone in query order: name, source, volume, [locked],
        mute, sound mode (+ its data), balance.

        The configuration form adds the volume-locked line and carries all
        sound data, not just the lines for the active sound mode.
        """
        z = zone.identifier
        volume = zone.volume
        lines: list[str] = []

        if zone.name is not None:
            lines.append(commands.zone_name(z, zone.name))
        if zone.source is not None:
            lines.append(commands.zone_source(z, zone.source))
        if volume.level is not None:
            lines.append(commands.zone_volume(z, volume.level))
        if configuration and volume.locked is not None:
            lines.append(commands.zone_volume_locked(z, volume.locked))
        if volume.muted is not None:
            lines.append(commands.zone_mute(z, volume.muted))
        lines.extend(self._sound_lines(zone, everything=configuration))
        if zone.balance.balance is not None:
            lines.append(commands.zone_balance(z, zone.balance.balance))
        return lines

    def _sound_lines(self, zone: ZoneModel, *, everything: bool) -> list[str]:
        z = zone.identifier
        mode = zone.sound_mode
        lines: list[str] = []
        if mode is not None:
            lines.append(commands.zone_sound_mode(z, mode))

        if everything or mode is SoundMode.ZONE_EQUALIZER:
            for band, level in zone.equalizer_bands.items():
                if level is not None:
                    lines.append(commands.zone_equalizer_band(z, band, level))
        if (everything or mode is SoundMode.PRESET_EQUALIZER) and zone.equalizer_preset is not None:
            lines.append(commands.zone_equalizer_preset(z, zone.equalizer_preset))
        tone = zone.tone
        if (everything or mode is SoundMode.TONE) and tone.bass is not None and tone.treble is not None:
            lines.append(commands.zone_tone(z, tone.bass, tone.treble))
        if (everything or mode is SoundMode.LOWPASS) and zone.lowpass.frequency is not None:
            lines.append(commands.zone_lowpass(z, zone.lowpass.frequency))
        if (everything or mode is SoundMode.HIGHPASS) and zone.highpass.frequency is not None:
            lines.append(commands.zone_highpass(z, zone.highpass.frequency))
        return lines

    def configuration_lines(self) -> list[str]:
        lines: list[str] = []
        for zone in self.repository.zones:
            lines.extend(self.zone_lines(zone, configuration=True))
        return lines

    # -----------------------------------------------------------------------------
    # Per-zone mutations (also used by group expansion)
    # -----------------------------------------------------------------------------

    async def unmute_conditionally(self, zone: ZoneModel) -> Status:
        """Unmute a zone, notifying only if it was muted."""
        status = zone.volume.set_mute(False)
        if status is Status.SUCCESS:
            await self.commit(status, lambda: commands.zone_mute(zone.identifier, False))
        return status

    async def set_volume(self, zone: ZoneModel, level: int) -> Status:
        if zone.volume.locked:
            return Status.INVALID_ARGUMENT
        status = validate_range(level, VOLUME_MIN, VOLUME_MAX)
        if status is not Status.SUCCESS:
            return status

        await self.unmute_conditionally(zone)
        status = zone.volume.set_level(level)
        return await self.commit(status, lambda: commands.zone_volume(zone.identifier, level))

    async def adjust_volume(self, zone: ZoneModel, delta: int) -> Status:
        volume = zone.volume
        if volume.locked:
            return Status.INVALID_ARGUMENT
        if volume.level is None:
            return Status.NOT_INITIALIZED
        status = validate_range(volume.level + delta, VOLUME_MIN, VOLUME_MAX)
        if status is not Status.SUCCESS:
            return status

        await self.unmute_conditionally(zone)
        status = volume.adjust_level(delta)
        return await self.commit(status, lambda: commands.zone_volume(zone.identifier, volume.level))

    async def set_mute(self, zone: ZoneModel, muted: bool) -> Status:
        status = zone.volume.set_mute(muted)
        return await self.commit(status, lambda: commands.zone_mute(zone.identifier, muted))

    async def set_source(self, zone: ZoneModel, source: int) -> Status:
        status = zone.set_source(source)
        return await self.commit(status, lambda: commands.zone_source(zone.identifier, source))

    # -----------------------------------------------------------------------------
    # Request handlers
    # -----------------------------------------------------------------------------

    def _zone(self, match: re.Match[str]) -> ZoneModel | None:
        return self.repository.zones.get(identifier(match))

    async def _handle_query(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self.reply_query(connection, self.zone_lines(zone), match)

    async def _handle_query_volume(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        if zone.volume.level is None:
            return Status.NOT_INITIALIZED
        await self.reply(connection, [commands.zone_volume(zone.identifier, zone.volume.level)])
        return Status.SUCCESS

    async def _handle_query_mute(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        if zone.volume.muted is None:
            return Status.NOT_INITIALIZED
        await self.reply(connection, [commands.zone_mute(zone.identifier, zone.volume.muted)])
        return Status.SUCCESS

    async def _handle_query_source(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        if zone.source is None:
            return Status.NOT_INITIALIZED
        await self.reply(connection, [commands.zone_source(zone.identifier, zone.source)])
        return Status.SUCCESS

    async def _handle_volume(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self.set_volume(zone, int(match.group(2)))

    async def _handle_volume_all(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        level = int(match.group(1))
        status = validate_range(level, VOLUME_MIN, VOLUME_MAX)
        if status is not Status.SUCCESS:
            return status

        # Per-zone volume is implied by the echo; only mute changes are sent
        changed = False
        for zone in self.repository.zones:
            if zone.volume.locked:
                continue
            await self.unmute_conditionally(zone)
            if zone.volume.set_level(level) is Status.SUCCESS:
                changed = True

        return await self.commit(
            Status.SUCCESS if changed else Status.ALREADY_SET,
            lambda: commands.zone_volume_all(level),
        )

    async def _handle_volume_up(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self.adjust_volume(zone, 1)

    async def _handle_volume_down(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self.adjust_volume(zone, -1)

    async def _handle_volume_locked(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        locked = flag(match, 2)
        status = zone.volume.set_locked(locked)
        return await self.commit(status, lambda: commands.zone_volume_locked(zone.identifier, locked))

    async def _handle_mute(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self.repository.zones.get(identifier(match, 2))
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self.set_mute(zone, commands.mute_from_wire(match.group(1)))

    async def _handle_toggle_mute(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        status = zone.volume.toggle_mute()
        return await self.commit(status, lambda: commands.zone_mute(zone.identifier, zone.volume.muted))

    async def _handle_source(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self.set_source(zone, identifier(match, 2))

    async def _handle_source_all(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        source = identifier(match)
        status = self.repository.sources.validate(source)
        if status is not Status.SUCCESS:
            return status

        changed = False
        for zone in self.repository.zones:
            if zone.set_source(source) is Status.SUCCESS:
                changed = True

        return await self.commit(
            Status.SUCCESS if changed else Status.ALREADY_SET,
            lambda: commands.zone_source_all(source),
        )

    async def _handle_name(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        status = zone.set_name(match.group(2))
        return await self.commit(status, lambda: commands.zone_name(zone.identifier, zone.name or ""))

    async def _handle_balance(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        balance = commands.balance_from_wire(match.group(2))
        status = zone.balance.set_balance(balance)
        return await self.commit(status, lambda: commands.zone_balance(zone.identifier, balance))

    async def _handle_balance_adjust(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        status = zone.balance.adjust_balance(match.group(2))
        return await self.commit(
            status, lambda: commands.zone_balance(zone.identifier, zone.balance.balance or 0)
        )

    async def _commit_tone(self, zone: ZoneModel, status: Status) -> Status:
        tone = zone.tone
        return await self.commit(
            status, lambda: commands.zone_tone(zone.identifier, tone.bass or 0, tone.treble or 0)
        )

    async def _handle_tone(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        status = zone.tone.set_tone(int(match.group(2)), int(match.group(3)))
        return await self._commit_tone(zone, status)

    async def _handle_bass_up(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self._commit_tone(zone, zone.tone.adjust_bass(1))

    async def _handle_bass_down(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self._commit_tone(zone, zone.tone.adjust_bass(-1))

    async def _handle_treble_up(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self._commit_tone(zone, zone.tone.adjust_treble(1))

    async def _handle_treble_down(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        return await self._commit_tone(zone, zone.tone.adjust_treble(-1))

    async def _adjust_band(self, match: re.Match[str], delta: int) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        band = identifier(match, 2)
        status = zone.equalizer_bands.adjust_level(band, delta)
        return await self.commit(
            status,
            lambda: commands.zone_equalizer_band(
                zone.identifier, band, zone.equalizer_bands.get_level(band) or 0
            ),
        )

    async def _handle_equalizer_band(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        band, level = identifier(match, 2), int(match.group(3))
        status = zone.equalizer_bands.set_level(band, level)
        return await self.commit(
            status, lambda: commands.zone_equalizer_band(zone.identifier, band, level)
        )

    async def _handle_equalizer_band_up(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        return await self._adjust_band(match, 1)

    async def _handle_equalizer_band_down(
        self, connection: ServerConnection, match: re.Match[str]
    ) -> Status:
        return await self._adjust_band(match, -1)

    async def _handle_equalizer_preset(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        preset = identifier(match, 2)
        status = zone.set_equalizer_preset(preset)
        return await self.commit(status, lambda: commands.zone_equalizer_preset(zone.identifier, preset))

    async def _handle_sound_mode(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        mode = identifier(match, 2)
        status = zone.set_sound_mode(mode)
        return await self.commit(status, lambda: commands.zone_sound_mode(zone.identifier, mode))

    async def _handle_highpass(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        frequency = identifier(match, 2)
        status = zone.highpass.set_frequency(frequency)
        return await self.commit(status, lambda: commands.zone_highpass(zone.identifier, frequency))

    async def _handle_lowpass(self, connection: ServerConnection, match: re.Match[str]) -> Status:
        zone = self._zone(match)
        if zone is None:
            return Status.OUT_OF_RANGE
        frequency = identifier(match, 2)
        status = zone.lowpass.set_frequency(frequency)
        return await self.commit(status, lambda: commands.zone_lowpass(zone.identifier, frequency))
