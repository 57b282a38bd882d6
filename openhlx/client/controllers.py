"""
Client controllers: typed operations over request/response exchanges.

Each operation composes a request, submits it and waits for the response
that completes it. State lines arriving before the completing response
(member zones of a group change, the lines of a compound query) have
already been applied to the model mirror by the time an operation
returns, so a query returns the mirrored entity.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

from openhlx.core import CommandRejectedError, ExchangeError, NotInitializedError, OutOfRangeError
from openhlx.core.events import ConfigurationLifecycleEvent, EventBus, LifecyclePhase
from openhlx.model import (
    EqualizerPresetModel,
    FavoriteModel,
    GroupModel,
    ModelRepository,
    NetworkModel,
    ZoneModel,
)
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern

from openhlx.client.exchange import DEFAULT, ExchangeManager

logger = logging.getLogger(__name__)


def _wire(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def captures(*expected: Any) -> Callable[[re.Match[str]], bool]:
    """
    Build a predicate checking the capture groups of a response.

    ``None`` matches anything; booleans compare as ``1``/``0``.
    """
    wanted = [_wire(value) for value in expected]

    def accepts(match: re.Match[str]) -> bool:
        return all(value is None or match.group(index) == value for index, value in enumerate(wanted, start=1))

    return accepts


class ClientController:
    def __init__(self, exchange: ExchangeManager, repository: ModelRepository) -> None:
        self.exchange = exchange
        self.repository = repository

    async def _submit(
        self,
        request: str,
        pattern: CommandPattern,
        *expected: Any,
        timeout: float | None = DEFAULT,
    ) -> re.Match[str]:
        return await self.exchange.submit(request, pattern, expect=captures(*expected), timeout=timeout)

    @staticmethod
    def _entity(entity: Any, kind: str, identifier: int) -> Any:
        if entity is None:
            raise OutOfRangeError(f"No {kind} {identifier}")
        return entity


# -----------------------------------------------------------------------------
# Zones
# -----------------------------------------------------------------------------


class ZonesController(ClientController):
    def zone(self, zone: int) -> ZoneModel:
        """The mirrored zone; raises OutOfRangeError for a bad identifier."""
        return self._entity(self.repository.zones.get(zone), "zone", zone)

    async def query(self, zone: int) -> ZoneModel:
        await self._submit(commands.zone_query(zone), commands.ZONE_QUERY, zone)
        return self.zone(zone)

    async def query_volume(self, zone: int) -> int:
        match = await self._submit(commands.zone_query_volume(zone), commands.ZONE_VOLUME, zone)
        return int(match.group(2))

    async def query_mute(self, zone: int) -> bool:
        match = await self._submit(commands.zone_query_mute(zone), commands.ZONE_MUTE, None, zone)
        return commands.mute_from_wire(match.group(1))

    async def query_source(self, zone: int) -> int:
        match = await self._submit(commands.zone_query_source(zone), commands.ZONE_SOURCE, zone)
        return int(match.group(2))

    async def set_volume(self, zone: int, level: int) -> None:
        await self._submit(commands.zone_volume(zone, level), commands.ZONE_VOLUME, zone, level)

    async def set_volume_all(self, level: int) -> None:
        """Set every unlocked zone to ``level``."""
        await self._submit(commands.zone_volume_all(level), commands.ZONE_VOLUME_ALL, level)

    async def increase_volume(self, zone: int) -> int:
        match = await self._submit(commands.zone_volume_up(zone), commands.ZONE_VOLUME, zone)
        return int(match.group(2))

    async def decrease_volume(self, zone: int) -> int:
        match = await self._submit(commands.zone_volume_down(zone), commands.ZONE_VOLUME, zone)
        return int(match.group(2))

    async def set_volume_locked(self, zone: int, locked: bool) -> None:
        await self._submit(
            commands.zone_volume_locked(zone, locked), commands.ZONE_VOLUME_LOCKED, zone, locked
        )

    async def set_mute(self, zone: int, muted: bool) -> None:
        await self._submit(
            commands.zone_mute(zone, muted), commands.ZONE_MUTE, "M" if muted else "UM", zone
        )

    async def toggle_mute(self, zone: int) -> bool:
        """Returns the new mute state."""
        match = await self._submit(commands.zone_toggle_mute(zone), commands.ZONE_MUTE, None, zone)
        return commands.mute_from_wire(match.group(1))

    async def set_source(self, zone: int, source: int) -> None:
        await self._submit(commands.zone_source(zone, source), commands.ZONE_SOURCE, zone, source)

    async def set_source_all(self, source: int) -> None:
        await self._submit(commands.zone_source_all(source), commands.ZONE_SOURCE_ALL, source)

    async def set_name(self, zone: int, name: str) -> str:
        """Returns the name as stored, which may be truncated."""
        match = await self._submit(commands.zone_name(zone, name), commands.ZONE_NAME, zone)
        return match.group(2)

    async def set_balance(self, zone: int, balance: int) -> None:
        await self._submit(commands.zone_balance(zone, balance), commands.ZONE_BALANCE, zone)

    async def increase_balance_left(self, zone: int) -> int:
        match = await self._submit(commands.zone_balance_adjust(zone, "L"), commands.ZONE_BALANCE, zone)
        return commands.balance_from_wire(match.group(2))

    async def increase_balance_right(self, zone: int) -> int:
        match = await self._submit(commands.zone_balance_adjust(zone, "R"), commands.ZONE_BALANCE, zone)
        return commands.balance_from_wire(match.group(2))

    async def set_tone(self, zone: int, bass: int, treble: int) -> None:
        await self._submit(commands.zone_tone(zone, bass, treble), commands.ZONE_TONE, zone, bass, treble)

    def _tone(self, zone: int) -> tuple[int, int]:
        tone = self.zone(zone).tone
        if tone.bass is None or tone.treble is None:
            raise NotInitializedError(f"Tone of zone {zone} is unknown")
        return tone.bass, tone.treble

    async def set_bass(self, zone: int, level: int) -> None:
        """Set bass, keeping the mirrored treble."""
        _, treble = self._tone(zone)
        await self.set_tone(zone, level, treble)

    async def set_treble(self, zone: int, level: int) -> None:
        """Set treble, keeping the mirrored bass."""
        bass, _ = self._tone(zone)
        await self.set_tone(zone, bass, level)

    async def _step_tone(self, request: str, zone: int) -> tuple[int, int]:
        match = await self._submit(request, commands.ZONE_TONE, zone)
        return int(match.group(2)), int(match.group(3))

    async def increase_bass(self, zone: int) -> tuple[int, int]:
        return await self._step_tone(commands.zone_bass_up(zone), zone)

    async def decrease_bass(self, zone: int) -> tuple[int, int]:
        return await self._step_tone(commands.zone_bass_down(zone), zone)

    async def increase_treble(self, zone: int) -> tuple[int, int]:
        return await self._step_tone(commands.zone_treble_up(zone), zone)

    async def decrease_treble(self, zone: int) -> tuple[int, int]:
        return await self._step_tone(commands.zone_treble_down(zone), zone)

    async def set_equalizer_band(self, zone: int, band: int, level: int) -> None:
        await self._submit(
            commands.zone_equalizer_band(zone, band, level), commands.ZONE_EQUALIZER_BAND, zone, band, level
        )

    async def increase_equalizer_band(self, zone: int, band: int) -> int:
        match = await self._submit(
            commands.zone_equalizer_band_up(zone, band), commands.ZONE_EQUALIZER_BAND, zone, band
        )
        return int(match.group(3))

    async def decrease_equalizer_band(self, zone: int, band: int) -> int:
        match = await self._submit(
            commands.zone_equalizer_band_down(zone, band), commands.ZONE_EQUALIZER_BAND, zone, band
        )
        return int(match.group(3))

    async def set_equalizer_preset(self, zone: int, preset: int) -> None:
        await self._submit(
            commands.zone_equalizer_preset(zone, preset), commands.ZONE_EQUALIZER_PRESET, zone, preset
        )

    async def set_sound_mode(self, zone: int, mode: int) -> None:
        await self._submit(commands.zone_sound_mode(zone, mode), commands.ZONE_SOUND_MODE, zone, int(mode))

    async def set_highpass(self, zone: int, frequency: int) -> None:
        await self._submit(commands.zone_highpass(zone, frequency), commands.ZONE_HIGHPASS, zone, frequency)

    async def set_lowpass(self, zone: int, frequency: int) -> None:
        await self._submit(commands.zone_lowpass(zone, frequency), commands.ZONE_LOWPASS, zone, frequency)


# -----------------------------------------------------------------------------
# Groups
# -----------------------------------------------------------------------------


class GroupsController(ClientController):
    """
    Group operations. Volume, mute and source changes are expanded to the
    member zones by the server; their zone lines update the mirror before
    the group-level response completes the exchange.
    """

    def group(self, group: int) -> GroupModel:
        return self._entity(self.repository.groups.get(group), "group", group)

    async def query(self, group: int) -> GroupModel:
        await self._submit(commands.group_query(group), commands.GROUP_QUERY, group)
        return self.group(group)

    async def set_volume(self, group: int, level: int) -> int:
        """
        Returns the resulting group level. It stays unchanged when every
        member is volume locked.
        """
        match = await self._submit(commands.group_volume(group, level), commands.GROUP_VOLUME, group)
        return int(match.group(2))

    async def increase_volume(self, group: int) -> int:
        match = await self._submit(commands.group_volume_up(group), commands.GROUP_VOLUME, group)
        return int(match.group(2))

    async def decrease_volume(self, group: int) -> int:
        match = await self._submit(commands.group_volume_down(group), commands.GROUP_VOLUME, group)
        return int(match.group(2))

    async def set_mute(self, group: int, muted: bool) -> None:
        await self._submit(
            commands.group_mute(group, muted), commands.GROUP_MUTE, "M" if muted else "UM", group
        )

    async def toggle_mute(self, group: int) -> bool:
        match = await self._submit(commands.group_toggle_mute(group), commands.GROUP_MUTE, None, group)
        return commands.mute_from_wire(match.group(1))

    async def set_source(self, group: int, source: int) -> None:
        await self._submit(commands.group_source(group, source), commands.GROUP_SOURCE, group, source)

    async def set_name(self, group: int, name: str) -> str:
        match = await self._submit(commands.group_name(group, name), commands.GROUP_NAME, group)
        return match.group(2)

    async def add_zone(self, group: int, zone: int) -> None:
        await self._submit(commands.group_add_zone(group, zone), commands.GROUP_ADD_ZONE, group, zone)

    async def remove_zone(self, group: int, zone: int) -> None:
        await self._submit(commands.group_remove_zone(group, zone), commands.GROUP_REMOVE_ZONE, group, zone)

    async def clear_all(self) -> None:
        """Remove every zone from every group."""
        await self._submit(commands.group_clear_all(), commands.GROUP_CLEAR_ALL)


# -----------------------------------------------------------------------------
# Sources, equalizer presets, favorites
# -----------------------------------------------------------------------------


class SourcesController(ClientController):
    async def set_name(self, source: int, name: str) -> str:
        match = await self._submit(commands.source_name(source, name), commands.SOURCE_NAME, source)
        return match.group(2)


class EqualizerPresetsController(ClientController):
    def preset(self, preset: int) -> EqualizerPresetModel:
        return self._entity(self.repository.equalizer_presets.get(preset), "equalizer preset", preset)

    async def query(self, preset: int) -> EqualizerPresetModel:
        await self._submit(commands.equalizer_preset_query(preset), commands.EQUALIZER_PRESET_QUERY, preset)
        return self.preset(preset)

    async def set_name(self, preset: int, name: str) -> str:
        match = await self._submit(
            commands.equalizer_preset_name(preset, name), commands.EQUALIZER_PRESET_NAME, preset
        )
        return match.group(2)

    async def set_band(self, preset: int, band: int, level: int) -> None:
        await self._submit(
            commands.equalizer_preset_band(preset, band, level),
            commands.EQUALIZER_PRESET_BAND,
            preset,
            band,
            level,
        )

    async def increase_band(self, preset: int, band: int) -> int:
        match = await self._submit(
            commands.equalizer_preset_band_up(preset, band), commands.EQUALIZER_PRESET_BAND, preset, band
        )
        return int(match.group(3))

    async def decrease_band(self, preset: int, band: int) -> int:
        match = await self._submit(
            commands.equalizer_preset_band_down(preset, band), commands.EQUALIZER_PRESET_BAND, preset, band
        )
        return int(match.group(3))


class FavoritesController(ClientController):
    def favorite(self, favorite: int) -> FavoriteModel:
        return self._entity(self.repository.favorites.get(favorite), "favorite", favorite)

    async def query(self, favorite: int) -> FavoriteModel:
        await self._submit(commands.favorite_query(favorite), commands.FAVORITE_QUERY, favorite)
        return self.favorite(favorite)

    async def set_name(self, favorite: int, name: str) -> str:
        match = await self._submit(commands.favorite_name(favorite, name), commands.FAVORITE_NAME, favorite)
        return match.group(2)


# -----------------------------------------------------------------------------
# Front panel, infrared, network
# -----------------------------------------------------------------------------


class FrontPanelController(ClientController):
    async def set_brightness(self, brightness: int) -> None:
        await self._submit(
            commands.front_panel_brightness(brightness), commands.FRONT_PANEL_BRIGHTNESS, brightness
        )

    async def set_locked(self, locked: bool) -> None:
        await self._submit(commands.front_panel_locked(locked), commands.FRONT_PANEL_LOCKED, locked)

    async def query_brightness(self) -> int | None:
        await self._submit(commands.front_panel_query_brightness(), commands.FRONT_PANEL_QUERY_BRIGHTNESS)
        return self.repository.front_panel.brightness

    async def query(self) -> tuple[int | None, bool | None]:
        """Returns (brightness, locked)."""
        await self._submit(commands.front_panel_query(), commands.FRONT_PANEL_QUERY)
        front_panel = self.repository.front_panel
        return front_panel.brightness, front_panel.locked


class InfraredController(ClientController):
    async def set_disabled(self, disabled: bool) -> None:
        await self._submit(commands.infrared_disabled(disabled), commands.INFRARED_DISABLED, disabled)

    async def query(self) -> bool:
        # Answered by the state line alone, without an echo
        match = await self._submit(commands.infrared_query(), commands.INFRARED_DISABLED)
        return match.group(1) == "1"


class NetworkController(ClientController):
    async def query(self) -> NetworkModel:
        await self._submit(commands.network_query(), commands.NETWORK_QUERY)
        return self.repository.network


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


class ConfigurationController(ClientController):
    """
    Backup and restore on the server.

    Progress lines are turned into lifecycle events by the notification
    handler; this controller adds DID_NOT for a rejected operation and the
    WILL / DID pair around ``QX``.
    """

    def __init__(self, exchange: ExchangeManager, repository: ModelRepository, events: EventBus) -> None:
        super().__init__(exchange, repository)
        self.events = events

    async def _operate(self, operation: str, pattern: CommandPattern) -> None:
        try:
            await self._submit(operation, pattern)
        except CommandRejectedError as e:
            await self.events.publish(
                ConfigurationLifecycleEvent(operation=operation, phase=LifecyclePhase.DID_NOT, reason=str(e))
            )
            raise

    async def save(self) -> None:
        await self._operate("SAVE", commands.CONFIGURATION_SAVE)

    async def load(self) -> None:
        """Load the server backup, then refresh the mirror from it."""
        await self._operate("LOAD", commands.CONFIGURATION_LOAD)
        await self.query()

    async def reset(self) -> None:
        """Reset the server to defaults, then refresh the mirror."""
        await self._operate("RESET", commands.CONFIGURATION_RESET)
        await self.query()

    async def query(self) -> None:
        """Fill the mirror with the complete server state."""
        await self.events.publish(ConfigurationLifecycleEvent(operation="QX", phase=LifecyclePhase.WILL))
        try:
            await self._submit("QX", commands.CONFIGURATION_QUERY)
        except ExchangeError as e:
            await self.events.publish(
                ConfigurationLifecycleEvent(operation="QX", phase=LifecyclePhase.DID_NOT, reason=str(e))
            )
            raise
        await self.events.publish(ConfigurationLifecycleEvent(operation="QX", phase=LifecyclePhase.DID))
