"""
Client-side handling of inbound state lines.

Every response payload the server sends, solicited or not, is matched
against the state-line patterns below. A match updates the local model
mirror and, when the mirror actually changed, publishes the typed event on
the client's notification bus.
"""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable

from openhlx.core.events import (
    ConfigurationLifecycleEvent,
    EqualizerPresetBandEvent,
    EqualizerPresetNameEvent,
    Event,
    EventBus,
    FavoriteNameEvent,
    FrontPanelBrightnessEvent,
    FrontPanelLockedEvent,
    GroupMuteEvent,
    GroupNameEvent,
    GroupSourceEvent,
    GroupVolumeEvent,
    GroupZoneAddedEvent,
    GroupZoneRemovedEvent,
    InfraredDisabledEvent,
    LifecyclePhase,
    NetworkDhcpEvent,
    NetworkEthernetAddressEvent,
    NetworkGatewayEvent,
    NetworkHostAddressEvent,
    NetworkNetmaskEvent,
    NetworkSddpEvent,
    SourceNameEvent,
    ZoneBalanceEvent,
    ZoneEqualizerBandEvent,
    ZoneEqualizerPresetEvent,
    ZoneHighpassEvent,
    ZoneLowpassEvent,
    ZoneMuteEvent,
    ZoneNameEvent,
    ZoneSoundModeEvent,
    ZoneSourceEvent,
    ZoneToneEvent,
    ZoneVolumeEvent,
    ZoneVolumeLockedEvent,
)
from openhlx.model import ModelRepository, Status
from openhlx.protocol import commands
from openhlx.protocol.dispatch import CommandPattern, DispatchTable

logger = logging.getLogger(__name__)

NotificationHandler = Callable[["re.Match[str]"], Awaitable[None]]


def _id(match: re.Match[str], index: int = 1) -> int:
    return int(match.group(index))


def _flag(match: re.Match[str], index: int = 1) -> bool:
    return match.group(index) == "1"


class Notifications:
    """
    Maps state-line patterns to mirror updates.

    Attributes:
        repository: The client's model mirror.
        events: Bus the typed state-change events are published on.
    """

    def __init__(self, repository: ModelRepository, events: EventBus) -> None:
        self.repository = repository
        self.events = events
        self._table: DispatchTable[NotificationHandler] = DispatchTable()

        handlers: list[tuple[CommandPattern, NotificationHandler]] = [
            # Zones
            (commands.ZONE_VOLUME, self._zone_volume),
            (commands.ZONE_VOLUME_ALL, self._zone_volume_all),
            (commands.ZONE_VOLUME_LOCKED, self._zone_volume_locked),
            (commands.ZONE_MUTE, self._zone_mute),
            (commands.ZONE_SOURCE, self._zone_source),
            (commands.ZONE_SOURCE_ALL, self._zone_source_all),
            (commands.ZONE_NAME, self._zone_name),
            (commands.ZONE_BALANCE, self._zone_balance),
            (commands.ZONE_TONE, self._zone_tone),
            (commands.ZONE_EQUALIZER_BAND, self._zone_equalizer_band),
            (commands.ZONE_EQUALIZER_PRESET, self._zone_equalizer_preset),
            (commands.ZONE_SOUND_MODE, self._zone_sound_mode),
            (commands.ZONE_HIGHPASS, self._zone_highpass),
            (commands.ZONE_LOWPASS, self._zone_lowpass),
            # Groups
            (commands.GROUP_VOLUME, self._group_volume),
            (commands.GROUP_MUTE, self._group_mute),
            (commands.GROUP_SOURCE, self._group_source),
            (commands.GROUP_NAME, self._group_name),
            (commands.GROUP_ADD_ZONE, self._group_add_zone),
            (commands.GROUP_REMOVE_ZONE, self._group_remove_zone),
            (commands.GROUP_CLEAR_ALL, self._group_clear_all),
            # Sources, presets, favorites
            (commands.SOURCE_NAME, self._source_name),
            (commands.EQUALIZER_PRESET_NAME, self._equalizer_preset_name),
            (commands.EQUALIZER_PRESET_BAND, self._equalizer_preset_band),
            (commands.FAVORITE_NAME, self._favorite_name),
            # Front panel, infrared, network
            (commands.FRONT_PANEL_BRIGHTNESS, self._front_panel_brightness),
            (commands.FRONT_PANEL_LOCKED, self._front_panel_locked),
            (commands.INFRARED_DISABLED, self._infrared_disabled),
            (commands.NETWORK_DHCP, self._network_dhcp),
            (commands.NETWORK_SDDP, self._network_sddp),
            (commands.NETWORK_MAC, self._network_mac),
            (commands.NETWORK_HOST_ADDRESS, self._network_host_address),
            (commands.NETWORK_NETMASK, self._network_netmask),
            (commands.NETWORK_GATEWAY, self._network_gateway),
            # Configuration lifecycle
            (commands.CONFIGURATION_LOADING, self._will),
            (commands.CONFIGURATION_SAVING, self._will),
            (commands.CONFIGURATION_RESETTING, self._will),
            (commands.CONFIGURATION_LOADING_PROGRESS, self._progress),
            (commands.CONFIGURATION_SAVING_PROGRESS, self._progress),
            (commands.CONFIGURATION_RESETTING_PROGRESS, self._progress),
            (commands.CONFIGURATION_LOAD, self._did),
            (commands.CONFIGURATION_SAVE, self._did),
            (commands.CONFIGURATION_RESET, self._did),
        ]
        for pattern, handler in handlers:
            self._table.register(pattern, handler)

    async def handle(self, payload: str) -> bool:
        """Apply one inbound payload. Returns False if no state line matched."""
        found = self._table.lookup(payload)
        if found is None:
            return False
        registration, match = found
        await registration.handler(match)
        return True

    async def _publish(self, status: Status, event: Event) -> None:
        if status is Status.SUCCESS:
            await self.events.publish(event)
        elif not status.is_ok:
            logger.warning("Mirror rejected %s: %s", event.event_type, status.value)

    # -----------------------------------------------------------------------------
    # Zones
    # -----------------------------------------------------------------------------

    async def _zone_volume(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        level = int(match.group(2))
        await self._publish(zone.volume.set_level(level), ZoneVolumeEvent(zone=zone.identifier, level=level))

    async def _zone_volume_all(self, match: re.Match[str]) -> None:
        level = int(match.group(1))
        for zone in self.repository.zones:
            if zone.volume.locked:
                continue
            await self._publish(zone.volume.set_level(level), ZoneVolumeEvent(zone=zone.identifier, level=level))

    async def _zone_volume_locked(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        locked = _flag(match, 2)
        await self._publish(
            zone.volume.set_locked(locked), ZoneVolumeLockedEvent(zone=zone.identifier, locked=locked)
        )

    async def _zone_mute(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match, 2))
        if zone is None:
            return
        muted = commands.mute_from_wire(match.group(1))
        await self._publish(zone.volume.set_mute(muted), ZoneMuteEvent(zone=zone.identifier, muted=muted))

    async def _zone_source(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        source = _id(match, 2)
        await self._publish(zone.set_source(source), ZoneSourceEvent(zone=zone.identifier, source=source))

    async def _zone_source_all(self, match: re.Match[str]) -> None:
        source = _id(match)
        for zone in self.repository.zones:
            await self._publish(zone.set_source(source), ZoneSourceEvent(zone=zone.identifier, source=source))

    async def _zone_name(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        status = zone.set_name(match.group(2))
        await self._publish(status, ZoneNameEvent(zone=zone.identifier, name=zone.name or ""))

    async def _zone_balance(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        balance = commands.balance_from_wire(match.group(2))
        await self._publish(
            zone.balance.set_balance(balance), ZoneBalanceEvent(zone=zone.identifier, balance=balance)
        )

    async def _zone_tone(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        bass, treble = int(match.group(2)), int(match.group(3))
        await self._publish(
            zone.tone.set_tone(bass, treble), ZoneToneEvent(zone=zone.identifier, bass=bass, treble=treble)
        )

    async def _zone_equalizer_band(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        band, level = _id(match, 2), int(match.group(3))
        await self._publish(
            zone.equalizer_bands.set_level(band, level),
            ZoneEqualizerBandEvent(zone=zone.identifier, band=band, level=level),
        )

    async def _zone_equalizer_preset(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        preset = _id(match, 2)
        await self._publish(
            zone.set_equalizer_preset(preset), ZoneEqualizerPresetEvent(zone=zone.identifier, preset=preset)
        )

    async def _zone_sound_mode(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        mode = _id(match, 2)
        await self._publish(zone.set_sound_mode(mode), ZoneSoundModeEvent(zone=zone.identifier, mode=mode))

    async def _zone_highpass(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        frequency = _id(match, 2)
        await self._publish(
            zone.highpass.set_frequency(frequency), ZoneHighpassEvent(zone=zone.identifier, frequency=frequency)
        )

    async def _zone_lowpass(self, match: re.Match[str]) -> None:
        zone = self.repository.zones.get(_id(match))
        if zone is None:
            return
        frequency = _id(match, 2)
        await self._publish(
            zone.lowpass.set_frequency(frequency), ZoneLowpassEvent(zone=zone.identifier, frequency=frequency)
        )

    # -----------------------------------------------------------------------------
    # Groups
    # -----------------------------------------------------------------------------

    async def _group_volume(self, match: re.Match[str]) -> None:
        group = self.repository.groups.get(_id(match))
        if group is None:
            return
        level = int(match.group(2))
        await self._publish(group.volume.set_level(level), GroupVolumeEvent(group=group.identifier, level=level))

    async def _group_mute(self, match: re.Match[str]) -> None:
        group = self.repository.groups.get(_id(match, 2))
        if group is None:
            return
        muted = commands.mute_from_wire(match.group(1))
        await self._publish(group.volume.set_mute(muted), GroupMuteEvent(group=group.identifier, muted=muted))

    async def _group_source(self, match: re.Match[str]) -> None:
        group = self.repository.groups.get(_id(match))
        if group is None:
            return
        source = _id(match, 2)
        await self._publish(group.set_source(source), GroupSourceEvent(group=group.identifier, source=source))

    async def _group_name(self, match: re.Match[str]) -> None:
        group = self.repository.groups.get(_id(match))
        if group is None:
            return
        status = group.set_name(match.group(2))
        await self._publish(status, GroupNameEvent(group=group.identifier, name=group.name or ""))

    async def _group_add_zone(self, match: re.Match[str]) -> None:
        group = self.repository.groups.get(_id(match))
        if group is None:
            return
        zone = _id(match, 2)
        await self._publish(group.add_zone(zone), GroupZoneAddedEvent(group=group.identifier, zone=zone))

    async def _group_remove_zone(self, match: re.Match[str]) -> None:
        group = self.repository.groups.get(_id(match))
        if group is None:
            return
        zone = _id(match, 2)
        status = group.remove_zone(zone)
        if status is Status.NOT_FOUND:
            return
        await self._publish(status, GroupZoneRemovedEvent(group=group.identifier, zone=zone))

    async def _group_clear_all(self, match: re.Match[str]) -> None:
        # The server has already announced every removal
        for group in self.repository.groups:
            for zone in group.zones:
                group.remove_zone(zone)
                await self.events.publish(GroupZoneRemovedEvent(group=group.identifier, zone=zone))

    # -----------------------------------------------------------------------------
    # Sources, presets, favorites
    # -----------------------------------------------------------------------------

    async def _source_name(self, match: re.Match[str]) -> None:
        source = self.repository.sources.get(_id(match))
        if source is None:
            return
        status = source.set_name(match.group(2))
        await self._publish(status, SourceNameEvent(source=source.identifier, name=source.name or ""))

    async def _equalizer_preset_name(self, match: re.Match[str]) -> None:
        preset = self.repository.equalizer_presets.get(_id(match))
        if preset is None:
            return
        status = preset.set_name(match.group(2))
        await self._publish(status, EqualizerPresetNameEvent(preset=preset.identifier, name=preset.name or ""))

    async def _equalizer_preset_band(self, match: re.Match[str]) -> None:
        preset = self.repository.equalizer_presets.get(_id(match))
        if preset is None:
            return
        band, level = _id(match, 2), int(match.group(3))
        await self._publish(
            preset.bands.set_level(band, level),
            EqualizerPresetBandEvent(preset=preset.identifier, band=band, level=level),
        )

    async def _favorite_name(self, match: re.Match[str]) -> None:
        favorite = self.repository.favorites.get(_id(match))
        if favorite is None:
            return
        status = favorite.set_name(match.group(2))
        await self._publish(status, FavoriteNameEvent(favorite=favorite.identifier, name=favorite.name or ""))

    # -----------------------------------------------------------------------------
    # Front panel, infrared, network
    # -----------------------------------------------------------------------------

    async def _front_panel_brightness(self, match: re.Match[str]) -> None:
        brightness = _id(match)
        await self._publish(
            self.repository.front_panel.set_brightness(brightness),
            FrontPanelBrightnessEvent(brightness=brightness),
        )

    async def _front_panel_locked(self, match: re.Match[str]) -> None:
        locked = _flag(match)
        await self._publish(self.repository.front_panel.set_locked(locked), FrontPanelLockedEvent(locked=locked))

    async def _infrared_disabled(self, match: re.Match[str]) -> None:
        disabled = _flag(match)
        await self._publish(
            self.repository.infrared.set_disabled(disabled), InfraredDisabledEvent(disabled=disabled)
        )

    async def _network_dhcp(self, match: re.Match[str]) -> None:
        enabled = _flag(match)
        await self._publish(self.repository.network.set_dhcp_enabled(enabled), NetworkDhcpEvent(enabled=enabled))

    async def _network_sddp(self, match: re.Match[str]) -> None:
        enabled = _flag(match)
        await self._publish(self.repository.network.set_sddp_enabled(enabled), NetworkSddpEvent(enabled=enabled))

    async def _network_mac(self, match: re.Match[str]) -> None:
        network = self.repository.network
        status = network.set_mac_address(match.group(1))
        await self._publish(status, NetworkEthernetAddressEvent(address=network.mac_address or ""))

    async def _network_host_address(self, match: re.Match[str]) -> None:
        address = match.group(1)
        await self._publish(self.repository.network.set_host_address(address), NetworkHostAddressEvent(address=address))

    async def _network_netmask(self, match: re.Match[str]) -> None:
        address = match.group(1)
        await self._publish(self.repository.network.set_netmask(address), NetworkNetmaskEvent(address=address))

    async def _network_gateway(self, match: re.Match[str]) -> None:
        address = match.group(1)
        await self._publish(
            self.repository.network.set_gateway_address(address), NetworkGatewayEvent(address=address)
        )

    # -----------------------------------------------------------------------------
    # Configuration lifecycle
    # -----------------------------------------------------------------------------

    @staticmethod
    def _operation(payload: str) -> str:
        for operation, progressive in commands.CONFIGURATION_PROGRESSIVE.items():
            if payload.startswith(progressive):
                return operation
        return payload

    async def _will(self, match: re.Match[str]) -> None:
        operation = self._operation(match.string)
        await self.events.publish(ConfigurationLifecycleEvent(operation=operation, phase=LifecyclePhase.WILL))

    async def _progress(self, match: re.Match[str]) -> None:
        await self.events.publish(
            ConfigurationLifecycleEvent(
                operation=self._operation(match.string),
                phase=LifecyclePhase.IN_PROGRESS,
                percent=int(match.group(1)),
            )
        )

    async def _did(self, match: re.Match[str]) -> None:
        await self.events.publish(ConfigurationLifecycleEvent(operation=match.string, phase=LifecyclePhase.DID))
