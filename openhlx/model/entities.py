"""
HLX entity models: zones, groups, sources, equalizer presets, favorites,
front panel, infrared and network.

Entities are created once by the repository and never added or removed.
Each exposes plain attributes for reads and ``set_*`` / ``adjust_*``
mutators that return a :class:`~openhlx.model.values.Status`.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from openhlx.model.values import (
    BRIGHTNESS_MAX,
    BRIGHTNESS_MIN,
    EQUALIZER_PRESETS_MAX,
    SOURCES_MAX,
    ZONES_MAX,
    BalanceModel,
    CrossoverModel,
    EqualizerBandsModel,
    NameModel,
    Status,
    ToneModel,
    ValueModel,
    VolumeModel,
    validate_identifier,
    validate_range,
)


class SoundMode(IntEnum):
    """Zone DSP sound mode, as carried on the wire."""

    DISABLED = 0
    ZONE_EQUALIZER = 1
    PRESET_EQUALIZER = 2
    TONE = 3
    LOWPASS = 4
    HIGHPASS = 5


class ChannelMode(IntEnum):
    MONO = 1
    STEREO = 2


class SourceModel(NameModel):
    """An input selectable by zones and groups."""

    def __init__(self, identifier: int) -> None:
        super().__init__()
        self.identifier = identifier

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name}

    def load_dict(self, data: dict[str, Any]) -> None:
        self.name = data.get("name")


class FavoriteModel(SourceModel):
    """A named favorite."""


class EqualizerPresetModel(NameModel):
    """A named set of ten equalizer band levels."""

    def __init__(self, identifier: int) -> None:
        super().__init__()
        self.identifier = identifier
        self.bands = EqualizerBandsModel()

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "bands": self.bands.levels}

    def load_dict(self, data: dict[str, Any]) -> None:
        self.name = data.get("name")
        self.bands.load(data.get("bands"))


class ZoneModel(NameModel):
    """
    An addressable audio output.

    Holds the name, the selected source, volume/mute/lock, balance and
    the DSP sound settings (mode, zone equalizer bands, selected preset,
    tone and both crossovers).
    """

    def __init__(self, identifier: int) -> None:
        super().__init__()
        self.identifier = identifier
        self.source: int | None = None
        self.volume = VolumeModel()
        self.balance = BalanceModel()
        self.sound_mode: SoundMode | None = None
        self.equalizer_bands = EqualizerBandsModel()
        self.equalizer_preset: int | None = None
        self.tone = ToneModel()
        self.highpass = CrossoverModel()
        self.lowpass = CrossoverModel()

    @property
    def channel_mode(self) -> ChannelMode:
        if self.sound_mode is SoundMode.LOWPASS:
            return ChannelMode.MONO
        return ChannelMode.STEREO

    def set_source(self, source: int) -> Status:
        status = validate_identifier(source, SOURCES_MAX)
        if status is not Status.SUCCESS:
            return status
        return self._assign("source", source)

    def set_sound_mode(self, mode: int) -> Status:
        try:
            sound_mode = SoundMode(mode)
        except ValueError:
            return Status.OUT_OF_RANGE
        return self._assign("sound_mode", sound_mode)

    def set_equalizer_preset(self, preset: int) -> Status:
        status = validate_identifier(preset, EQUALIZER_PRESETS_MAX)
        if status is not Status.SUCCESS:
            return status
        return self._assign("equalizer_preset", preset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "source": self.source,
            "volume": self.volume.level,
            "muted": self.volume.muted,
            "locked": self.volume.locked,
            "balance": self.balance.balance,
            "sound_mode": None if self.sound_mode is None else int(self.sound_mode),
            "bands": self.equalizer_bands.levels,
            "preset": self.equalizer_preset,
            "bass": self.tone.bass,
            "treble": self.tone.treble,
            "highpass": self.highpass.frequency,
            "lowpass": self.lowpass.frequency,
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        self.name = data.get("name")
        self.source = data.get("source")
        self.volume.level = data.get("volume")
        self.volume.muted = data.get("muted")
        self.volume.locked = data.get("locked")
        self.balance.balance = data.get("balance")
        mode = data.get("sound_mode")
        self.sound_mode = None if mode is None else SoundMode(mode)
        self.equalizer_bands.load(data.get("bands"))
        self.equalizer_preset = data.get("preset")
        self.tone.bass = data.get("bass")
        self.tone.treble = data.get("treble")
        self.highpass.frequency = data.get("highpass")
        self.lowpass.frequency = data.get("lowpass")


class GroupModel(NameModel):
    """
    A named set of zones treated as a unit.

    The group keeps its own volume/mute aggregate and the set of sources
    its members were last switched to. Membership is kept sorted so that
    serialisation and group expansion visit zones in ascending order.
    """

    def __init__(self, identifier: int) -> None:
        super().__init__()
        self.identifier = identifier
        self.volume = VolumeModel()
        self._sources: set[int] = set()
        self._zones: set[int] = set()

    @property
    def zones(self) -> list[int]:
        return sorted(self._zones)

    @property
    def sources(self) -> list[int]:
        return sorted(self._sources)

    def contains_zone(self, zone: int) -> bool:
        return zone in self._zones

    def add_zone(self, zone: int) -> Status:
        status = validate_identifier(zone, ZONES_MAX)
        if status is not Status.SUCCESS:
            return status
        if zone in self._zones:
            return Status.ALREADY_SET
        self._zones.add(zone)
        return Status.SUCCESS

    def remove_zone(self, zone: int) -> Status:
        status = validate_identifier(zone, ZONES_MAX)
        if status is not Status.SUCCESS:
            return status
        if zone not in self._zones:
            return Status.NOT_FOUND
        self._zones.discard(zone)
        return Status.SUCCESS

    def clear_zones(self) -> Status:
        if not self._zones:
            return Status.ALREADY_SET
        self._zones.clear()
        return Status.SUCCESS

    def set_source(self, source: int) -> Status:
        status = validate_identifier(source, SOURCES_MAX)
        if status is not Status.SUCCESS:
            return status
        if self._sources == {source}:
            return Status.ALREADY_SET
        self._sources = {source}
        return Status.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "volume": self.volume.level,
            "muted": self.volume.muted,
            "sources": self.sources,
            "zones": self.zones,
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        self.name = data.get("name")
        self.volume.level = data.get("volume")
        self.volume.muted = data.get("muted")
        self._sources = set(data.get("sources") or ())
        self._zones = set(data.get("zones") or ())


class FrontPanelModel(ValueModel):
    def __init__(self) -> None:
        self.brightness: int | None = None
        self.locked: bool | None = None

    def set_brightness(self, brightness: int) -> Status:
        status = validate_range(brightness, BRIGHTNESS_MIN, BRIGHTNESS_MAX)
        if status is not Status.SUCCESS:
            return status
        return self._assign("brightness", brightness)

    def set_locked(self, locked: bool) -> Status:
        return self._assign("locked", bool(locked))

    def to_dict(self) -> dict[str, Any]:
        return {"brightness": self.brightness, "locked": self.locked}

    def load_dict(self, data: dict[str, Any]) -> None:
        self.brightness = data.get("brightness")
        self.locked = data.get("locked")


class InfraredModel(ValueModel):
    def __init__(self) -> None:
        self.disabled: bool | None = None

    def set_disabled(self, disabled: bool) -> Status:
        return self._assign("disabled", bool(disabled))

    def to_dict(self) -> dict[str, Any]:
        return {"disabled": self.disabled}

    def load_dict(self, data: dict[str, Any]) -> None:
        self.disabled = data.get("disabled")


class NetworkModel(ValueModel):
    """Network interface state; observation only from the control channel."""

    def __init__(self) -> None:
        self.dhcp_enabled: bool | None = None
        self.sddp_enabled: bool | None = None
        self.mac_address: str | None = None
        self.host_address: str | None = None
        self.netmask: str | None = None
        self.gateway_address: str | None = None

    def set_dhcp_enabled(self, enabled: bool) -> Status:
        return self._assign("dhcp_enabled", bool(enabled))

    def set_sddp_enabled(self, enabled: bool) -> Status:
        return self._assign("sddp_enabled", bool(enabled))

    def set_mac_address(self, address: str) -> Status:
        parts = address.split("-")
        if len(parts) != 6 or any(len(p) != 2 for p in parts):
            return Status.INVALID_ARGUMENT
        try:
            octets = [int(p, 16) for p in parts]
        except ValueError:
            return Status.INVALID_ARGUMENT
        return self._assign("mac_address", "-".join(f"{o:02X}" for o in octets))

    def set_host_address(self, address: str) -> Status:
        return self._assign("host_address", address)

    def set_netmask(self, address: str) -> Status:
        return self._assign("netmask", address)

    def set_gateway_address(self, address: str) -> Status:
        return self._assign("gateway_address", address)
