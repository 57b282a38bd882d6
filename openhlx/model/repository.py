"""
Model Repository - owner of every HLX entity for the process lifetime.

Entities are created up-front (24 zones, 10 groups, 8 sources, 10 equalizer
presets, 10 favorites plus the singleton front panel, infrared and network
models). Controllers borrow the collections they need; the repository is
only touched from the event loop.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Generic, Iterator, TypeVar

from openhlx.model.entities import (
    EqualizerPresetModel,
    FavoriteModel,
    FrontPanelModel,
    GroupModel,
    InfraredModel,
    NetworkModel,
    SoundMode,
    SourceModel,
    ZoneModel,
)
from openhlx.model.values import (
    BALANCE_CENTER,
    BRIGHTNESS_MAX,
    CROSSOVER_FREQUENCY_DEFAULT,
    EQUALIZER_BAND_FLAT,
    EQUALIZER_BANDS_MAX,
    EQUALIZER_PRESETS_MAX,
    FAVORITES_MAX,
    GROUPS_MAX,
    IDENTIFIER_MIN,
    SOURCES_MAX,
    TONE_FLAT,
    VOLUME_MIN,
    ZONES_MAX,
    Status,
    validate_identifier,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Defaults applied by reset_to_defaults()
DEFAULT_MAC_ADDRESS = "00-50-C2-D8-20-01"
DEFAULT_HOST_ADDRESS = "192.168.1.48"
DEFAULT_NETMASK = "255.255.255.0"
DEFAULT_GATEWAY_ADDRESS = "192.168.1.1"


class EntityCollection(Generic[T]):
    """
    Fixed-size, 1-based collection of entities.

    Lookups by identifier return None outside ``1..maximum``; use
    :meth:`validate` to obtain the corresponding status.
    """

    def __init__(self, maximum: int, factory: Callable[[int], T]) -> None:
        self.maximum = maximum
        self._entities: list[T] = [factory(i) for i in range(IDENTIFIER_MIN, maximum + 1)]

    def validate(self, identifier: int) -> Status:
        return validate_identifier(identifier, self.maximum)

    def get(self, identifier: int) -> T | None:
        if self.validate(identifier) is not Status.SUCCESS:
            return None
        return self._entities[identifier - 1]

    def find_by_name(self, name: str) -> T | None:
        """Linear, case-sensitive lookup; names are not unique."""
        for entity in self._entities:
            if getattr(entity, "name", None) == name:
                return entity
        return None

    def __iter__(self) -> Iterator[T]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)


class ModelRepository:
    """Owns all zones, groups, sources, presets, favorites and singletons."""

    def __init__(self) -> None:
        self.zones: EntityCollection[ZoneModel] = EntityCollection(ZONES_MAX, ZoneModel)
        self.groups: EntityCollection[GroupModel] = EntityCollection(GROUPS_MAX, GroupModel)
        self.sources: EntityCollection[SourceModel] = EntityCollection(SOURCES_MAX, SourceModel)
        self.equalizer_presets: EntityCollection[EqualizerPresetModel] = EntityCollection(
            EQUALIZER_PRESETS_MAX, EqualizerPresetModel
        )
        self.favorites: EntityCollection[FavoriteModel] = EntityCollection(
            FAVORITES_MAX, FavoriteModel
        )
        self.front_panel = FrontPanelModel()
        self.infrared = InfraredModel()
        self.network = NetworkModel()

    def reset_to_defaults(self) -> bool:
        """
        Apply factory defaults to every entity.

        Returns True when anything changed (i.e. the configuration is dirty).
        """
        results: list[Status] = []

        for zone in self.zones:
            results.append(zone.set_name(f"Zone Name {zone.identifier}"))
            results.append(zone.set_source(IDENTIFIER_MIN))
            results.append(zone.volume.set_level(VOLUME_MIN))
            results.append(zone.volume.set_mute(True))
            results.append(zone.volume.set_locked(False))
            results.append(zone.balance.set_balance(BALANCE_CENTER))
            results.append(zone.set_sound_mode(SoundMode.DISABLED))
            results.append(zone.set_equalizer_preset(IDENTIFIER_MIN))
            results.append(zone.tone.set_tone(TONE_FLAT, TONE_FLAT))
            results.append(zone.highpass.set_frequency(CROSSOVER_FREQUENCY_DEFAULT))
            results.append(zone.lowpass.set_frequency(CROSSOVER_FREQUENCY_DEFAULT))
            for band in range(IDENTIFIER_MIN, EQUALIZER_BANDS_MAX + 1):
                results.append(zone.equalizer_bands.set_level(band, EQUALIZER_BAND_FLAT))

        for group in self.groups:
            results.append(group.set_name(f"Group Name {group.identifier}"))
            results.append(group.volume.set_level(VOLUME_MIN))
            results.append(group.volume.set_mute(True))
            results.append(group.clear_zones())

        for source in self.sources:
            results.append(source.set_name(f"Source Name {source.identifier}"))

        for preset in self.equalizer_presets:
            results.append(preset.set_name(f"Equalizer Preset {preset.identifier}"))
            for band in range(IDENTIFIER_MIN, EQUALIZER_BANDS_MAX + 1):
                results.append(preset.bands.set_level(band, EQUALIZER_BAND_FLAT))

        for favorite in self.favorites:
            results.append(favorite.set_name(f"Favorite Name {favorite.identifier}"))

        results.append(self.front_panel.set_brightness(BRIGHTNESS_MAX))
        results.append(self.front_panel.set_locked(False))
        results.append(self.infrared.set_disabled(False))

        network = self.network
        results.append(network.set_dhcp_enabled(True))
        results.append(network.set_sddp_enabled(True))
        results.append(network.set_mac_address(DEFAULT_MAC_ADDRESS))
        results.append(network.set_host_address(DEFAULT_HOST_ADDRESS))
        results.append(network.set_netmask(DEFAULT_NETMASK))
        results.append(network.set_gateway_address(DEFAULT_GATEWAY_ADDRESS))

        changed = Status.SUCCESS in results
        logger.debug("Reset to defaults (changed=%s)", changed)
        return changed

    def to_dict(self) -> dict[str, Any]:
        """Serialise the persistent configuration (network is not persisted)."""
        return {
            "zones": [zone.to_dict() for zone in self.zones],
            "groups": [group.to_dict() for group in self.groups],
            "sources": [source.to_dict() for source in self.sources],
            "equalizer_presets": [preset.to_dict() for preset in self.equalizer_presets],
            "favorites": [favorite.to_dict() for favorite in self.favorites],
            "front_panel": self.front_panel.to_dict(),
            "infrared": self.infrared.to_dict(),
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        """Apply a blob produced by :meth:`to_dict`."""
        for collection, key in (
            (self.zones, "zones"),
            (self.groups, "groups"),
            (self.sources, "sources"),
            (self.equalizer_presets, "equalizer_presets"),
            (self.favorites, "favorites"),
        ):
            for entity, entry in zip(collection, data.get(key, [])):
                entity.load_dict(entry)  # type: ignore[attr-defined]

        self.front_panel.load_dict(data.get("front_panel", {}))
        self.infrared.load_dict(data.get("infrared", {}))
