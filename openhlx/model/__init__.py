"""
HLX data model.

Typed entities with range-checked mutators. Mutators are total: they
return a :class:`Status` instead of raising.
"""

from __future__ import annotations

from openhlx.model.entities import (
    ChannelMode,
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
from openhlx.model.repository import EntityCollection, ModelRepository
from openhlx.model.values import Status

__all__ = [
    "ChannelMode",
    "EntityCollection",
    "EqualizerPresetModel",
    "FavoriteModel",
    "FrontPanelModel",
    "GroupModel",
    "InfraredModel",
    "ModelRepository",
    "NetworkModel",
    "SoundMode",
    "SourceModel",
    "Status",
    "ZoneModel",
]
