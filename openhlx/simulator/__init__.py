"""
HLX simulator: the per-entity server controllers and the orchestrator.
"""

from __future__ import annotations

from openhlx.simulator.base import ChangeTracker, Controller
from openhlx.simulator.configuration import ConfigurationController
from openhlx.simulator.equalizer_presets import EqualizerPresetsController
from openhlx.simulator.favorites import FavoritesController
from openhlx.simulator.groups import GroupsController
from openhlx.simulator.simulator import HlxSimulator
from openhlx.simulator.sources import SourcesController
from openhlx.simulator.system import FrontPanelController, InfraredController, NetworkController
from openhlx.simulator.zones import ZonesController

__all__ = [
    "ChangeTracker",
    "ConfigurationController",
    "Controller",
    "EqualizerPresetsController",
    "FavoritesController",
    "FrontPanelController",
    "GroupsController",
    "HlxSimulator",
    "InfraredController",
    "NetworkController",
    "SourcesController",
    "ZonesController",
]
