"""
Notification bus for openhlx.

A small async pub/sub system. On the client every parsed state-change
response becomes a typed event; on the server the listener and the
configuration controller publish connection and lifecycle events.

Event types:
- connection.opened / connection.closed: server accepted / lost a client
- connection.state: client connection state changed
- configuration.lifecycle: will / in_progress / did / did_not for LOAD, SAVE,
  RESET and QX
- zone.*: volume, mute, volume_locked, source, name, balance, tone,
  equalizer_band, equalizer_preset, sound_mode, highpass, lowpass
- group.*: volume, mute, source, name, zone_added, zone_removed
- source.name, equalizer_preset.name, equalizer_preset.band, favorite.name
- front_panel.brightness, front_panel.locked, infrared.disabled
- network.*: dhcp, sddp, ethernet_address, host_address, netmask, gateway

Usage:
    bus = EventBus()

    async def on_volume(event: ZoneVolumeEvent) -> None:
        print(f"Zone {event.zone} is now at {event.level}")

    await bus.subscribe("zone.volume", on_volume)
    await bus.publish(ZoneVolumeEvent(zone=3, level=-9))
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[["Event"], Coroutine[Any, Any, None]]


@dataclass
class Event:
    """Base class for all events."""

    event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert event to a plain dictionary, enums flattened to values."""
        data = asdict(self)
        result: dict[str, Any] = {"type": data.pop("event_type")}
        for key, value in data.items():
            result[key] = value.value if isinstance(value, Enum) else value
        return result


# -----------------------------------------------------------------------------
# Connection and configuration
# -----------------------------------------------------------------------------


@dataclass
class ConnectionOpenedEvent(Event):
    """Fired by the server when a client has been greeted."""

    event_type: str = field(default="connection.opened", init=False)
    connection_id: int = 0
    scheme: str = ""
    remote_addr: str = ""


@dataclass
class ConnectionClosedEvent(Event):
    event_type: str = field(default="connection.closed", init=False)
    connection_id: int = 0
    scheme: str = ""
    remote_addr: str = ""


@dataclass
class ConnectionStateEvent(Event):
    """Fired by the client whenever its connection changes state."""

    event_type: str = field(default="connection.state", init=False)
    state: str = ""
    remote_addr: str = ""
    error: str = ""


class LifecyclePhase(Enum):
    WILL = "will"
    IN_PROGRESS = "in_progress"
    DID = "did"
    DID_NOT = "did_not"


@dataclass
class ConfigurationLifecycleEvent(Event):
    """
    One point on the lifecycle of a configuration operation.

    ``percent`` is only meaningful for IN_PROGRESS, ``reason`` only for
    DID_NOT.
    """

    event_type: str = field(default="configuration.lifecycle", init=False)
    operation: str = ""  # LOAD, SAVE, RESET, QX
    phase: LifecyclePhase = LifecyclePhase.WILL
    percent: int = 0
    reason: str = ""


# -----------------------------------------------------------------------------
# Zones
# -----------------------------------------------------------------------------


@dataclass
class ZoneVolumeEvent(Event):
    event_type: str = field(default="zone.volume", init=False)
    zone: int = 0
    level: int = 0


@dataclass
class ZoneMuteEvent(Event):
    event_type: str = field(default="zone.mute", init=False)
    zone: int = 0
    muted: bool = False


@dataclass
class ZoneVolumeLockedEvent(Event):
    event_type: str = field(default="zone.volume_locked", init=False)
    zone: int = 0
    locked: bool = False


@dataclass
class ZoneSourceEvent(Event):
    event_type: str = field(default="zone.source", init=False)
    zone: int = 0
    source: int = 0


@dataclass
class ZoneNameEvent(Event):
    event_type: str = field(default="zone.name", init=False)
    zone: int = 0
    name: str = ""


@dataclass
class ZoneBalanceEvent(Event):
    event_type: str = field(default="zone.balance", init=False)
    zone: int = 0
    balance: int = 0


@dataclass
class ZoneToneEvent(Event):
    event_type: str = field(default="zone.tone", init=False)
    zone: int = 0
    bass: int = 0
    treble: int = 0


@dataclass
class ZoneEqualizerBandEvent(Event):
    event_type: str = field(default="zone.equalizer_band", init=False)
    zone: int = 0
    band: int = 0
    level: int = 0


@dataclass
class ZoneEqualizerPresetEvent(Event):
    event_type: str = field(default="zone.equalizer_preset", init=False)
    zone: int = 0
    preset: int = 0


@dataclass
class ZoneSoundModeEvent(Event):
    event_type: str = field(default="zone.sound_mode", init=False)
    zone: int = 0
    mode: int = 0


@dataclass
class ZoneHighpassEvent(Event):
    event_type: str = field(default="zone.highpass", init=False)
    zone: int = 0
    frequency: int = 0


@dataclass
class ZoneLowpassEvent(Event):
    event_type: str = field(default="zone.lowpass", init=False)
    zone: int = 0
    frequency: int = 0


# -----------------------------------------------------------------------------
# Groups
# -----------------------------------------------------------------------------


@dataclass
class GroupVolumeEvent(Event):
    event_type: str = field(default="group.volume", init=False)
    group: int = 0
    level: int = 0


@dataclass
class GroupMuteEvent(Event):
    event_type: str = field(default="group.mute", init=False)
    group: int = 0
    muted: bool = False


@dataclass
class GroupSourceEvent(Event):
    event_type: str = field(default="group.source", init=False)
    group: int = 0
    source: int = 0


@dataclass
class GroupNameEvent(Event):
    event_type: str = field(default="group.name", init=False)
    group: int = 0
    name: str = ""


@dataclass
class GroupZoneAddedEvent(Event):
    event_type: str = field(default="group.zone_added", init=False)
    group: int = 0
    zone: int = 0


@dataclass
class GroupZoneRemovedEvent(Event):
    event_type: str = field(default="group.zone_removed", init=False)
    group: int = 0
    zone: int = 0


# -----------------------------------------------------------------------------
# Sources, presets, favorites
# -----------------------------------------------------------------------------


@dataclass
class SourceNameEvent(Event):
    event_type: str = field(default="source.name", init=False)
    source: int = 0
    name: str = ""


@dataclass
class EqualizerPresetNameEvent(Event):
    event_type: str = field(default="equalizer_preset.name", init=False)
    preset: int = 0
    name: str = ""


@dataclass
class EqualizerPresetBandEvent(Event):
    event_type: str = field(default="equalizer_preset.band", init=False)
    preset: int = 0
    band: int = 0
    level: int = 0


@dataclass
class FavoriteNameEvent(Event):
    event_type: str = field(default="favorite.name", init=False)
    favorite: int = 0
    name: str = ""


# -----------------------------------------------------------------------------
# Front panel, infrared, network
# -----------------------------------------------------------------------------


@dataclass
class FrontPanelBrightnessEvent(Event):
    event_type: str = field(default="front_panel.brightness", init=False)
    brightness: int = 0


@dataclass
class FrontPanelLockedEvent(Event):
    event_type: str = field(default="front_panel.locked", init=False)
    locked: bool = False


@dataclass
class InfraredDisabledEvent(Event):
    event_type: str = field(default="infrared.disabled", init=False)
    disabled: bool = False


@dataclass
class NetworkDhcpEvent(Event):
    event_type: str = field(default="network.dhcp", init=False)
    enabled: bool = False


@dataclass
class NetworkSddpEvent(Event):
    event_type: str = field(default="network.sddp", init=False)
    enabled: bool = False


@dataclass
class NetworkEthernetAddressEvent(Event):
    event_type: str = field(default="network.ethernet_address", init=False)
    address: str = ""


@dataclass
class NetworkHostAddressEvent(Event):
    event_type: str = field(default="network.host_address", init=False)
    address: str = ""


@dataclass
class NetworkNetmaskEvent(Event):
    event_type: str = field(default="network.netmask", init=False)
    address: str = ""


@dataclass
class NetworkGatewayEvent(Event):
    event_type: str = field(default="network.gateway", init=False)
    address: str = ""


class EventBus:
    """
    Simple async pub/sub event bus.

    Supports:
    - Multiple handlers per event type
    - Wildcard subscriptions ("zone.*", or "*" for everything)
    - Error isolation (one failing handler doesn't affect the others)

    Handlers are awaited one after another from the publishing task, so a
    subscriber must not block. Changes to the subscriptions take effect
    from the next published event.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event type to subscribe to. Use ".*" suffix for wildcards.
            handler: Async function to call when an event is published.
        """
        async with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            logger.debug("Subscribed to %s: %s", event_type, handler)

    async def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns True if handler was found and removed.
        """
        async with self._lock:
            handlers = self._handlers.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)
                logger.debug("Unsubscribed from %s: %s", event_type, handler)
                return True
            return False

    async def publish(self, event: Event) -> int:
        """
        Publish an event to all subscribed handlers.

        Returns:
            Number of handlers that received the event.
        """
        event_type = event.event_type

        async with self._lock:
            matching = self._matching_handlers(event_type)

        # Handlers run outside the lock so they may (un)subscribe
        delivered = 0
        for handler in matching:
            try:
                await handler(event)
                delivered += 1
            except Exception as e:
                logger.exception("Error in event handler for %s: %s", event_type, e)

        if delivered > 0:
            logger.debug("Published %s to %d handlers", event_type, delivered)

        return delivered

    def _matching_handlers(self, event_type: str) -> list[EventHandler]:
        matching: list[EventHandler] = list(self._handlers.get(event_type, ()))
        for pattern, handlers in self._handlers.items():
            if pattern == "*":
                matching.extend(handlers)
            elif pattern.endswith(".*") and event_type.startswith(pattern[:-1]):
                matching.extend(handlers)
        return matching

    async def clear(self) -> None:
        """Remove all subscriptions."""
        async with self._lock:
            self._handlers.clear()
            logger.debug("Cleared all event subscriptions")


# Server-side event bus instance
event_bus = EventBus()
