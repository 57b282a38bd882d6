"""
HLX command codec.

For every (entity, operation) pair this module owns the regular expression
that recognises the payload and a composer that builds it. Payloads are the
text between the role delimiters, e.g. ``VO3R-9`` for "zone 3 volume is -9".

Shape:
    <Property><Object><Id>[<Operation>[<Args>]]

    Property: V volume, C source, N name, B balance, T tone, E equalizer, ...
    Object:   O zone, G group, I source, EP equalizer preset, F favorite

The same response form serves as the acknowledgement of a mutation and
as the unsolicited notification other connections observe.
"""

from __future__ import annotations

from openhlx.core import InvalidArgumentError
from openhlx.model.values import NAME_LENGTH_MAX
from openhlx.protocol.dispatch import CommandPattern

_ID = r"(\d+)"
_LEVEL = r"(-?\d+)"
_NAME = r'"([ !#-~]+)"'

# -----------------------------------------------------------------------------
# Common
# -----------------------------------------------------------------------------

ERROR = CommandPattern("error", r"ERROR", 1)

# -----------------------------------------------------------------------------
# Zones
# -----------------------------------------------------------------------------

ZONE_QUERY = CommandPattern("zone.query", rf"QO{_ID}", 2)
ZONE_QUERY_VOLUME = CommandPattern("zone.query_volume", rf"QVO{_ID}", 2)
ZONE_QUERY_MUTE = CommandPattern("zone.query_mute", rf"QVMO{_ID}", 2)
ZONE_QUERY_SOURCE = CommandPattern("zone.query_source", rf"QCO{_ID}", 2)

ZONE_VOLUME = CommandPattern("zone.volume", rf"VO{_ID}R{_LEVEL}", 3)
ZONE_VOLUME_ALL = CommandPattern("zone.volume_all", rf"VXR{_LEVEL}", 2)
ZONE_VOLUME_UP = CommandPattern("zone.volume_up", rf"VO{_ID}U", 2)
ZONE_VOLUME_DOWN = CommandPattern("zone.volume_down", rf"VO{_ID}D", 2)
ZONE_VOLUME_LOCKED = CommandPattern("zone.volume_locked", rf"VO{_ID}F([01])", 3)
ZONE_MUTE = CommandPattern("zone.mute", rf"V(U?M)O{_ID}", 3)
ZONE_TOGGLE_MUTE = CommandPattern("zone.toggle_mute", rf"VMTO{_ID}", 2)

ZONE_SOURCE = CommandPattern("zone.source", rf"CO{_ID}I{_ID}", 3)
ZONE_SOURCE_ALL = CommandPattern("zone.source_all", rf"CXI{_ID}", 2)
ZONE_NAME = CommandPattern("zone.name", rf"NO{_ID}{_NAME}", 3)

ZONE_BALANCE = CommandPattern("zone.balance", rf"BO{_ID}(C|[LR]\d+)", 3)
ZONE_BALANCE_ADJUST = CommandPattern("zone.balance_adjust", rf"BO{_ID}([LR])U", 3)

ZONE_TONE = CommandPattern("zone.tone", rf"TO{_ID}B{_LEVEL}T{_LEVEL}", 4)
ZONE_BASS_UP = CommandPattern("zone.bass_up", rf"TO{_ID}BU", 2)
ZONE_BASS_DOWN = CommandPattern("zone.bass_down", rf"TO{_ID}BD", 2)
ZONE_TREBLE_UP = CommandPattern("zone.treble_up", rf"TO{_ID}TU", 2)
ZONE_TREBLE_DOWN = CommandPattern("zone.treble_down", rf"TO{_ID}TD", 2)

ZONE_EQUALIZER_BAND = CommandPattern("zone.equalizer_band", rf"EO{_ID}B{_ID}L{_LEVEL}", 4)
ZONE_EQUALIZER_BAND_UP = CommandPattern("zone.equalizer_band_up", rf"EO{_ID}B{_ID}U", 3)
ZONE_EQUALIZER_BAND_DOWN = CommandPattern("zone.equalizer_band_down", rf"EO{_ID}B{_ID}D", 3)
ZONE_EQUALIZER_PRESET = CommandPattern("zone.equalizer_preset", rf"EO{_ID}P{_ID}", 3)
ZONE_SOUND_MODE = CommandPattern("zone.sound_mode", rf"EO{_ID}M{_ID}", 3)
ZONE_HIGHPASS = CommandPattern("zone.highpass", rf"EO{_ID}HP{_ID}", 3)
ZONE_LOWPASS = CommandPattern("zone.lowpass", rf"EO{_ID}LP{_ID}", 3)

# -----------------------------------------------------------------------------
# Groups
# -----------------------------------------------------------------------------

GROUP_QUERY = CommandPattern("group.query", rf"QG{_ID}", 2)
GROUP_VOLUME = CommandPattern("group.volume", rf"VG{_ID}R{_LEVEL}", 3)
GROUP_VOLUME_UP = CommandPattern("group.volume_up", rf"VG{_ID}U", 2)
GROUP_VOLUME_DOWN = CommandPattern("group.volume_down", rf"VG{_ID}D", 2)
GROUP_MUTE = CommandPattern("group.mute", rf"V(U?M)G{_ID}", 3)
GROUP_TOGGLE_MUTE = CommandPattern("group.toggle_mute", rf"VMTG{_ID}", 2)
GROUP_SOURCE = CommandPattern("group.source", rf"CG{_ID}I{_ID}", 3)
GROUP_NAME = CommandPattern("group.name", rf"NG{_ID}{_NAME}", 3)
GROUP_ADD_ZONE = CommandPattern("group.add_zone", rf"G{_ID}AO{_ID}", 3)
GROUP_REMOVE_ZONE = CommandPattern("group.remove_zone", rf"G{_ID}RO{_ID}", 3)
GROUP_CLEAR_ALL = CommandPattern("group.clear_all", r"GAR", 1)

# -----------------------------------------------------------------------------
# Sources, equalizer presets, favorites
# -----------------------------------------------------------------------------

SOURCE_NAME = CommandPattern("source.name", rf"NI{_ID}{_NAME}", 3)

EQUALIZER_PRESET_QUERY = CommandPattern("equalizer_preset.query", rf"QEP{_ID}", 2)
EQUALIZER_PRESET_NAME = CommandPattern("equalizer_preset.name", rf"NEP{_ID}{_NAME}", 3)
EQUALIZER_PRESET_BAND = CommandPattern("equalizer_preset.band", rf"EP{_ID}B{_ID}L{_LEVEL}", 4)
EQUALIZER_PRESET_BAND_UP = CommandPattern("equalizer_preset.band_up", rf"EP{_ID}B{_ID}U", 3)
EQUALIZER_PRESET_BAND_DOWN = CommandPattern("equalizer_preset.band_down", rf"EP{_ID}B{_ID}D", 3)

FAVORITE_QUERY = CommandPattern("favorite.query", rf"QF{_ID}", 2)
FAVORITE_NAME = CommandPattern("favorite.name", rf"NF{_ID}{_NAME}", 3)

# -----------------------------------------------------------------------------
# Front panel, infrared, network
# -----------------------------------------------------------------------------

FRONT_PANEL_BRIGHTNESS = CommandPattern("front_panel.brightness", r"SD(\d+)", 2)
FRONT_PANEL_LOCKED = CommandPattern("front_panel.locked", r"FPL([01])", 2)
FRONT_PANEL_QUERY_BRIGHTNESS = CommandPattern("front_panel.query_brightness", r"QSD", 1)
FRONT_PANEL_QUERY = CommandPattern("front_panel.query", r"QFPL", 1)

INFRARED_DISABLED = CommandPattern("infrared.disabled", r"IRL([01])", 2)
INFRARED_QUERY = CommandPattern("infrared.query", r"QIRL", 1)

NETWORK_QUERY = CommandPattern("network.query", r"QE", 1)
NETWORK_DHCP = CommandPattern("network.dhcp", r"DHCP([01])", 2)
NETWORK_SDDP = CommandPattern("network.sddp", r"SDDP([01])", 2)
NETWORK_MAC = CommandPattern("network.mac", r"MAC(([0-9A-Fa-f]{2}-){5}[0-9A-Fa-f]{2})", 3)
NETWORK_HOST_ADDRESS = CommandPattern("network.host_address", r"IP([0-9A-Fa-f.:]+)", 2)
NETWORK_NETMASK = CommandPattern("network.netmask", r"NM([0-9A-Fa-f.:]+)", 2)
NETWORK_GATEWAY = CommandPattern("network.gateway", r"GW([0-9A-Fa-f.:]+)", 2)

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

CONFIGURATION_LOAD = CommandPattern("configuration.load", r"LOAD", 1)
CONFIGURATION_SAVE = CommandPattern("configuration.save", r"SAVE", 1)
CONFIGURATION_RESET = CommandPattern("configuration.reset", r"RESET", 1)
CONFIGURATION_QUERY = CommandPattern("configuration.query", r"QX", 1)

CONFIGURATION_LOADING = CommandPattern("configuration.loading", r"LOADING\.\.\.", 1)
CONFIGURATION_LOADING_PROGRESS = CommandPattern(
    "configuration.loading_progress", r"LOADING(\d+)%", 2
)
CONFIGURATION_SAVING = CommandPattern("configuration.saving", r"SAVING\.\.\.", 1)
CONFIGURATION_SAVING_PROGRESS = CommandPattern("configuration.saving_progress", r"SAVING(\d+)%", 2)
CONFIGURATION_RESETTING = CommandPattern("configuration.resetting", r"RESETTING\.\.\.", 1)
CONFIGURATION_RESETTING_PROGRESS = CommandPattern(
    "configuration.resetting_progress", r"RESETTING(\d+)%", 2
)

# Operation keyword -> progressive form, as used on the wire
CONFIGURATION_PROGRESSIVE = {
    "LOAD": "LOADING",
    "SAVE": "SAVING",
    "RESET": "RESETTING",
}


# -----------------------------------------------------------------------------
# Value helpers
# -----------------------------------------------------------------------------


def quote_name(name: str) -> str:
    """Wrap a name in double quotes, truncated to the wire limit."""
    return f'"{name[:NAME_LENGTH_MAX]}"'


def balance_to_wire(balance: int) -> str:
    """
    Convert the continuous model balance to the tagged wire form.

    -80..-1 -> L80..L1, 0 -> C, 1..80 -> R1..R80.
    """
    if balance < 0:
        return f"L{-balance}"
    if balance > 0:
        return f"R{balance}"
    return "C"


def balance_from_wire(text: str) -> int:
    """Inverse of :func:`balance_to_wire`; ``L0`` and ``R0`` also mean centre."""
    if text == "C":
        return 0
    if len(text) < 2 or text[0] not in "LR" or not text[1:].isdigit():
        raise InvalidArgumentError(f"Malformed balance: {text!r}")
    value = int(text[1:])
    return -value if text[0] == "L" else value


def mute_from_wire(text: str) -> bool:
    """``M`` means muted, ``UM`` means unmuted."""
    return text == "M"


def error() -> str:
    return "ERROR"


def _flag(value: bool) -> str:
    return "1" if value else "0"


def _mute(muted: bool) -> str:
    return "M" if muted else "UM"


# -----------------------------------------------------------------------------
# Zone composers
# -----------------------------------------------------------------------------


def zone_query(zone: int) -> str:
    return f"QO{zone}"


def zone_query_volume(zone: int) -> str:
    return f"QVO{zone}"


def zone_query_mute(zone: int) -> str:
    return f"QVMO{zone}"


def zone_query_source(zone: int) -> str:
    return f"QCO{zone}"


def zone_volume(zone: int, level: int) -> str:
    return f"VO{zone}R{level}"


def zone_volume_all(level: int) -> str:
    return f"VXR{level}"


def zone_volume_up(zone: int) -> str:
    return f"VO{zone}U"


def zone_volume_down(zone: int) -> str:
    return f"VO{zone}D"


def zone_volume_locked(zone: int, locked: bool) -> str:
    return f"VO{zone}F{_flag(locked)}"


def zone_mute(zone: int, muted: bool) -> str:
    return f"V{_mute(muted)}O{zone}"


def zone_toggle_mute(zone: int) -> str:
    return f"VMTO{zone}"


def zone_source(zone: int, source: int) -> str:
    return f"CO{zone}I{source}"


def zone_source_all(source: int) -> str:
    return f"CXI{source}"


def zone_name(zone: int, name: str) -> str:
    return f"NO{zone}{quote_name(name)}"


def zone_balance(zone: int, balance: int) -> str:
    return f"BO{zone}{balance_to_wire(balance)}"


def zone_balance_adjust(zone: int, channel: str) -> str:
    return f"BO{zone}{channel}U"


def zone_tone(zone: int, bass: int, treble: int) -> str:
    return f"TO{zone}B{bass}T{treble}"


def zone_bass_up(zone: int) -> str:
    return f"TO{zone}BU"


def zone_bass_down(zone: int) -> str:
    return f"TO{zone}BD"


def zone_treble_up(zone: int) -> str:
    return f"TO{zone}TU"


def zone_treble_down(zone: int) -> str:
    return f"TO{zone}TD"


def zone_equalizer_band(zone: int, band: int, level: int) -> str:
    return f"EO{zone}B{band}L{level}"


def zone_equalizer_band_up(zone: int, band: int) -> str:
    return f"EO{zone}B{band}U"


def zone_equalizer_band_down(zone: int, band: int) -> str:
    return f"EO{zone}B{band}D"


def zone_equalizer_preset(zone: int, preset: int) -> str:
    return f"EO{zone}P{preset}"


def zone_sound_mode(zone: int, mode: int) -> str:
    return f"EO{zone}M{int(mode)}"


def zone_highpass(zone: int, frequency: int) -> str:
    return f"EO{zone}HP{frequency}"


def zone_lowpass(zone: int, frequency: int) -> str:
    return f"EO{zone}LP{frequency}"


# -----------------------------------------------------------------------------
# Group composers
# -----------------------------------------------------------------------------


def group_query(group: int) -> str:
    return f"QG{group}"


def group_volume(group: int, level: int) -> str:
    return f"VG{group}R{level}"


def group_volume_up(group: int) -> str:
    return f"VG{group}U"


def group_volume_down(group: int) -> str:
    return f"VG{group}D"


def group_mute(group: int, muted: bool) -> str:
    return f"V{_mute(muted)}G{group}"


def group_toggle_mute(group: int) -> str:
    return f"VMTG{group}"


def group_source(group: int, source: int) -> str:
    return f"CG{group}I{source}"


def group_name(group: int, name: str) -> str:
    return f"NG{group}{quote_name(name)}"


def group_add_zone(group: int, zone: int) -> str:
    return f"G{group}AO{zone}"


def group_remove_zone(group: int, zone: int) -> str:
    return f"G{group}RO{zone}"


def group_clear_all() -> str:
    return "GAR"


# -----------------------------------------------------------------------------
# Source / preset / favorite composers
# -----------------------------------------------------------------------------


def source_name(source: int, name: str) -> str:
    return f"NI{source}{quote_name(name)}"


def equalizer_preset_query(preset: int) -> str:
    return f"QEP{preset}"


def equalizer_preset_name(preset: int, name: str) -> str:
    return f"NEP{preset}{quote_name(name)}"


def equalizer_preset_band(preset: int, band: int, level: int) -> str:
    return f"EP{preset}B{band}L{level}"


def equalizer_preset_band_up(preset: int, band: int) -> str:
    return f"EP{preset}B{band}U"


def equalizer_preset_band_down(preset: int, band: int) -> str:
    return f"EP{preset}B{band}D"


def favorite_query(favorite: int) -> str:
    return f"QF{favorite}"


def favorite_name(favorite: int, name: str) -> str:
    return f"NF{favorite}{quote_name(name)}"


# -----------------------------------------------------------------------------
# Front panel / infrared / network / configuration composers
# -----------------------------------------------------------------------------


def front_panel_brightness(brightness: int) -> str:
    return f"SD{brightness}"


def front_panel_locked(locked: bool) -> str:
    return f"FPL{_flag(locked)}"


def front_panel_query_brightness() -> str:
    return "QSD"


def front_panel_query() -> str:
    return "QFPL"


def infrared_disabled(disabled: bool) -> str:
    return f"IRL{_flag(disabled)}"


def infrared_query() -> str:
    return "QIRL"


def network_query() -> str:
    return "QE"


def network_dhcp(enabled: bool) -> str:
    return f"DHCP{_flag(enabled)}"


def network_sddp(enabled: bool) -> str:
    return f"SDDP{_flag(enabled)}"


def network_mac(address: str) -> str:
    return f"MAC{address}"


def network_host_address(address: str) -> str:
    return f"IP{address}"


def network_netmask(address: str) -> str:
    return f"NM{address}"


def network_gateway(address: str) -> str:
    return f"GW{address}"


def configuration_will(operation: str) -> str:
    """``SAVE`` -> ``SAVING...``"""
    return f"{CONFIGURATION_PROGRESSIVE[operation]}..."


def configuration_progress(operation: str, numerator: int, denominator: int) -> str:
    """``SAVE``, 1, 2 -> ``SAVING50%``"""
    return f"{CONFIGURATION_PROGRESSIVE[operation]}{percent(numerator, denominator)}%"


def percent(numerator: int, denominator: int) -> int:
    """Integer percentage, truncated."""
    if denominator <= 0:
        raise InvalidArgumentError("denominator must be positive")
    return (numerator * 100) // denominator
