"""
Scalar value models shared by the HLX entities.

Every field starts out null (``None``) and is distinct from any valid value.
Mutators never raise; they return a :class:`Status`:

- ``SUCCESS``: the value changed.
- ``ALREADY_SET``: the value was equal to the current one (not an error).
- ``NOT_INITIALIZED``: a relative change was requested on a null value.
- ``OUT_OF_RANGE``: an identifier or value is outside its limits.
- ``NOT_FOUND``: a lookup or removal missed.
- ``INVALID_ARGUMENT``: the argument is malformed (e.g. non-printable name).
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class Status(Enum):
    """Result of a model mutation."""

    SUCCESS = "success"
    ALREADY_SET = "already-set"
    NOT_INITIALIZED = "not-initialized"
    OUT_OF_RANGE = "out-of-range"
    NOT_FOUND = "not-found"
    INVALID_ARGUMENT = "invalid-argument"

    @property
    def is_ok(self) -> bool:
        """True for the two non-error outcomes."""
        return self in (Status.SUCCESS, Status.ALREADY_SET)


# Identifiers
IDENTIFIER_MIN = 1

ZONES_MAX = 24
GROUPS_MAX = 10
SOURCES_MAX = 8
EQUALIZER_PRESETS_MAX = 10
FAVORITES_MAX = 10
EQUALIZER_BANDS_MAX = 10

NAME_LENGTH_MAX = 16

VOLUME_MIN = -80
VOLUME_MAX = 0

BALANCE_MIN = -80
BALANCE_MAX = 80
BALANCE_CENTER = 0

TONE_MIN = -12
TONE_MAX = 12
TONE_FLAT = 0

EQUALIZER_BAND_MIN = -10
EQUALIZER_BAND_MAX = 10
EQUALIZER_BAND_FLAT = 0

CROSSOVER_FREQUENCY_MIN = 20
CROSSOVER_FREQUENCY_MAX = 20000
CROSSOVER_FREQUENCY_DEFAULT = 100

BRIGHTNESS_MIN = 0
BRIGHTNESS_MAX = 3


def validate_identifier(identifier: int, maximum: int) -> Status:
    """Check a 1-based identifier against an inclusive maximum."""
    if IDENTIFIER_MIN <= identifier <= maximum:
        return Status.SUCCESS
    return Status.OUT_OF_RANGE


def validate_range(value: int, minimum: int, maximum: int) -> Status:
    if minimum <= value <= maximum:
        return Status.SUCCESS
    return Status.OUT_OF_RANGE


def normalize_name(name: str) -> str | None:
    """
    Truncate a name to the wire limit.

    Returns None when the name is empty or contains anything other than
    printable ASCII (0x20-0x7e). The double quote delimits names on the
    wire and is rejected too.
    """
    if not name:
        return None
    if any(not (0x20 <= ord(ch) <= 0x7E) or ch == '"' for ch in name):
        return None
    return name[:NAME_LENGTH_MAX]


class ValueModel:
    """Base for models built out of nullable scalar fields."""

    def _assign(self, attr: str, value: Any) -> Status:
        if getattr(self, attr) == value:
            return Status.ALREADY_SET
        setattr(self, attr, value)
        return Status.SUCCESS


class NameModel(ValueModel):
    """A printable ASCII name of at most 16 characters."""

    def __init__(self) -> None:
        self.name: str | None = None

    def set_name(self, name: str) -> Status:
        normalized = normalize_name(name)
        if normalized is None:
            return Status.INVALID_ARGUMENT
        return self._assign("name", normalized)


class VolumeModel(ValueModel):
    """Volume level, mute and volume-locked state."""

    def __init__(self) -> None:
        self.level: int | None = None
        self.muted: bool | None = None
        self.locked: bool | None = None

    def set_level(self, level: int) -> Status:
        status = validate_range(level, VOLUME_MIN, VOLUME_MAX)
        if status is not Status.SUCCESS:
            return status
        return self._assign("level", level)

    def adjust_level(self, delta: int) -> Status:
        if self.level is None:
            return Status.NOT_INITIALIZED
        return self.set_level(self.level + delta)

    def set_mute(self, muted: bool) -> Status:
        return self._assign("muted", bool(muted))

    def toggle_mute(self) -> Status:
        if self.muted is None:
            return Status.NOT_INITIALIZED
        return self.set_mute(not self.muted)

    def set_locked(self, locked: bool) -> Status:
        return self._assign("locked", bool(locked))


class BalanceModel(ValueModel):
    """Stereo balance, -80 (full left) to +80 (full right)."""

    def __init__(self) -> None:
        self.balance: int | None = None

    def set_balance(self, balance: int) -> Status:
        status = validate_range(balance, BALANCE_MIN, BALANCE_MAX)
        if status is not Status.SUCCESS:
            return status
        return self._assign("balance", balance)

    def adjust_balance(self, channel: str) -> Status:
        """Move the balance one step towards channel 'L' or 'R'."""
        if channel not in ("L", "R"):
            return Status.INVALID_ARGUMENT
        if self.balance is None:
            return Status.NOT_INITIALIZED
        return self.set_balance(self.balance + (-1 if channel == "L" else 1))


class ToneModel(ValueModel):
    def __init__(self) -> None:
        self.bass: int | None = None
        self.treble: int | None = None

    def set_bass(self, level: int) -> Status:
        status = validate_range(level, TONE_MIN, TONE_MAX)
        if status is not Status.SUCCESS:
            return status
        return self._assign("bass", level)

    def set_treble(self, level: int) -> Status:
        status = validate_range(level, TONE_MIN, TONE_MAX)
        if status is not Status.SUCCESS:
            return status
        return self._assign("treble", level)

    def set_tone(self, bass: int, treble: int) -> Status:
        """Set both levels; already-set only when neither changed."""
        if validate_range(bass, TONE_MIN, TONE_MAX) is not Status.SUCCESS:
            return Status.OUT_OF_RANGE
        if validate_range(treble, TONE_MIN, TONE_MAX) is not Status.SUCCESS:
            return Status.OUT_OF_RANGE
        bass_status = self.set_bass(bass)
        treble_status = self.set_treble(treble)
        if Status.SUCCESS in (bass_status, treble_status):
            return Status.SUCCESS
        return Status.ALREADY_SET

    def adjust_bass(self, delta: int) -> Status:
        if self.bass is None:
            return Status.NOT_INITIALIZED
        return self.set_bass(self.bass + delta)

    def adjust_treble(self, delta: int) -> Status:
        if self.treble is None:
            return Status.NOT_INITIALIZED
        return self.set_treble(self.treble + delta)


class EqualizerBandsModel:
    """Ten equalizer band levels, addressed 1..10."""

    def __init__(self) -> None:
        self._levels: list[int | None] = [None] * EQUALIZER_BANDS_MAX

    def get_level(self, band: int) -> int | None:
        if validate_identifier(band, EQUALIZER_BANDS_MAX) is not Status.SUCCESS:
            return None
        return self._levels[band - 1]

    def set_level(self, band: int, level: int) -> Status:
        status = validate_identifier(band, EQUALIZER_BANDS_MAX)
        if status is not Status.SUCCESS:
            return status
        status = validate_range(level, EQUALIZER_BAND_MIN, EQUALIZER_BAND_MAX)
        if status is not Status.SUCCESS:
            return status
        if self._levels[band - 1] == level:
            return Status.ALREADY_SET
        self._levels[band - 1] = level
        return Status.SUCCESS

    def adjust_level(self, band: int, delta: int) -> Status:
        status = validate_identifier(band, EQUALIZER_BANDS_MAX)
        if status is not Status.SUCCESS:
            return status
        current = self._levels[band - 1]
        if current is None:
            return Status.NOT_INITIALIZED
        return self.set_level(band, current + delta)

    @property
    def levels(self) -> list[int | None]:
        return list(self._levels)

    def load(self, levels: list[int | None] | None) -> None:
        """Replace all levels, e.g. from a backup; missing bands become null."""
        values = list(levels or [])[:EQUALIZER_BANDS_MAX]
        values += [None] * (EQUALIZER_BANDS_MAX - len(values))
        self._levels = values

    def items(self) -> list[tuple[int, int | None]]:
        """(band, level) pairs in band order."""
        return [(band, level) for band, level in enumerate(self._levels, start=1)]


class CrossoverModel(ValueModel):
    """A highpass or lowpass crossover frequency within construction limits."""

    def __init__(
        self,
        minimum: int = CROSSOVER_FREQUENCY_MIN,
        maximum: int = CROSSOVER_FREQUENCY_MAX,
    ) -> None:
        self.minimum = minimum
        self.maximum = maximum
        self.frequency: int | None = None

    def set_frequency(self, frequency: int) -> Status:
        status = validate_range(frequency, self.minimum, self.maximum)
        if status is not Status.SUCCESS:
            return status
        return self._assign("frequency", frequency)
