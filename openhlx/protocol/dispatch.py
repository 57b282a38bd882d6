"""
Regular-expression dispatch table.

Every command shape is described once by a :class:`CommandPattern`: a
regular expression plus the number of match groups it must produce
(including the whole match). The table maps an inbound payload to the
first registered pattern that matches the *entire* payload, in
registration order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from openhlx.core import InvalidArgumentError

logger = logging.getLogger(__name__)

H = TypeVar("H")


@dataclass(frozen=True)
class CommandPattern:
    """A compiled command regex with its expected match count."""

    name: str
    regexp: str
    expected_matches: int
    compiled: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        compiled = re.compile(self.regexp)
        if compiled.groups + 1 != self.expected_matches:
            raise InvalidArgumentError(
                f"Pattern {self.name!r} has {compiled.groups + 1} matches, "
                f"expected {self.expected_matches}"
            )
        object.__setattr__(self, "compiled", compiled)

    def match(self, payload: str) -> re.Match[str] | None:
        return self.compiled.fullmatch(payload)


@dataclass
class Registration(Generic[H]):
    pattern: CommandPattern
    handler: H


class DispatchTable(Generic[H]):
    """Ordered mapping of command patterns to handlers."""

    def __init__(self) -> None:
        self._registrations: list[Registration[H]] = []

    def register(self, pattern: CommandPattern, handler: H) -> None:
        """
        Register a handler for a pattern.

        Raises:
            InvalidArgumentError: If the same pattern is already registered.
        """
        if any(r.pattern.regexp == pattern.regexp for r in self._registrations):
            raise InvalidArgumentError(f"Pattern {pattern.name!r} is already registered")
        self._registrations.append(Registration(pattern, handler))
        logger.debug("Registered %s: %s", pattern.name, pattern.regexp)

    def unregister(self, pattern: CommandPattern) -> bool:
        for index, registration in enumerate(self._registrations):
            if registration.pattern.regexp == pattern.regexp:
                del self._registrations[index]
                return True
        return False

    def lookup(self, payload: str) -> tuple[Registration[H], re.Match[str]] | None:
        """Return the first registration whose pattern covers the payload."""
        for registration in self._registrations:
            match = registration.pattern.match(payload)
            if match is not None:
                return registration, match
        return None

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, pattern: object) -> bool:
        return any(r.pattern == pattern for r in self._registrations)
