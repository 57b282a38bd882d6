"""
Per-scheme connection identifier manager.

The server names every accepted connection ``<scheme>_client_<id>``.
Identifiers start at 1 within each scheme and the lowest free one is always
handed out, so a released identifier is reused by the next claim.
"""

from __future__ import annotations

import logging

from openhlx.core import InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)

IDENTIFIER_FIRST = 1


class SchemeIdentifierManager:
    """Vends the smallest unused identifier per URL scheme."""

    def __init__(self) -> None:
        self._claimed: dict[str, set[int]] = {}

    def claim(self, scheme: str) -> int:
        """
        Claim the lowest free identifier for a scheme.

        Raises:
            InvalidArgumentError: If the scheme is empty.
        """
        claimed = self._claimed.setdefault(self._check(scheme), set())
        identifier = IDENTIFIER_FIRST
        while identifier in claimed:
            identifier += 1
        claimed.add(identifier)
        logger.debug("Claimed %s identifier %d", scheme, identifier)
        return identifier

    def release(self, scheme: str, identifier: int) -> None:
        """
        Return an identifier to the pool.

        Raises:
            InvalidArgumentError: If the scheme is empty.
            NotFoundError: If the identifier was not claimed.
        """
        claimed = self._claimed.get(self._check(scheme), set())
        if identifier not in claimed:
            raise NotFoundError(f"{scheme} identifier {identifier} is not claimed")
        claimed.discard(identifier)
        logger.debug("Released %s identifier %d", scheme, identifier)

    def is_claimed(self, scheme: str, identifier: int) -> bool:
        return identifier in self._claimed.get(self._check(scheme), set())

    @staticmethod
    def _check(scheme: str) -> str:
        if not scheme:
            raise InvalidArgumentError("scheme must not be empty")
        return scheme
