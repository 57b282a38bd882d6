"""
Core package.

This package contains the pieces shared by the client and server runtimes
that are independent of the wire protocol: the exception hierarchy, the
event bus and the backup store.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `openhlx.core.events`).
"""

from __future__ import annotations

__all__: list[str] = [
    "HlxError",
    "InvalidArgumentError",
    "OutOfRangeError",
    "NotFoundError",
    "NotInitializedError",
    "ValueAlreadySetError",
    "ExchangeError",
    "ExchangeTimeoutError",
    "DisconnectedError",
    "ExchangeCancelledError",
    "CommandRejectedError",
    "HlxIOError",
    "SystemNotInitializedError",
]


class HlxError(Exception):
    """Base class for all openhlx exceptions."""


class InvalidArgumentError(HlxError):
    """Raised for a malformed request, a non-printable name or a missing argument."""


class OutOfRangeError(HlxError):
    """Raised when an identifier or value is outside its declared limits."""


class NotFoundError(HlxError):
    """Raised when a lookup by name or identifier misses."""


class NotInitializedError(HlxError):
    """Raised when a value is read before it was ever written."""


class ValueAlreadySetError(HlxError):
    """Raised when a delegate or listener slot is already assigned."""


class ExchangeError(HlxError):
    """Base class for failures of a client request/response exchange."""


class ExchangeTimeoutError(ExchangeError):
    """The exchange clock expired before a matching response arrived."""


class DisconnectedError(ExchangeError):
    """The connection closed while the exchange was pending."""


class ExchangeCancelledError(ExchangeError):
    """The exchange was cancelled by a local disconnect or shutdown."""


class CommandRejectedError(ExchangeError):
    """The server answered the request with the error response."""


class HlxIOError(HlxError):
    """Socket, bind or stream failure."""


class SystemNotInitializedError(HlxError):
    """A component was used before its own initialisation completed."""
