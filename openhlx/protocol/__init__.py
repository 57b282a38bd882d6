"""
HLX protocol package.

Contains the line framing and telnet filter, the regular-expression
dispatch table, the command codec, the connection state machine and the
connection identifier manager.
"""

from __future__ import annotations

from openhlx.protocol.connection import DEFAULT_PORT, DEFAULT_SCHEME, ConnectionState
from openhlx.protocol.dispatch import CommandPattern, DispatchTable
from openhlx.protocol.framing import Frame, Framer, Role, TelnetFilter
from openhlx.protocol.identifiers import SchemeIdentifierManager

__all__ = [
    "CommandPattern",
    "ConnectionState",
    "DEFAULT_PORT",
    "DEFAULT_SCHEME",
    "DispatchTable",
    "Frame",
    "Framer",
    "Role",
    "SchemeIdentifierManager",
    "TelnetFilter",
]
