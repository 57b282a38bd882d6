"""
HLX server runtime: telnet listener, connection registry and command manager.
"""

from __future__ import annotations

from openhlx.server.commands import CommandManager
from openhlx.server.connection import ServerConnection
from openhlx.server.listener import TelnetServer
from openhlx.server.registry import ConnectionRegistry

__all__ = [
    "CommandManager",
    "ConnectionRegistry",
    "ServerConnection",
    "TelnetServer",
]
