"""
HLX client runtime: connection, exchange manager, model mirror and the
per-entity controllers.
"""

from __future__ import annotations

from openhlx.client.client import HlxClient
from openhlx.client.connection import ClientConnection
from openhlx.client.controllers import captures
from openhlx.client.exchange import ExchangeManager
from openhlx.client.notifications import Notifications

__all__ = [
    "ClientConnection",
    "ExchangeManager",
    "HlxClient",
    "Notifications",
    "captures",
]
