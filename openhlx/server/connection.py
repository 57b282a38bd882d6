"""
Server-side connection.

Each accepted TCP connection is named ``<scheme>_client_<id>``; the
identifier is claimed from the listener's identifier manager on accept
and released again when the connection closes.
"""

from __future__ import annotations

import asyncio

from openhlx.protocol.connection import ConnectionBasis, format_greeting
from openhlx.protocol.framing import encode_response


class ServerConnection(ConnectionBasis):
    """An accepted client connection."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        scheme: str,
        identifier: int,
    ) -> None:
        super().__init__(reader, writer)
        self.scheme = scheme
        self.identifier = identifier

    @property
    def name(self) -> str:
        return f"{self.scheme}_client_{self.identifier}"

    async def send_greeting(self) -> None:
        await self.send(format_greeting(self.scheme, self.identifier))

    async def send_response(self, payload: str) -> None:
        await self.send(encode_response(payload))

    def __repr__(self) -> str:
        return f"ServerConnection({self.name}, {self.remote_addr}, {self.state.name})"
