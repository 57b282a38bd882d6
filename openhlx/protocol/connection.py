"""
Connection state shared by the client and server runtimes.

    CONNECTED --greeting--> CONFIRMED --> READY <--> AWAITING_RESPONSE
         \\___________________________________________________/
                                  |
                                CLOSED

The server moves to CONFIRMED once it has written the greeting line; the
client once it has matched it. Only the client uses AWAITING_RESPONSE.
"""

from __future__ import annotations

import asyncio
import logging
import re
from enum import Enum

from openhlx.core import HlxIOError, InvalidArgumentError

logger = logging.getLogger(__name__)

DEFAULT_SCHEME = "telnet"
DEFAULT_PORT = 23

GREETING_REGEXP = re.compile(r"^([a-z][a-z0-9+.-]*)_client_(\d+): connected\r\n$")


class ConnectionState(Enum):
    CONNECTED = "connected"
    CONFIRMED = "confirmed"
    READY = "ready"
    AWAITING_RESPONSE = "awaiting_response"
    CLOSED = "closed"


# Legal transitions; CLOSED is reachable from anywhere.
_TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.CONNECTED: {ConnectionState.CONFIRMED},
    ConnectionState.CONFIRMED: {ConnectionState.READY},
    ConnectionState.READY: {ConnectionState.AWAITING_RESPONSE},
    ConnectionState.AWAITING_RESPONSE: {ConnectionState.READY},
    ConnectionState.CLOSED: set(),
}


def format_greeting(scheme: str, identifier: int) -> bytes:
    """``telnet``, 1 -> ``telnet_client_1: connected\\r\\n``"""
    return f"{scheme}_client_{identifier}: connected\r\n".encode("ascii")


def parse_greeting(line: bytes) -> tuple[str, int] | None:
    """Return (scheme, identifier) for a greeting line, None otherwise."""
    match = GREETING_REGEXP.match(line.decode("ascii", errors="replace"))
    if match is None:
        return None
    return match.group(1), int(match.group(2))


class ConnectionBasis:
    """
    A stream pair plus its protocol state.

    Writes are serialised by the event loop; ``send()`` drains so a slow
    peer applies back-pressure to the caller.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.state = ConnectionState.CONNECTED

        peername = writer.get_extra_info("peername")
        self.remote_addr = f"{peername[0]}:{peername[1]}" if peername else "unknown"

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def transition(self, state: ConnectionState) -> None:
        """
        Move to a new state.

        Raises:
            InvalidArgumentError: If the transition is not legal.
        """
        if state is ConnectionState.CLOSED:
            self.state = state
            return
        if state not in _TRANSITIONS[self.state]:
            raise InvalidArgumentError(f"Illegal transition {self.state.name} -> {state.name}")
        logger.debug("%s: %s -> %s", self.remote_addr, self.state.name, state.name)
        self.state = state

    async def send(self, data: bytes) -> None:
        """
        Write bytes to the peer.

        Raises:
            HlxIOError: If the connection is closed or the write fails.
        """
        if self.is_closed:
            raise HlxIOError(f"Connection to {self.remote_addr} is closed")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except (ConnectionError, OSError) as e:
            raise HlxIOError(f"Write to {self.remote_addr} failed: {e}") from e

    async def close(self) -> None:
        """Close the transport; safe to call more than once."""
        if self.is_closed:
            return
        self.transition(ConnectionState.CLOSED)
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug("Error closing %s: %s", self.remote_addr, e)
