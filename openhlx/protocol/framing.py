"""
Framing for the HLX telnet control protocol.

Protocol Format:
    Requests are wrapped in square brackets, responses in parentheses, and
    both are terminated by CRLF:

        [VO3U]\\r\\n        request
        (VO3R-9)\\r\\n      response / notification

    Bytes outside a frame (CRLF runs, stray text) are discarded. A telnet
    filter sits below the framer and strips IAC option negotiation,
    refusing every option the peer asks for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

CRLF = b"\r\n"

# Telnet command bytes (RFC 854)
IAC = 255
DONT = 254
DO = 253
WONT = 252
WILL = 251
SB = 250
SE = 240


class Role(Enum):
    """Message role, selected by the delimiter pair."""

    REQUEST = ("[", "]")
    RESPONSE = ("(", ")")

    @property
    def start(self) -> str:
        return self.value[0]

    @property
    def end(self) -> str:
        return self.value[1]


_ROLE_BY_START = {role.start: role for role in Role}


@dataclass(frozen=True)
class Frame:
    """A payload extracted from the stream, without its delimiters."""

    role: Role
    payload: str


def encode_frame(role: Role, payload: str) -> bytes:
    """Wrap a payload in its role delimiters and terminate it with CRLF."""
    return f"{role.start}{payload}{role.end}".encode("ascii") + CRLF


def encode_request(payload: str) -> bytes:
    return encode_frame(Role.REQUEST, payload)


def encode_response(payload: str) -> bytes:
    return encode_frame(Role.RESPONSE, payload)


class TelnetFilter:
    """
    Strip telnet IAC sequences from an inbound byte stream.

    The filter is stateful so sequences split across reads are handled.
    ``feed()`` returns the clean data plus any negotiation replies that
    should be written back to the peer (DO -> WONT, WILL -> DONT).
    """

    def __init__(self) -> None:
        self._state = "data"
        self._command = 0

    def feed(self, data: bytes) -> tuple[bytes, bytes]:
        clean = bytearray()
        replies = bytearray()

        for byte in data:
            state = self._state
            if state == "data":
                if byte == IAC:
                    self._state = "iac"
                else:
                    clean.append(byte)
            elif state == "iac":
                if byte == IAC:
                    # Escaped 0xff data byte
                    clean.append(IAC)
                    self._state = "data"
                elif byte in (DO, DONT, WILL, WONT):
                    self._command = byte
                    self._state = "option"
                elif byte == SB:
                    self._state = "subnegotiation"
                else:
                    self._state = "data"
            elif state == "option":
                if self._command == DO:
                    replies += bytes((IAC, WONT, byte))
                    logger.debug("Refusing telnet DO %d", byte)
                elif self._command == WILL:
                    replies += bytes((IAC, DONT, byte))
                    logger.debug("Refusing telnet WILL %d", byte)
                self._state = "data"
            elif state == "subnegotiation":
                if byte == IAC:
                    self._state = "subnegotiation-iac"
            elif state == "subnegotiation-iac":
                self._state = "data" if byte == SE else "subnegotiation"

        return bytes(clean), bytes(replies)


class Framer:
    """
    Accumulate bytes and emit complete frames.

    A frame starts at the first ``[`` or ``(`` and ends at the matching
    closing delimiter that is not inside a double-quoted name. Payloads
    never contain CR, so once the terminating CRLF has arrived an
    unbalanced quote can no longer hold the frame open: the frame then
    ends at the last closing delimiter before the CRLF. Partial frames are
    kept until more data arrives.
    """

    def __init__(self, max_buffer: int = 64 * 1024) -> None:
        self._buffer = ""
        self._max_buffer = max_buffer

    def feed(self, data: bytes) -> list[Frame]:
        self._buffer += data.decode("ascii", errors="replace")
        frames: list[Frame] = []

        while True:
            start = self._find_start()
            if start < 0:
                # Nothing but inter-frame noise
                self._buffer = ""
                break

            role = _ROLE_BY_START[self._buffer[start]]
            terminator = self._buffer.find("\r\n", start)
            limit = terminator if terminator >= 0 else len(self._buffer)
            end = self._find_end(start + 1, limit, role.end)
            if end < 0 and terminator >= 0:
                end = self._buffer.rfind(role.end, start + 1, terminator)
                if end < 0:
                    logger.warning("Discarding unterminated frame: %r", self._buffer[start:terminator])
                    self._buffer = self._buffer[terminator + 2 :]
                    continue
                logger.debug("Unbalanced quotes in frame: %r", self._buffer[start : end + 1])
            if end < 0:
                self._buffer = self._buffer[start:]
                if len(self._buffer) > self._max_buffer:
                    logger.warning("Discarding oversized partial frame (%d bytes)", len(self._buffer))
                    self._buffer = ""
                break

            frames.append(Frame(role=role, payload=self._buffer[start + 1 : end]))
            self._buffer = self._buffer[end + 1 :]

        return frames

    def _find_start(self) -> int:
        positions = [p for p in (self._buffer.find("["), self._buffer.find("(")) if p >= 0]
        return min(positions) if positions else -1

    def _find_end(self, index: int, limit: int, delimiter: str) -> int:
        quoted = False
        for i in range(index, limit):
            ch = self._buffer[i]
            if ch == '"':
                quoted = not quoted
            elif ch == delimiter and not quoted:
                return i
        return -1

    @property
    def pending(self) -> str:
        """Buffered bytes of an incomplete frame."""
        return self._buffer
