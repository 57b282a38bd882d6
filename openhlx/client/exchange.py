"""
Request/response exchanges over one client connection.

At most one request is outstanding per connection. Submitters queue on a
lock in FIFO order; the pending exchange is completed by the first
inbound payload that matches its response pattern (success) or
``ERROR`` (rejected). Any other payload is a notification and leaves the
exchange pending.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from openhlx.core import (
    CommandRejectedError,
    DisconnectedError,
    ExchangeError,
    ExchangeTimeoutError,
    HlxIOError,
    SystemNotInitializedError,
)
from openhlx.protocol import commands
from openhlx.protocol.connection import ConnectionState
from openhlx.protocol.dispatch import CommandPattern

from openhlx.client.connection import ClientConnection

logger = logging.getLogger(__name__)

Expectation = Callable[["re.Match[str]"], bool]

# Sentinel for "use the manager's default timeout"
DEFAULT: Any = object()


def _new_future() -> asyncio.Future[re.Match[str]]:
    return asyncio.get_running_loop().create_future()


@dataclass
class PendingExchange:
    request: str
    pattern: CommandPattern
    expect: Expectation | None = None
    future: asyncio.Future[re.Match[str]] = field(default_factory=_new_future)

    def accepts(self, match: re.Match[str]) -> bool:
        return self.expect is None or self.expect(match)


class ExchangeManager:
    """
    Serialises requests on a connection and matches their responses.

    Timeout policy: ``default_timeout`` seconds unless a submit passes its
    own; ``None`` waits forever.
    """

    def __init__(self, default_timeout: float | None = 10.0) -> None:
        self.default_timeout = default_timeout
        self.connection: ClientConnection | None = None
        self._pending: PendingExchange | None = None
        self._failure: ExchangeError | None = None
        self._lock = asyncio.Lock()

    def attach(self, connection: ClientConnection) -> None:
        self.connection = connection
        self._failure = None

    @property
    def pending(self) -> str | None:
        """The request awaiting its response, if any."""
        return self._pending.request if self._pending else None

    async def submit(
        self,
        request: str,
        pattern: CommandPattern,
        *,
        expect: Expectation | None = None,
        timeout: float | None = DEFAULT,
    ) -> re.Match[str]:
        """
        Send a request and wait for its response.

        Args:
            request: Request payload, without brackets.
            pattern: Pattern of the response that completes the exchange.
            expect: Optional predicate the response match must also satisfy.
            timeout: Seconds to wait; defaults to ``default_timeout``.

        Returns:
            The match of the completing response.

        Raises:
            CommandRejectedError: The server answered ``(ERROR)``.
            ExchangeTimeoutError: No matching response in time.
            DisconnectedError: The connection closed while waiting.
            ExchangeCancelledError: The client disconnected while waiting.
            SystemNotInitializedError: There was never a connection.
        """
        wait = self.default_timeout if timeout is DEFAULT else timeout

        async with self._lock:
            connection = self.connection
            if connection is None or connection.is_closed:
                if self._failure is not None:
                    raise type(self._failure)(str(self._failure))
                raise SystemNotInitializedError("Not connected")

            exchange = PendingExchange(request=request, pattern=pattern, expect=expect)
            self._pending = exchange
            connection.transition(ConnectionState.AWAITING_RESPONSE)
            try:
                try:
                    await connection.send_request(request)
                except HlxIOError as e:
                    self._pending = None
                    self._failure = DisconnectedError(f"Connection lost: {e}")
                    await connection.lost(e)
                    raise DisconnectedError(f"[{request}] not sent: {e}") from e
                return await asyncio.wait_for(exchange.future, wait)
            except asyncio.TimeoutError as e:
                logger.warning("No response to [%s] within %ss", request, wait)
                raise ExchangeTimeoutError(f"No response to [{request}]") from e
            finally:
                self._pending = None
                if connection.state is ConnectionState.AWAITING_RESPONSE:
                    connection.transition(ConnectionState.READY)

    def offer(self, payload: str) -> bool:
        """
        Offer an inbound response payload to the pending exchange.

        Returns True when it completed the exchange.
        """
        exchange = self._pending
        if exchange is None or exchange.future.done():
            return False

        if commands.ERROR.match(payload) is not None:
            logger.debug("[%s] rejected", exchange.request)
            exchange.future.set_exception(CommandRejectedError(f"[{exchange.request}] rejected"))
            return True

        match = exchange.pattern.match(payload)
        if match is None or not exchange.accepts(match):
            return False

        exchange.future.set_result(match)
        return True

    def fail_all(self, error: ExchangeError) -> None:
        """
        Fail the pending exchange with ``error``.

        Submitters still queued behind it fail with the same error kind
        once they find the connection closed.
        """
        self._failure = error
        exchange = self._pending
        if exchange is not None and not exchange.future.done():
            exchange.future.set_exception(error)
