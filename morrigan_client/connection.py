"""The single live server session and its state machine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import MorriganConnectionError
from .protocol import encode_message

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .transport import MorriganWsClient, MorriganWsMessage

_LOGGER = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle states of a server connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Connection:
    """One transport session to the server.

    Providers receive this object in hooks and handlers and use ``send`` to
    talk back to the server. A connection never reopens; the runtime creates
    a new one for every attempt.
    """

    def __init__(self, ws: MorriganWsClient, url: str) -> None:
        self._ws = ws
        self.url = url
        self._state = ConnectionState.CONNECTING

    @property
    def state(self) -> ConnectionState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state is ConnectionState.CLOSED

    async def open(
        self,
        *,
        origin: str | None = None,
        headers: dict[str, str] | None = None,
        ping_interval: int | None = 20,
        timeout: float = 15.0,
    ) -> None:
        """Perform the handshake; transport errors propagate to the caller."""
        if self._state is not ConnectionState.CONNECTING:
            raise MorriganConnectionError(
                f"Connection cannot be opened from state '{self._state.value}'"
            )
        await self._ws.connect(
            self.url,
            origin=origin,
            headers=headers,
            ping_interval=ping_interval,
            timeout=timeout,
        )
        self._state = ConnectionState.OPEN

    async def send(self, message: Mapping[str, Any]) -> None:
        """Serialize and transmit a message exactly once.

        Raises:
            MorriganConnectionError: If the connection is not open
            MorriganMessageError: If the message has no string ``type``
        """
        if self._state is not ConnectionState.OPEN:
            raise MorriganConnectionError(
                "Unable to send message: connection was in a non-ready state "
                f"(found '{self._state.value}', expected 'open')"
            )
        await self._ws.send_text(encode_message(message))

    async def close(self, *, timeout: float = 2.0) -> None:
        """Close the transport. The CLOSED transition is left to ``mark_closed``."""
        if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self._state = ConnectionState.CLOSING
        try:
            await asyncio.wait_for(self._ws.close(), timeout=timeout)
        except TimeoutError:
            _LOGGER.warning("WebSocket close to %s timed out", self.url)

    def mark_closed(self) -> bool:
        """Transition to CLOSED.

        Returns:
            True only for the call that performed the transition
        """
        if self._state is ConnectionState.CLOSED:
            return False
        self._state = ConnectionState.CLOSED
        return True

    def frames(self) -> AsyncIterator[MorriganWsMessage]:
        """Iterate normalized inbound frames."""
        return aiter(self._ws)

    def __repr__(self) -> str:
        return f"<Connection {self.url} {self._state.value}>"
