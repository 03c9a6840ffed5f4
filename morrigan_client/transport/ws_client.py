"""WebSocket client wrapper for the Morrigan server."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from ..errors import MorriganConnectionError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class MorriganWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class MorriganWsMessage:
    """Normalized WebSocket message payload."""

    type: MorriganWsMessageType
    data: str | None = None


class MorriganWsClient:
    """Wrapper around the websockets library for one server session."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    async def connect(
        self,
        url: str,
        *,
        origin: str | None = None,
        headers: dict[str, str] | None = None,
        ping_interval: int | None = 20,
        timeout: float = 15.0,
    ) -> None:
        """Connect to the server websocket."""
        self._ws = await connect_websocket(
            url,
            origin=origin,
            headers=headers,
            ping_interval=ping_interval,
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            await self._ws.close()

    async def send_text(self, data: str) -> None:
        """Send a text frame to the websocket."""
        if self._ws is None:
            raise MorriganConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(data)
        except ConnectionClosed as err:
            raise MorriganConnectionError("WebSocket closed while sending") from err

    def __aiter__(self) -> AsyncIterator[MorriganWsMessage]:
        if self._ws is None:
            raise MorriganConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[MorriganWsMessage]:
        if self._ws is None:
            raise MorriganConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed:
            yield MorriganWsMessage(type=MorriganWsMessageType.CLOSED)
        except Exception:
            yield MorriganWsMessage(type=MorriganWsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield MorriganWsMessage(type=MorriganWsMessageType.CLOSED)

    @staticmethod
    def _normalize_message(msg: Any) -> MorriganWsMessage | None:
        """Normalize frames into MorriganWsMessage; binary frames are skipped."""
        if isinstance(msg, (bytes, bytearray, memoryview)):
            return None
        if isinstance(msg, str):
            return MorriganWsMessage(MorriganWsMessageType.TEXT, msg)
        return MorriganWsMessage(MorriganWsMessageType.TEXT, str(msg))
