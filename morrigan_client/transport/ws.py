"""WebSocket helpers for the Morrigan server transport."""

from __future__ import annotations

import asyncio

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    MorriganConnectionError,
    MorriganHandshakeError,
    MorriganTimeout,
)


async def connect_websocket(
    url: str,
    *,
    origin: str | None = None,
    headers: dict[str, str] | None = None,
    ping_interval: int | None = 20,
    timeout: float = 15.0,
) -> ClientConnection:
    """Connect to the server WebSocket endpoint.

    Uses the websockets library which properly implements RFC 6455 frame masking.

    Args:
        url: Full ws:// or wss:// URL of the server
        origin: Value sent as the Origin header (carries the client token)
        headers: Additional handshake headers
        ping_interval: Interval for ping frames
        timeout: Connection timeout
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                origin=origin,
                additional_headers=headers,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise MorriganTimeout("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise MorriganHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise MorriganConnectionError("WebSocket connection failed") from err
