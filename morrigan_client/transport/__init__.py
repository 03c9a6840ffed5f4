"""Transport layer for the Morrigan client.

Components:
- ws: WebSocket connection establishment
- ws_client: WebSocket frame iteration and sending
"""

from .ws import connect_websocket
from .ws_client import MorriganWsClient, MorriganWsMessage, MorriganWsMessageType

__all__ = [
    "MorriganWsClient",
    "MorriganWsMessage",
    "MorriganWsMessageType",
    "connect_websocket",
]
