"""Morrigan client runtime.

Maintains one authenticated WebSocket connection to a Morrigan server and
routes messages to pluggable providers.
"""

__version__ = "0.2.0"

from .config import ClientSettings, load_settings
from .connection import Connection, ConnectionState
from .dispatch import DispatchOutcome, DispatchResult, Dispatcher
from .errors import (
    MorriganClientError,
    MorriganConfigError,
    MorriganConnectionError,
    MorriganHandshakeError,
    MorriganMessageError,
    MorriganProtocolError,
    MorriganProviderLoadError,
    MorriganTimeout,
)
from .protocol import MessageType, parse_message_type
from .provider import CoreEnv, Provider, ProviderEntry, ProviderHook
from .reconnect import ReconnectController
from .registry import ProviderRegistry
from .runtime import ClientState, MorriganClient

__all__ = [
    "ClientSettings",
    "ClientState",
    "Connection",
    "ConnectionState",
    "CoreEnv",
    "DispatchOutcome",
    "DispatchResult",
    "Dispatcher",
    "MessageType",
    "MorriganClient",
    "MorriganClientError",
    "MorriganConfigError",
    "MorriganConnectionError",
    "MorriganHandshakeError",
    "MorriganMessageError",
    "MorriganProtocolError",
    "MorriganProviderLoadError",
    "MorriganTimeout",
    "Provider",
    "ProviderEntry",
    "ProviderHook",
    "ProviderRegistry",
    "ReconnectController",
    "__version__",
    "load_settings",
    "parse_message_type",
]
