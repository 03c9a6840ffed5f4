"""Built-in providers shipped with the client."""

from .capability import CapabilityProvider
from .connection import ConnectionStateProvider
from .token import TokenProvider, TokenRecord, TokenState, TokenStore

__all__ = [
    "CapabilityProvider",
    "ConnectionStateProvider",
    "TokenProvider",
    "TokenRecord",
    "TokenState",
    "TokenStore",
]
