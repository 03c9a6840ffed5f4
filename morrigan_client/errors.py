"""Client error types for the Morrigan client runtime."""

from __future__ import annotations


class MorriganClientError(Exception):
    """Base error for Morrigan client failures."""


class MorriganConfigError(MorriganClientError):
    """Required configuration (server URL, token source) is missing or invalid."""


class MorriganTimeout(MorriganClientError):
    """Timeout while communicating with the server."""


class MorriganConnectionError(MorriganClientError):
    """Network connection to the server failed or is not open."""


class MorriganHandshakeError(MorriganClientError):
    """WebSocket handshake failed."""


class MorriganProtocolError(MorriganClientError):
    """An inbound frame could not be decoded into a routable message."""


class MorriganMessageError(MorriganClientError):
    """An outbound message is malformed."""


class MorriganProviderLoadError(MorriganClientError):
    """A provider could not be loaded or instantiated."""

    def __init__(self, reference: str, message: str) -> None:
        super().__init__(message)
        self.reference = reference
