"""Routing of inbound frames to provider message handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import MorriganProtocolError
from .protocol import decode_frame, parse_message_type
from .registry import invoke

if TYPE_CHECKING:
    from .connection import Connection
    from .provider import CoreEnv
    from .registry import ProviderRegistry

_LOGGER = logging.getLogger(__name__)


class DispatchOutcome(Enum):
    """What happened to one inbound frame."""

    HANDLED = "handled"
    INVALID_FRAME = "invalid_frame"
    UNKNOWN_PROVIDER = "unknown_provider"
    UNKNOWN_MESSAGE = "unknown_message"
    HANDLER_ERROR = "handler_error"


@dataclass(frozen=True)
class DispatchResult:
    """Result of dispatching one frame."""

    outcome: DispatchOutcome
    detail: str = ""
    message_type: str | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is DispatchOutcome.HANDLED


class Dispatcher:
    """Decodes frames and invokes exactly one provider handler per message."""

    def __init__(self, registry: ProviderRegistry, core_env: CoreEnv) -> None:
        self._registry = registry
        self._core_env = core_env

    async def dispatch(self, frame: str, connection: Connection) -> DispatchResult:
        """Route a raw text frame. Never raises for handler or protocol errors."""
        try:
            message = decode_frame(frame)
        except MorriganProtocolError as err:
            return DispatchResult(DispatchOutcome.INVALID_FRAME, str(err))
        return await self.dispatch_message(message, connection)

    async def dispatch_message(
        self, message: dict[str, Any], connection: Connection
    ) -> DispatchResult:
        """Route an already decoded message."""
        try:
            msg_type = parse_message_type(message.get("type"))
        except MorriganProtocolError as err:
            return DispatchResult(DispatchOutcome.INVALID_FRAME, str(err))

        type_name = str(msg_type)
        entry = self._registry.entry(msg_type.provider)
        if entry is None:
            return DispatchResult(
                DispatchOutcome.UNKNOWN_PROVIDER,
                f"No provider for the given message type '{type_name}'",
                type_name,
            )

        handler = entry.handler(msg_type.message)
        if handler is None:
            return DispatchResult(
                DispatchOutcome.UNKNOWN_MESSAGE,
                f"Provider '{entry.name}' does not support message '{msg_type.message}'",
                type_name,
            )

        try:
            await invoke(handler, message, connection, self._core_env)
        except Exception as err:
            return DispatchResult(
                DispatchOutcome.HANDLER_ERROR,
                f"Exception occurred while processing '{type_name}': {err}",
                type_name,
                err,
            )
        return DispatchResult(DispatchOutcome.HANDLED, message_type=type_name)


def log_dispatch_result(result: DispatchResult, frame: str) -> None:
    """Log a dispatch outcome at a level matching its severity."""
    if result.outcome is DispatchOutcome.HANDLED:
        _LOGGER.debug("Handled '%s'", result.message_type)
    elif result.outcome is DispatchOutcome.HANDLER_ERROR:
        _LOGGER.error("%s", result.detail, exc_info=result.error)
    elif result.outcome is DispatchOutcome.INVALID_FRAME:
        _LOGGER.warning("Invalid message received from server (%s): %.200s", result.detail, frame)
    else:
        _LOGGER.warning("%s: %.200s", result.detail, frame)
