"""Provider plugin contract.

A provider is a named, versioned unit contributing message handlers and
optional lifecycle hooks. Providers may be written either as classes deriving
from :class:`Provider` or as plain modules exposing the same attributes::

    name = "echo"
    version = "1.0.0"

    async def ping(message, connection, core_env):
        await connection.send({"type": "echo.pong"})

    message_handlers = {"ping": ping}

Handlers and hooks may be plain functions or coroutine functions.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Flag, auto
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import ClientSettings
    from .connection import Connection
    from .registry import ProviderRegistry

MessageHandler = Callable[
    [dict[str, Any], "Connection", "CoreEnv"], Awaitable[None] | None
]


class ProviderHook(Flag):
    """Optional lifecycle hooks a provider may implement."""

    NONE = 0
    SETUP = auto()
    ON_CONNECT = auto()
    ON_DISCONNECT = auto()
    ON_STOP = auto()


HOOK_ATTRIBUTES: dict[ProviderHook, str] = {
    ProviderHook.SETUP: "setup",
    ProviderHook.ON_CONNECT: "on_connect",
    ProviderHook.ON_DISCONNECT: "on_disconnect",
    ProviderHook.ON_STOP: "on_stop",
}


@dataclass(frozen=True)
class CoreEnv:
    """Shared read-mostly context passed to every provider call."""

    settings: ClientSettings
    providers: ProviderRegistry
    logger: logging.Logger
    state_dir: Path


class Provider:
    """Base class for class-based providers.

    Subclasses set ``name`` and ``version``, fill ``message_handlers`` and
    override only the hooks they need. Hooks left as the base implementation
    are not registered as capabilities and are never called.
    """

    name: str = ""
    version: str = "0.0.0"

    def __init__(self) -> None:
        self.message_handlers: dict[str, MessageHandler] = {}

    def setup(self, core_env: CoreEnv) -> Awaitable[None] | None:
        """Called once after every provider is loaded."""

    def on_connect(
        self, connection: Connection, core_env: CoreEnv
    ) -> Awaitable[None] | None:
        """Called when the connection to the server opens."""

    def on_disconnect(
        self, connection: Connection, core_env: CoreEnv
    ) -> Awaitable[None] | None:
        """Called once per closed connection."""

    def on_stop(
        self, reason: str, connection: Connection | None, core_env: CoreEnv
    ) -> Awaitable[None] | None:
        """Called once when the client stops."""


@dataclass(frozen=True)
class ProviderEntry:
    """A registered provider with its capabilities resolved once."""

    name: str
    provider: Any
    version: str
    hooks: ProviderHook = ProviderHook.NONE
    handlers: Mapping[str, MessageHandler] = field(default_factory=dict)

    def supports(self, hook: ProviderHook) -> bool:
        return hook in self.hooks

    def hook(self, hook: ProviderHook) -> Callable[..., Any] | None:
        """Return the bound hook callable, or None if not declared."""
        if hook not in self.hooks:
            return None
        return getattr(self.provider, HOOK_ATTRIBUTES[hook])

    def handler(self, message_name: str) -> MessageHandler | None:
        return self.handlers.get(message_name)


def resolve_hooks(provider: Any) -> ProviderHook:
    """Determine which lifecycle hooks a provider actually implements."""
    hooks = ProviderHook.NONE
    for hook, attribute in HOOK_ATTRIBUTES.items():
        candidate = getattr(provider, attribute, None)
        if not callable(candidate):
            continue
        # Base class no-op defaults do not count as capabilities.
        if isinstance(provider, Provider):
            implementation = getattr(type(provider), attribute, None)
            if implementation is getattr(Provider, attribute):
                continue
        hooks |= hook
    return hooks


def resolve_handlers(provider: Any) -> dict[str, MessageHandler]:
    """Collect the callable message handlers a provider exposes."""
    handlers = getattr(provider, "message_handlers", None)
    if not isinstance(handlers, Mapping):
        return {}
    return {
        str(name): handler for name, handler in handlers.items() if callable(handler)
    }
