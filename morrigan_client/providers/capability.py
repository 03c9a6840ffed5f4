"""Capability provider: reports loaded providers and their messages."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..provider import Provider

if TYPE_CHECKING:
    from ..connection import Connection
    from ..provider import CoreEnv


def describe_capabilities(core_env: CoreEnv) -> list[dict[str, Any]]:
    """List every registered provider with its version and message names."""
    return [
        {
            "name": entry.name,
            "version": entry.version,
            "messages": sorted(entry.handlers),
        }
        for entry in core_env.providers
    ]


class CapabilityProvider(Provider):
    name = "capability"
    version = "0.1.0"

    def __init__(self) -> None:
        super().__init__()
        self.message_handlers = {"report": self.report}

    async def report(
        self, message: dict[str, Any], connection: Connection, core_env: CoreEnv
    ) -> None:
        await connection.send(
            {
                "type": "capability.report",
                "capabilities": describe_capabilities(core_env),
            }
        )


def create_provider() -> CapabilityProvider:
    return CapabilityProvider()
