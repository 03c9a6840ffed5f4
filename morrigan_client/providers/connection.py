"""Connection provider: reacts to the server accepting or rejecting the client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..protocol import build_client_state
from ..provider import Provider

if TYPE_CHECKING:
    from ..connection import Connection
    from ..provider import CoreEnv


class ConnectionStateProvider(Provider):
    name = "connection"
    version = "0.1.0"

    def __init__(self) -> None:
        super().__init__()
        self.message_handlers = {"state": self.state}

    async def state(
        self, message: dict[str, Any], connection: Connection, core_env: CoreEnv
    ) -> None:
        log = core_env.logger
        state = message.get("state")
        if state == "rejected":
            log.warning("The server rejected connection: %s", message.get("reason"))
        elif state == "accepted":
            log.info("The server accepted connection.")
            await connection.send(build_client_state("ready"))
        else:
            log.debug("Ignoring connection state %r", state)


def create_provider() -> ConnectionStateProvider:
    return ConnectionStateProvider()
