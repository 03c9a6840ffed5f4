"""Token provider: owns the client's authentication token.

Registered as ``client`` so the server addresses it with ``client.*`` message
types (``client.token.issue``) and the runtime finds it for credentials.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..errors import MorriganClientError, MorriganConfigError
from ..protocol import build_token_refresh
from ..provider import CoreEnv, Provider

if TYPE_CHECKING:
    from ..connection import Connection

_LOGGER = logging.getLogger(__name__)

TOKEN_FILENAME = "token"
EXPIRATION_FILENAME = "token.expiration"


class TokenState(Enum):
    """Credential lifecycle states."""

    UNSET = "unset"
    LOADED = "loaded"
    ACTIVE = "active"
    REFRESHING = "refreshing"


@dataclass(frozen=True, slots=True)
class TokenRecord:
    """An opaque token and its optional expiry, as issued by the server."""

    token: str
    expires: str | None = None


class TokenStore:
    """Whole-file persistence of a token record inside the state directory."""

    def __init__(self, state_dir: Path) -> None:
        self.token_path = state_dir / TOKEN_FILENAME
        self.expiration_path = state_dir / EXPIRATION_FILENAME

    def exists(self) -> bool:
        return self.token_path.exists()

    def load(self) -> TokenRecord | None:
        """Read the persisted record; None when absent or unreadable."""
        try:
            token = self.token_path.read_text(encoding="utf-8")
        except OSError:
            return None
        expires = None
        if self.expiration_path.exists():
            try:
                expires = self.expiration_path.read_text(encoding="utf-8")
            except OSError as err:
                _LOGGER.warning("Unable to read token expiration: %s", err)
        return TokenRecord(token, expires)

    def save(self, record: TokenRecord) -> None:
        """Replace the persisted record. Raises OSError on failure."""
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(record.token, encoding="utf-8")
        if record.expires is not None:
            self.expiration_path.write_text(str(record.expires), encoding="utf-8")


class TokenProvider(Provider):
    """Loads, persists and refreshes the client token."""

    name = "client"
    version = "0.2.0"

    def __init__(self) -> None:
        super().__init__()
        self.message_handlers = {"token.issue": self.handle_token_issue}
        self._record: TokenRecord | None = None
        self._store: TokenStore | None = None
        self._state = TokenState.UNSET
        self._refresh_interval = 8 * 3600.0
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> TokenState:
        return self._state

    @property
    def record(self) -> TokenRecord | None:
        return self._record

    def get_token(self) -> str | None:
        """Return the current in-memory token. Never performs I/O."""
        return self._record.token if self._record is not None else None

    def setup(self, core_env: CoreEnv) -> None:
        settings = core_env.settings
        self._store = TokenStore(core_env.state_dir)
        self._refresh_interval = settings.token_refresh_interval

        override = settings.token is not None or settings.token_file is not None
        if self._store.exists() and not (settings.force_token and override):
            record = self._store.load()
            if record is not None:
                self._record = record
                self._state = TokenState.LOADED
                _LOGGER.info("Loaded persisted token from %s", self._store.token_path)
                return
            _LOGGER.warning("Persisted token unreadable, falling back to settings")

        self._record = TokenRecord(self._initial_token(core_env))
        self._state = TokenState.LOADED
        self._persist()

    @staticmethod
    def _initial_token(core_env: CoreEnv) -> str:
        settings = core_env.settings
        if settings.token:
            return settings.token
        if settings.token_file is not None and settings.token_file.exists():
            try:
                return settings.token_file.read_text(encoding="utf-8").strip()
            except OSError as err:
                raise MorriganConfigError(
                    f"Unable to read token file {settings.token_file}: {err}"
                ) from err
        raise MorriganConfigError("No token set provided.")

    def _persist(self) -> None:
        if self._store is None or self._record is None:
            return
        try:
            self._store.save(self._record)
        except OSError as err:
            _LOGGER.error("Failed to persist token: %s", err)

    async def on_connect(self, connection: Connection, core_env: CoreEnv) -> None:
        self._state = TokenState.ACTIVE
        self._cancel_refresh()
        # Ask for a fresh token right away, then periodically.
        await self._request_refresh(connection)
        self._refresh_task = asyncio.create_task(self._refresh_loop(connection))

    def on_disconnect(self, connection: Connection, core_env: CoreEnv) -> None:
        self._cancel_refresh()

    def on_stop(
        self, reason: str, connection: Connection | None, core_env: CoreEnv
    ) -> None:
        self._cancel_refresh()

    def _cancel_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None

    async def _refresh_loop(self, connection: Connection) -> None:
        try:
            while connection.is_open:
                await asyncio.sleep(self._refresh_interval)
                await self._request_refresh(connection)
        except asyncio.CancelledError:
            _LOGGER.debug("Token refresh cancelled")

    async def _request_refresh(self, connection: Connection) -> None:
        if not connection.is_open:
            return
        try:
            await connection.send(build_token_refresh())
        except MorriganClientError as err:
            _LOGGER.warning("Token refresh request failed: %s", err)
            return
        self._state = TokenState.REFRESHING

    def handle_token_issue(
        self, message: dict[str, Any], connection: Connection, core_env: CoreEnv
    ) -> None:
        token = message.get("token")
        if not isinstance(token, str) or not token:
            _LOGGER.warning("Ignoring token.issue without a token")
            return
        expires = message.get("expires")
        self._record = TokenRecord(token, None if expires is None else str(expires))
        self._state = TokenState.ACTIVE
        _LOGGER.info("New token issued (expires %s).", expires)
        self._persist()


def create_provider() -> TokenProvider:
    return TokenProvider()
