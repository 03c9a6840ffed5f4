"""Client runtime: connection lifecycle, routing and lifecycle fan-out.

Usage:
    client = MorriganClient(settings)
    await client.run()          # returns once stop() has completed

All events (inbound frames, timers, OS signals) are handled on a single event
loop, so connection state is only ever mutated from one logical owner.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import signal
from collections.abc import Mapping
from enum import Enum
from typing import Any

from .config import ClientSettings
from .connection import Connection, ConnectionState
from .dispatch import Dispatcher, log_dispatch_result
from .errors import MorriganClientError, MorriganConfigError, MorriganConnectionError
from .protocol import build_stopped_state
from .provider import HOOK_ATTRIBUTES, CoreEnv, ProviderHook
from .reconnect import ReconnectController
from .registry import ProviderRegistry, invoke
from .transport import MorriganWsClient, MorriganWsMessageType

_LOGGER = logging.getLogger(__name__)

STOP_SIGNALS: tuple[signal.Signals, ...] = tuple(
    sig
    for sig in (
        getattr(signal, "SIGTERM", None),
        getattr(signal, "SIGINT", None),
        getattr(signal, "SIGHUP", None),
    )
    if sig is not None
)


class ClientState(Enum):
    """Runtime lifecycle states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    TERMINATED = "terminated"


class MorriganClient:
    """Long-lived client holding one server connection at a time."""

    def __init__(
        self,
        settings: ClientSettings,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.state_dir = settings.state_dir
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise MorriganConfigError(
                f"Unable to create state directory '{self.state_dir}': {err}"
            ) from err
        _LOGGER.debug("State directory '%s'", self.state_dir)

        self.providers = ProviderRegistry()
        self.providers.load_all(settings.providers)

        self.core_env = CoreEnv(
            settings=settings,
            providers=self.providers,
            logger=logger or logging.getLogger("morrigan_client.providers"),
            state_dir=self.state_dir,
        )

        self._dispatcher = Dispatcher(self.providers, self.core_env)
        self._reconnect = ReconnectController(
            settings.reconnect_interval, enabled=settings.always_reconnect
        )
        self._connection: Connection | None = None
        self._listen_task: asyncio.Task[None] | None = None
        self._setup_done = False
        self._stop_requested = False
        self._stopped = asyncio.Event()
        self._signal_tasks: set[asyncio.Task[None]] = set()
        self._signals_installed: list[signal.Signals] = []

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def connection(self) -> Connection | None:
        return self._connection

    @property
    def reconnect(self) -> ReconnectController:
        return self._reconnect

    @property
    def state(self) -> ClientState:
        if self._stopped.is_set():
            return ClientState.TERMINATED
        if self._connection is None:
            return ClientState.IDLE
        return ClientState(self._connection.state.value)

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    async def setup(self) -> None:
        """Run provider setup hooks once."""
        if self._setup_done:
            return
        self._setup_done = True
        await self.providers.setup(self.core_env)

    async def run(self) -> None:
        """Set up providers, connect, and wait until the client is stopped."""
        await self.setup()
        self.install_signal_handlers()
        try:
            await self.connect()
            await self._stopped.wait()
        finally:
            self.remove_signal_handlers()

    async def connect(self) -> bool:
        """Open a new connection to the server.

        Returns:
            True if the connection opened, False if the attempt failed (a retry
            is scheduled) or the client is stopping

        Raises:
            MorriganConfigError: If the server URL or token cannot be resolved
        """
        if self._stop_requested:
            _LOGGER.debug("Connection aborted: stop requested")
            return False
        if self._connection is not None and not self._connection.is_closed:
            _LOGGER.warning("Connection already %s", self._connection.state.value)
            return False

        url, token = self._resolve_credentials()
        connection = Connection(MorriganWsClient(), url)
        self._connection = connection
        _LOGGER.info("Connecting to '%s'", url)

        try:
            await connection.open(
                **self._auth_kwargs(token),
                ping_interval=self.settings.ping_interval,
                timeout=self.settings.connect_timeout,
            )
        except MorriganClientError as err:
            _LOGGER.warning("Failed to contact server: %s", err)
            connection.mark_closed()
            self._reconnect.schedule(self.connect)
            return False

        if self._stop_requested:
            await connection.close()
            connection.mark_closed()
            return False

        _LOGGER.info("Connection to server opened.")
        await self._connect_fan_out(connection)
        if connection.is_open:
            self._listen_task = asyncio.create_task(self._listen(connection))
        return True

    async def send(self, message: Mapping[str, Any]) -> None:
        """Send a message over the current connection.

        Raises:
            MorriganConnectionError: If no connection is open
            MorriganMessageError: If the message has no string ``type``
        """
        if self._connection is None:
            raise MorriganConnectionError(
                "Unable to send message: No WebSocket connection established."
            )
        await self._connection.send(message)

    async def stop(self, reason: str = "stopped") -> None:
        """Stop the client. Only the first call has any effect."""
        if self._stop_requested:
            return
        self._stop_requested = True
        _LOGGER.info("Stopping client (%s)", reason)

        self._reconnect.disable()
        connection = self._connection

        listen_task = self._listen_task
        if listen_task is not None and listen_task is not asyncio.current_task():
            listen_task.cancel()
            await asyncio.gather(listen_task, return_exceptions=True)
        self._listen_task = None

        if connection is not None and connection.is_open:
            try:
                await connection.send(build_stopped_state(reason))
            except MorriganClientError as err:
                _LOGGER.warning("Unable to send stop state: %s", err)
            await connection.close()

        # A locally closed transport does not report its own close event.
        if connection is not None and connection.state is ConnectionState.CLOSING:
            await self._disconnect(connection)

        await self._fan_out(ProviderHook.ON_STOP, reason, connection, self.core_env)
        self._stopped.set()
        _LOGGER.info("Client stopped")

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    # -------------------------------------------------------------------------
    # Signals
    # -------------------------------------------------------------------------

    def install_signal_handlers(self) -> None:
        """Route SIGTERM, SIGINT and SIGHUP to stop()."""
        if platform.system() == "Windows":
            return
        loop = asyncio.get_running_loop()
        for sig in STOP_SIGNALS:
            loop.add_signal_handler(sig, self.handle_signal, sig)
            self._signals_installed.append(sig)

    def remove_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed.clear()

    def handle_signal(self, sig: int) -> None:
        """Schedule stop() for a received signal."""
        name = signal.Signals(sig).name
        _LOGGER.info("Received %s", name)
        task = asyncio.get_running_loop().create_task(self.stop(name))
        self._signal_tasks.add(task)
        task.add_done_callback(self._signal_tasks.discard)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _resolve_credentials(self) -> tuple[str, str]:
        url = self.settings.server_url
        if not url:
            raise MorriganConfigError("No server_url specified.")

        provider = self.providers.get(self.settings.token_provider)
        get_token = getattr(provider, "get_token", None)
        if not callable(get_token):
            raise MorriganConfigError(
                f"No token provider registered as '{self.settings.token_provider}'"
            )
        token = get_token()
        if not token:
            raise MorriganConfigError("Token provider has no token")
        return url, token

    def _auth_kwargs(self, token: str) -> dict[str, Any]:
        if self.settings.auth_header == "authorization":
            return {"headers": {"Authorization": f"Bearer {token}"}}
        return {"origin": token}

    async def _listen(self, connection: Connection) -> None:
        """Dispatch inbound frames until the transport closes."""
        closed_by_peer = False
        try:
            async for frame in connection.frames():
                if frame.type is MorriganWsMessageType.TEXT:
                    data = frame.data or ""
                    result = await self._dispatcher.dispatch(data, connection)
                    log_dispatch_result(result, data)
                elif frame.type is MorriganWsMessageType.CLOSED:
                    _LOGGER.info("Connection to server closed")
                    closed_by_peer = True
                    break
                else:
                    _LOGGER.error("WebSocket error")
                    break
        except asyncio.CancelledError:
            raise
        except MorriganClientError as err:
            _LOGGER.warning("Client error: %s", err)
        except Exception as err:
            _LOGGER.exception("Unexpected error: %s", err)

        if not closed_by_peer:
            await connection.close()
        await self._handle_close(connection)

    async def _handle_close(self, connection: Connection) -> None:
        if not await self._disconnect(connection):
            return
        if self._listen_task is asyncio.current_task():
            self._listen_task = None
        self._reconnect.schedule(self.connect)

    async def _disconnect(self, connection: Connection) -> bool:
        """Fan out on_disconnect once per connection."""
        if not connection.mark_closed():
            return False
        await self._fan_out(ProviderHook.ON_DISCONNECT, connection, self.core_env)
        return True

    async def _connect_fan_out(self, connection: Connection) -> None:
        """Fan out on_connect until a stop or a close overtakes it."""
        for entry in self.providers.with_hook(ProviderHook.ON_CONNECT):
            if self._stop_requested or not connection.is_open:
                _LOGGER.debug("Connection ended during on_connect, skipping the rest")
                return
            try:
                await invoke(entry.hook(ProviderHook.ON_CONNECT), connection, self.core_env)
            except Exception:
                _LOGGER.exception("Provider '%s' failed in on_connect", entry.name)

    async def _fan_out(self, hook: ProviderHook, *args: Any) -> None:
        for entry in self.providers.with_hook(hook):
            try:
                await invoke(entry.hook(hook), *args)
            except Exception:
                _LOGGER.exception(
                    "Provider '%s' failed in %s", entry.name, HOOK_ATTRIBUTES[hook]
                )
