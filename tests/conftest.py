"""Pytest configuration and fixtures for morrigan_client tests."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from morrigan_client.config import ClientSettings
from morrigan_client.errors import MorriganConnectionError
from morrigan_client.provider import Provider
from morrigan_client.transport import MorriganWsMessage, MorriganWsMessageType


class FakeWsClient:
    """In-memory stand-in for MorriganWsClient driven by the test."""

    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.sent: list[str] = []
        self.connect_calls: list[dict[str, Any]] = []
        self.close_calls = 0
        self._inbox: asyncio.Queue[MorriganWsMessage] = asyncio.Queue()

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connect_calls.append({"url": url, **kwargs})
        if self.fail_with is not None:
            raise self.fail_with

    async def close(self) -> None:
        self.close_calls += 1

    async def send_text(self, data: str) -> None:
        if self.close_calls:
            raise MorriganConnectionError("WebSocket closed while sending")
        self.sent.append(data)

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        return [json.loads(item) for item in self.sent]

    def feed(self, payload: str | dict[str, Any]) -> None:
        """Queue an inbound text frame."""
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self._inbox.put_nowait(MorriganWsMessage(MorriganWsMessageType.TEXT, data))

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self._inbox.put_nowait(MorriganWsMessage(MorriganWsMessageType.CLOSED))

    def fail(self) -> None:
        """Simulate a transport error on the socket."""
        self._inbox.put_nowait(MorriganWsMessage(MorriganWsMessageType.ERROR))

    def __aiter__(self):
        return self

    async def __anext__(self) -> MorriganWsMessage:
        message = await self._inbox.get()
        return message


class WsFactory:
    """Hands out a fresh FakeWsClient per connection attempt."""

    def __init__(self) -> None:
        self.clients: list[FakeWsClient] = []
        self.failures: list[Exception] = []

    def __call__(self) -> FakeWsClient:
        fail_with = self.failures.pop(0) if self.failures else None
        client = FakeWsClient(fail_with=fail_with)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeWsClient:
        return self.clients[-1]


class RecordingProvider(Provider):
    """Provider recording every hook and handler call."""

    version = "1.0.0"

    def __init__(self, name: str = "echo") -> None:
        super().__init__()
        self.name = name
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.message_handlers = {"ping": self.ping}

    def ping(self, message, connection, core_env) -> None:
        self.calls.append(("ping", (message,)))

    def setup(self, core_env) -> None:
        self.calls.append(("setup", (core_env,)))

    def on_connect(self, connection, core_env) -> None:
        self.calls.append(("on_connect", (connection,)))

    def on_disconnect(self, connection, core_env) -> None:
        self.calls.append(("on_disconnect", (connection,)))

    def on_stop(self, reason, connection, core_env) -> None:
        self.calls.append(("on_stop", (reason, connection)))

    def count(self, kind: str) -> int:
        return sum(1 for name, _ in self.calls if name == kind)


async def settle(rounds: int = 5) -> None:
    """Let pending tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def ws_factory():
    """Patch the runtime's WebSocket client class with in-memory fakes."""
    factory = WsFactory()
    with patch("morrigan_client.runtime.MorriganWsClient", factory):
        yield factory


@pytest.fixture
def echo_provider() -> RecordingProvider:
    return RecordingProvider("echo")


@pytest.fixture
def settings(tmp_path: Path, echo_provider: RecordingProvider) -> ClientSettings:
    """Settings with the token provider, a recording provider and short timers."""
    return ClientSettings(
        server_url="ws://server.test/report",
        providers=("morrigan_client.providers.token", echo_provider),
        state_dir=tmp_path / "state",
        token="T1",
        reconnect_interval=0.05,
        token_refresh_interval=3600.0,
    )
