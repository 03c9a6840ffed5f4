"""Tests for MorriganClient connection lifecycle and routing."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import replace

import pytest

from morrigan_client import ClientState, MorriganClient
from morrigan_client.connection import ConnectionState
from morrigan_client.errors import (
    MorriganConfigError,
    MorriganConnectionError,
)

from .conftest import RecordingProvider, settle


async def started_client(settings) -> MorriganClient:
    client = MorriganClient(settings)
    await client.setup()
    return client


class TestConnect:
    """Tests for MorriganClient.connect()."""

    @pytest.mark.asyncio
    async def test_connect_uses_token_as_origin(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)

        assert await client.connect() is True

        call = ws_factory.last.connect_calls[0]
        assert call["url"] == "ws://server.test/report"
        assert call["origin"] == "T1"
        assert client.state is ClientState.OPEN
        assert echo_provider.count("on_connect") == 1
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_bearer_authorization(self, settings, ws_factory):
        client = await started_client(replace(settings, auth_header="authorization"))

        await client.connect()

        call = ws_factory.last.connect_calls[0]
        assert call["headers"] == {"Authorization": "Bearer T1"}
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_missing_url_fails_fast(self, settings, ws_factory):
        client = await started_client(replace(settings, server_url=None))

        with pytest.raises(MorriganConfigError, match="server_url"):
            await client.connect()
        assert ws_factory.clients == []

    @pytest.mark.asyncio
    async def test_missing_token_provider_fails_fast(self, settings, ws_factory, echo_provider):
        client = await started_client(replace(settings, providers=(echo_provider,)))

        with pytest.raises(MorriganConfigError, match="No token provider"):
            await client.connect()
        assert ws_factory.clients == []

    @pytest.mark.asyncio
    async def test_single_live_connection(self, settings, ws_factory):
        client = await started_client(settings)
        await client.connect()

        assert await client.connect() is False
        assert len(ws_factory.clients) == 1
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_on_connect_failure_does_not_abort_fan_out(self, settings, ws_factory):
        class Broken(RecordingProvider):
            def on_connect(self, connection, core_env):
                raise RuntimeError("boom")

        after = RecordingProvider("after")
        client = await started_client(
            replace(settings, providers=(*settings.providers, Broken("broken"), after))
        )

        await client.connect()

        assert after.count("on_connect") == 1
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_stop_during_on_connect_skips_remaining_providers(
        self, settings, ws_factory
    ):
        class Slow(RecordingProvider):
            async def on_connect(self, connection, core_env):
                self.calls.append(("on_connect", (connection,)))
                await asyncio.sleep(0.02)

        slow = Slow("slow")
        after = RecordingProvider("after")
        client = await started_client(
            replace(settings, providers=(*settings.providers, slow, after))
        )

        connecting = asyncio.create_task(client.connect())
        await settle(10)
        assert slow.count("on_connect") == 1

        await client.stop("SIGTERM")
        await connecting

        assert after.count("on_connect") == 0
        assert after.calls[-1][0] == "on_stop"
        assert client.state is ClientState.TERMINATED

    @pytest.mark.asyncio
    async def test_unusable_state_dir_is_a_config_error(self, settings, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(MorriganConfigError, match="state directory"):
            MorriganClient(replace(settings, state_dir=blocker / "state"))

    @pytest.mark.asyncio
    async def test_failed_attempt_schedules_retry(self, settings, ws_factory, echo_provider):
        ws_factory.failures.append(MorriganConnectionError("refused"))
        client = await started_client(settings)

        assert await client.connect() is False
        assert client.reconnect.pending
        assert echo_provider.count("on_disconnect") == 0

        await asyncio.sleep(0.1)
        assert len(ws_factory.clients) == 2
        assert client.state is ClientState.OPEN
        await client.stop("test")


class TestRouting:
    """Inbound frames reach exactly one handler."""

    @pytest.mark.asyncio
    async def test_echo_ping_end_to_end(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)
        await client.connect()

        ws_factory.last.feed({"type": "echo.ping"})
        await settle()

        assert [c for c in echo_provider.calls if c[0] == "ping"] == [
            ("ping", ({"type": "echo.ping"},))
        ]
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_bad_frames_do_not_stop_listener(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)
        await client.connect()
        ws = ws_factory.last

        ws.feed("garbage")
        ws.feed({"type": "nobody.ping"})
        ws.feed({"type": "echo.unknown"})
        ws.feed({"type": "echo.ping"})
        await settle(10)

        assert echo_provider.count("ping") == 1
        assert client.state is ClientState.OPEN
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_deeply_nested_frame_is_dropped(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)
        await client.connect()
        ws = ws_factory.last

        ws.feed("[" * 100000)
        ws.feed({"type": "echo.ping"})
        await settle(10)

        assert echo_provider.count("ping") == 1
        assert echo_provider.count("on_disconnect") == 0
        assert client.state is ClientState.OPEN
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_handlers_can_reply(self, settings, ws_factory):
        client = await started_client(
            replace(
                settings,
                providers=(*settings.providers, "morrigan_client.providers.capability"),
            )
        )
        await client.connect()
        ws = ws_factory.last

        ws.feed({"type": "capability.report"})
        await settle()

        reports = [m for m in ws.sent_messages if m["type"] == "capability.report"]
        assert len(reports) == 1
        names = [c["name"] for c in reports[0]["capabilities"]]
        assert names == ["client", "echo", "capability"]
        await client.stop("test")


class TestSend:
    """Tests for MorriganClient.send()."""

    @pytest.mark.asyncio
    async def test_send_without_connection(self, settings, ws_factory):
        client = await started_client(settings)

        with pytest.raises(MorriganConnectionError, match="No WebSocket connection"):
            await client.send({"type": "echo.pong"})

    @pytest.mark.asyncio
    async def test_send_after_close_does_no_io(self, settings, ws_factory):
        client = await started_client(settings)
        await client.connect()
        ws = ws_factory.last
        ws.drop()
        await settle()
        sent = list(ws.sent)

        with pytest.raises(MorriganConnectionError, match="non-ready"):
            await client.send({"type": "echo.pong"})
        assert ws.sent == sent
        await client.stop("test")


class TestDisconnect:
    """Server-side close and reconnection."""

    @pytest.mark.asyncio
    async def test_close_fans_out_and_reconnects(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)
        await client.connect()

        ws_factory.last.drop()
        await settle()

        assert echo_provider.count("on_disconnect") == 1
        assert client.state is ClientState.CLOSED
        assert client.reconnect.pending

        await asyncio.sleep(0.1)
        assert len(ws_factory.clients) == 2
        assert echo_provider.count("on_connect") == 2
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_transport_error_closes_socket(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)
        await client.connect()
        ws = ws_factory.last

        ws.fail()
        await settle()

        assert ws.close_calls == 1
        assert client.connection.state is ConnectionState.CLOSED
        assert echo_provider.count("on_disconnect") == 1
        assert client.reconnect.pending
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_server_close_does_not_close_again(self, settings, ws_factory):
        client = await started_client(settings)
        await client.connect()
        ws = ws_factory.last

        ws.drop()
        await settle()

        assert ws.close_calls == 0
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_no_reconnect_when_disabled(self, settings, ws_factory):
        client = await started_client(replace(settings, always_reconnect=False))
        await client.connect()

        ws_factory.last.drop()
        await settle()

        assert not client.reconnect.pending
        await client.stop("test")

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_reconnect(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)
        await client.connect()
        ws_factory.last.drop()
        await settle()
        assert client.reconnect.pending

        await client.stop("SIGTERM")
        await asyncio.sleep(0.1)

        assert len(ws_factory.clients) == 1
        assert echo_provider.count("on_disconnect") == 1
        assert echo_provider.count("on_stop") == 1


class TestStop:
    """Graceful, idempotent shutdown."""

    @pytest.mark.asyncio
    async def test_stop_sends_state_and_fans_out(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)
        await client.connect()
        ws = ws_factory.last

        await client.stop("SIGINT")

        assert ws.sent_messages[-1] == {"type": "client.state", "state": "stopped.SIGINT"}
        assert ws.close_calls == 1
        assert client.connection.state is ConnectionState.CLOSED
        assert echo_provider.count("on_disconnect") == 1
        assert echo_provider.calls[-1] == ("on_stop", ("SIGINT", client.connection))
        assert client.state is ClientState.TERMINATED

    @pytest.mark.asyncio
    async def test_double_stop(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)
        await client.connect()
        ws = ws_factory.last

        await asyncio.gather(client.stop("SIGTERM"), client.stop("SIGTERM"))
        await client.stop("SIGHUP")

        stops = [m for m in ws.sent_messages if m["type"] == "client.state"]
        assert len(stops) == 1
        assert echo_provider.count("on_stop") == 1
        assert echo_provider.count("on_disconnect") == 1

    @pytest.mark.asyncio
    async def test_stop_before_connect(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)

        await client.stop("SIGTERM")

        assert echo_provider.count("on_disconnect") == 0
        assert echo_provider.calls[-1] == ("on_stop", ("SIGTERM", None))
        assert await client.connect() is False
        assert ws_factory.clients == []

    @pytest.mark.asyncio
    async def test_stop_disarms_token_refresh(self, settings, ws_factory):
        client = await started_client(replace(settings, token_refresh_interval=0.02))
        await client.connect()
        ws = ws_factory.last

        await client.stop("SIGTERM")
        sent = len(ws.sent)
        await asyncio.sleep(0.06)

        assert len(ws.sent) == sent

    @pytest.mark.asyncio
    async def test_signal_routes_to_stop(self, settings, ws_factory, echo_provider):
        client = await started_client(settings)
        await client.connect()

        client.handle_signal(signal.SIGHUP)
        await client.wait_stopped()

        assert echo_provider.calls[-1][0] == "on_stop"
        assert echo_provider.calls[-1][1][0] == "SIGHUP"

    @pytest.mark.asyncio
    async def test_run_returns_after_stop(self, settings, ws_factory, echo_provider):
        client = MorriganClient(settings)
        runner = asyncio.create_task(client.run())
        await settle(10)

        assert echo_provider.count("setup") == 1
        assert client.state is ClientState.OPEN

        await client.stop("SIGTERM")
        await asyncio.wait_for(runner, timeout=1)
        assert client.stopped
