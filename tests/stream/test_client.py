"""Tests for StreamProtocolClient: connection lifecycle against a fake socket."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from panelwatch.exceptions import StreamConnectError
from panelwatch.stream.client import ConnectionState, StreamProtocolClient
from panelwatch.stream.events import StreamEventKind

ENDPOINT = "wss://node.example.com:8080/api/servers/abc/ws"


class FakeWebSocket:
    """Minimal stand-in for aiohttp.ClientWebSocketResponse."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.close_code = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    def feed(self, event, args=None):
        payload = json.dumps({"event": event, "args": args or []})
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=payload))

    def feed_raw(self, msg_type, data=None):
        self._inbox.put_nowait(SimpleNamespace(type=msg_type, data=data))

    async def receive(self):
        return await self._inbox.get()

    async def send_str(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True
        self.close_code = 1000

    def exception(self):
        return None


def _make_session(ws):
    session = MagicMock()
    session.closed = False
    session.ws_connect = AsyncMock(return_value=ws)
    return session


def _published_kinds(bus):
    return [c.args[0] for c in bus.publish.call_args_list]


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def bus():
    return MagicMock()


@pytest.fixture
def ws():
    return FakeWebSocket()


@pytest.fixture
def client(bus, ws):
    return StreamProtocolClient(bus, session=_make_session(ws), name="srv-1")


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_sends_auth_frame(self, client, ws):
        await client.connect(ENDPOINT, "tok-123")

        assert ws.sent[0] == {"event": "auth", "args": ["tok-123"]}
        assert client.state is ConnectionState.AUTHENTICATING
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_connect_passes_bearer_header_and_origin(self, client, ws):
        await client.connect(ENDPOINT, "tok-123")

        call = client._session.ws_connect.call_args
        assert call.args[0] == ENDPOINT
        assert call.kwargs["headers"] == {"Authorization": "Bearer tok-123"}
        assert call.kwargs["origin"] == ENDPOINT
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_auth_success_marks_ready_and_requests_backlog(self, client, bus, ws):
        await client.connect(ENDPOINT, "tok")
        ws.feed("auth success")
        await _settle()

        assert client.state is ConnectionState.READY
        assert ws.sent[-1] == {"event": "send logs", "args": [None]}
        assert _published_kinds(bus) == [StreamEventKind.CONNECTED.value]
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_handshake_failure_raises_and_emits_nothing(self, bus, ws):
        session = _make_session(ws)
        session.ws_connect = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        client = StreamProtocolClient(bus, session=session)

        with pytest.raises(StreamConnectError):
            await client.connect(ENDPOINT, "tok")

        assert client.state is ConnectionState.DISCONNECTED
        bus.publish.assert_not_called()


class TestEvents:
    @pytest.mark.asyncio
    async def test_console_lines_published_in_order(self, client, bus, ws):
        await client.connect(ENDPOINT, "tok")
        ws.feed("auth success")
        ws.feed("console output", ["a", "b"])
        ws.feed("console output", ["c"])
        await _settle()

        console = [
            c.args[1].data
            for c in bus.publish.call_args_list
            if c.args[0] == StreamEventKind.CONSOLE_OUTPUT.value
        ]
        assert console == ["a", "b", "c"]
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_frames_are_counted_as_dropped(self, client, ws):
        await client.connect(ENDPOINT, "tok")
        ws.feed_raw(aiohttp.WSMsgType.TEXT, "{broken")
        ws.feed("unknown event")
        await _settle()

        stats = client.get_stats()
        assert stats["frames_received"] == 2
        assert stats["frames_dropped"] == 2
        await client.disconnect()


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_twice_emits_once(self, client, bus, ws):
        await client.connect(ENDPOINT, "tok")
        await client.disconnect()
        await client.disconnect()

        assert _published_kinds(bus).count(StreamEventKind.DISCONNECTED.value) == 1
        assert ws.closed
        assert client.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_remote_close_emits_disconnected(self, client, bus, ws):
        await client.connect(ENDPOINT, "tok")
        ws.feed("auth success")
        ws.feed_raw(aiohttp.WSMsgType.CLOSED)
        await _settle()

        assert client.state is ConnectionState.DISCONNECTED
        assert _published_kinds(bus) == [
            StreamEventKind.CONNECTED.value,
            StreamEventKind.DISCONNECTED.value,
        ]

    @pytest.mark.asyncio
    async def test_receive_failure_emits_disconnected(self, client, bus, ws):
        ws.receive = AsyncMock(side_effect=RuntimeError("socket reset"))
        await client.connect(ENDPOINT, "tok")
        await _settle()

        assert client.state is ConnectionState.DISCONNECTED
        assert _published_kinds(bus) == [StreamEventKind.DISCONNECTED.value]

    @pytest.mark.asyncio
    async def test_reconnect_replaces_previous_connection(self, client, bus, ws):
        await client.connect(ENDPOINT, "tok")
        second = FakeWebSocket()
        client._session.ws_connect = AsyncMock(return_value=second)

        await client.connect(ENDPOINT, "tok-2")

        assert ws.closed
        assert second.sent[0] == {"event": "auth", "args": ["tok-2"]}
        assert _published_kinds(bus).count(StreamEventKind.DISCONNECTED.value) == 1
        await client.disconnect()


class TestSend:
    @pytest.mark.asyncio
    async def test_send_without_connection_returns_false(self, client):
        assert await client.send_command("say hi") is False
        assert await client.request_backlog() is False

    @pytest.mark.asyncio
    async def test_send_before_auth_returns_false(self, client, ws):
        await client.connect(ENDPOINT, "tok")

        assert await client.send_command("say hi") is False
        assert len(ws.sent) == 1
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_send_command_when_ready(self, client, ws):
        await client.connect(ENDPOINT, "tok")
        ws.feed("auth success")
        await _settle()

        assert await client.send_command("say hi") is True
        assert ws.sent[-1] == {"event": "send", "args": ["say hi"]}
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_power_action(self, client, ws):
        await client.connect(ENDPOINT, "tok")
        ws.feed("auth success")
        await _settle()

        assert await client.send_power_action("restart") is True
        assert ws.sent[-1] == {"event": "set state", "args": ["restart"]}
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_unknown_power_signal_rejected(self, client):
        with pytest.raises(ValueError):
            await client.send_power_action("explode")

    @pytest.mark.asyncio
    async def test_backlog_request_on_closed_socket_keeps_loop_alive(self, client, bus, ws):
        await client.connect(ENDPOINT, "tok")
        ws.closed = True
        ws.feed("auth success")
        ws.feed("console output", ["still here"])
        await _settle()

        assert client.state is ConnectionState.READY
        assert ws.sent == [{"event": "auth", "args": ["tok"]}]
        assert _published_kinds(bus) == [
            StreamEventKind.CONNECTED.value,
            StreamEventKind.CONSOLE_OUTPUT.value,
        ]
        await client.disconnect()
