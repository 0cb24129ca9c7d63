"""Stream protocol client: one persistent websocket to a daemon.

State machine::

    DISCONNECTED -> CONNECTING -> AUTHENTICATING -> READY -> DISCONNECTED

Any receive failure or explicit close goes straight back to DISCONNECTED.
Reconnecting is always a new ``connect()`` call made by the owner; the
client never retries on its own.
"""

import asyncio
from enum import Enum
from typing import Optional, Union

import aiohttp

from ..exceptions import StreamConnectError
from ..utils.event_bus import EventBus
from ..utils.logging import get_logger
from . import frames
from .events import PowerSignal, StreamEvent, StreamEventKind

logger = get_logger("stream.client")


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"


class StreamProtocolClient:
    """Owns one websocket session and publishes decoded events on a bus.

    Instances are constructed and owned explicitly, one per monitored entity;
    several clients may share one ``EventBus`` or each have their own.
    """

    def __init__(
        self,
        bus: EventBus,
        session: Optional[aiohttp.ClientSession] = None,
        name: str = "stream",
    ):
        self._bus = bus
        self._session = session
        self._owns_session = session is None
        self._name = name
        self._state = ConnectionState.DISCONNECTED
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._frames_received: int = 0
        self._frames_dropped: int = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def bus(self) -> EventBus:
        return self._bus

    async def connect(self, endpoint: str, auth_token: str, origin: Optional[str] = None) -> None:
        """Open a new connection, authenticate and start receiving.

        Any existing connection is torn down first. Raises
        ``StreamConnectError`` if the websocket handshake fails.
        """
        await self.disconnect()

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        self._state = ConnectionState.CONNECTING
        logger.info("stream_connecting", client=self._name, endpoint=endpoint)
        try:
            ws = await self._session.ws_connect(
                endpoint,
                headers={"Authorization": f"Bearer {auth_token}"},
                origin=origin or endpoint,
            )
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            self._state = ConnectionState.DISCONNECTED
            logger.error("stream_connect_failed", client=self._name, endpoint=endpoint, error=str(e))
            raise StreamConnectError(
                f"Could not connect to {endpoint}: {e}",
                details={"endpoint": endpoint},
            ) from e

        self._ws = ws
        self._state = ConnectionState.AUTHENTICATING
        await self._send(frames.AUTH, [auth_token])
        self._receive_task = asyncio.create_task(self._receive_loop(ws))

    async def disconnect(self) -> None:
        """Close the active connection. Safe to call repeatedly."""
        ws, task = self._ws, self._receive_task
        self._ws = None
        self._receive_task = None

        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except (aiohttp.ClientError, OSError) as e:
                logger.debug("stream_close_failed", client=self._name, error=str(e))

        self._mark_disconnected()

    async def close(self) -> None:
        """Disconnect and release the HTTP session if this client created it."""
        await self.disconnect()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send_command(self, text: str) -> bool:
        """Send a console command. Returns False when not ready."""
        return await self._send_when_ready(frames.SEND_COMMAND, [text])

    async def send_power_action(self, signal: Union[PowerSignal, str]) -> bool:
        """Request a power state change. Confirmation arrives as a status event."""
        signal = PowerSignal(signal)
        return await self._send_when_ready(frames.SET_STATE, [signal.value])

    async def request_backlog(self) -> bool:
        """Ask the daemon to replay recent console output."""
        return await self._send(frames.SEND_LOGS, [None])

    def get_stats(self) -> dict:
        return {
            "name": self._name,
            "state": self._state.value,
            "frames_received": self._frames_received,
            "frames_dropped": self._frames_dropped,
        }

    # --- Internals ---

    async def _send_when_ready(self, event: str, args: list) -> bool:
        if self._state is not ConnectionState.READY:
            logger.warning("stream_send_not_ready", client=self._name, frame_event=event, state=self._state.value)
            return False
        return await self._send(event, args)

    async def _send(self, event: str, args: list) -> bool:
        ws = self._ws
        if ws is None or ws.closed:
            logger.warning("stream_send_without_connection", client=self._name, frame_event=event)
            return False
        try:
            await ws.send_str(frames.encode_frame(event, args))
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            logger.warning("stream_send_failed", client=self._name, frame_event=event, error=str(e))
            return False
        return True

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            while True:
                msg = await ws.receive()
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    await self._handle_payload(msg.data)
                elif msg.type is aiohttp.WSMsgType.ERROR:
                    logger.warning("stream_receive_error", client=self._name, error=str(ws.exception()))
                    break
                elif msg.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.CLOSED,
                ):
                    logger.info("stream_closed_by_remote", client=self._name, code=ws.close_code)
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("stream_receive_failed", client=self._name, error=str(e))

        # Only tear down if this loop still belongs to the active connection
        if self._ws is ws:
            self._ws = None
            self._receive_task = None
            if not ws.closed:
                try:
                    await ws.close()
                except (aiohttp.ClientError, OSError) as e:
                    logger.debug("stream_close_failed", client=self._name, error=str(e))
            self._mark_disconnected()

    async def _handle_payload(self, payload: Union[str, bytes]) -> None:
        self._frames_received += 1
        frame, events = frames.decode_payload(payload)
        if not events:
            self._frames_dropped += 1
            return

        for event in events:
            if event.kind is StreamEventKind.CONNECTED:
                self._state = ConnectionState.READY
                logger.info("stream_authenticated", client=self._name)
            self._publish(event)

        if frame is not None and frame.is_auth_success:
            await self.request_backlog()

    def _mark_disconnected(self) -> None:
        if self._state is ConnectionState.DISCONNECTED:
            return
        self._state = ConnectionState.DISCONNECTED
        logger.info("stream_disconnected", client=self._name)
        self._publish(StreamEvent.disconnected())

    def _publish(self, event: StreamEvent) -> None:
        self._bus.publish(event.kind.value, event)
