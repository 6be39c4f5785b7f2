"""
WebSocket Stream Client for backend communication.

Handles:
- Async WebSocket connection with optional Bearer token auth
- Connection state machine: CLOSED -> CONNECTING -> OPEN -> CLOSED
- Transport notifications funneled through one event queue
- Dropping samples (not failing) when a send races a disconnect

There is no automatic reconnection: an error or close ends the session.
"""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    WebSocketException,
)

from .message import GesturePayload

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"


# ============================================================================
# Transport events
# ============================================================================

@dataclass(frozen=True)
class Opened:
    """Handshake completed."""


@dataclass(frozen=True)
class MessageReceived:
    """Inbound message from the backend."""
    data: Union[str, bytes]


@dataclass(frozen=True)
class ConnectionFailed:
    """Transport reported an error."""
    error: BaseException


@dataclass(frozen=True)
class Closed:
    """Connection closed cleanly."""
    code: Optional[int] = None
    reason: str = ""


ConnectionEvent = Union[Opened, MessageReceived, ConnectionFailed, Closed]


@dataclass
class ConnectionStats:
    """Statistics about WebSocket connection."""
    connected: bool = False
    connect_time: Optional[float] = None
    disconnect_time: Optional[float] = None
    messages_sent: int = 0
    messages_dropped: int = 0
    messages_received: int = 0
    last_send_time: Optional[float] = None
    last_error: Optional[str] = None


class StreamClient:
    """
    Async WebSocket client streaming gesture payloads.

    Connection state is changed by the event dispatcher (transport-driven
    transitions) and by connect()/close() (caller-driven transitions),
    all on the same event loop.
    """

    def __init__(
        self,
        on_open: Optional[Callable[[], Awaitable[None]]] = None,
        on_message: Optional[Callable[[Union[str, bytes]], None]] = None,
        token: Optional[str] = None,
        ping_interval: Optional[float] = 20.0,
        ping_timeout: Optional[float] = 10.0,
        close_timeout: float = 5.0,
        connector: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        """
        Initialize stream client.

        Args:
            on_open: Coroutine function started as a task once the
                connection opens (the sampling loop)
            on_message: Observer for inbound backend messages
            token: Optional Bearer token sent with the handshake
            ping_interval: Keepalive ping interval in seconds (None disables)
            ping_timeout: Time to wait for a pong before failing the connection
            close_timeout: Time to wait for the closing handshake
            connector: Replacement for websockets.connect (used in tests)
        """
        self.on_open = on_open
        self.on_message = on_message
        self.token = token
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.close_timeout = close_timeout
        self._connector = connector or websockets.connect

        self.endpoint: Optional[str] = None
        self._state = ConnectionState.CLOSED
        self._ws = None
        self._events: Optional[asyncio.Queue] = None
        self._closed_event = asyncio.Event()
        self._closed_event.set()

        # Tasks
        self._transport_task: Optional[asyncio.Task] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._open_task: Optional[asyncio.Task] = None

        self.stats = ConnectionStats()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        """Check if currently connected."""
        return self._state is ConnectionState.OPEN

    async def connect(self, endpoint: str) -> None:
        """
        Start connecting to the endpoint.

        Returns immediately; completion is signaled by the open event,
        which starts on_open.
        """
        if self._state is not ConnectionState.CLOSED:
            logger.warning(f"connect() ignored, client is {self._state.value}")
            return

        self.endpoint = endpoint
        self._events = asyncio.Queue()
        self._closed_event.clear()
        self._state = ConnectionState.CONNECTING

        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        self._transport_task = asyncio.create_task(self._transport_loop(endpoint))
        logger.info(f"Connecting to {endpoint}...")

    def notify(self, event: ConnectionEvent) -> None:
        """Post a transport event to the dispatcher."""
        if self._events is None:
            logger.debug(f"Event {event!r} dropped, client never connected")
            return
        self._events.put_nowait(event)

    async def wait_closed(self) -> None:
        """Wait until the connection reaches CLOSED."""
        await self._closed_event.wait()

    async def send(self, payload: GesturePayload) -> bool:
        """
        Serialize and send one payload.

        Returns:
            True if sent, False if the sample was dropped because the
            connection is not open or failed during the send.
        """
        ws = self._ws
        if self._state is not ConnectionState.OPEN or ws is None:
            self.stats.messages_dropped += 1
            logger.debug("Connection not open, dropping sample")
            return False

        message = payload.to_json()
        try:
            await ws.send(message)
        except (ConnectionClosed, WebSocketException) as e:
            self.stats.messages_dropped += 1
            logger.warning(f"Send failed, sample dropped: {e}")
            return False

        self.stats.messages_sent += 1
        self.stats.last_send_time = time.time()
        return True

    async def close(self) -> None:
        """Close the connection. Safe to call in any state."""
        if self._events is None and self._ws is None:
            self._state = ConnectionState.CLOSED
            return

        logger.info("Stream client closing...")
        was_connected = self._state is not ConnectionState.CLOSED
        self._state = ConnectionState.CLOSED

        await self._cancel(self._open_task)
        self._open_task = None

        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                logger.warning(f"Error during close: {e}")

        await self._cancel(self._transport_task)
        self._transport_task = None

        # None is the dispatcher's shutdown signal
        if self._events is not None:
            self._events.put_nowait(None)
        if self._dispatch_task is not None:
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None

        self._events = None
        self._ws = None
        if was_connected:
            self._mark_disconnected()
        logger.info("Stream client closed")

    @staticmethod
    async def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _transport_loop(self, endpoint: str) -> None:
        """Open the socket and translate its activity into events."""
        kwargs = {
            "ping_interval": self.ping_interval,
            "ping_timeout": self.ping_timeout,
            "close_timeout": self.close_timeout,
        }
        if self.token:
            kwargs["additional_headers"] = {"Authorization": f"Bearer {self.token}"}

        try:
            ws = await self._connector(endpoint, **kwargs)
        except Exception as e:
            # Every handshake failure ends CONNECTING
            self.notify(ConnectionFailed(e))
            return

        self._ws = ws
        self.notify(Opened())

        try:
            async for message in ws:
                self.notify(MessageReceived(message))
        except Exception as e:
            self.notify(ConnectionFailed(e))
            return

        self.notify(Closed(
            code=getattr(ws, "close_code", None),
            reason=getattr(ws, "close_reason", None) or "",
        ))

    async def _dispatch_loop(self) -> None:
        """Consume transport events and drive state transitions."""
        events = self._events
        while True:
            event = await events.get()
            if event is None:
                break
            self._handle(event)
            if isinstance(event, (ConnectionFailed, Closed)):
                break

    def _handle(self, event: ConnectionEvent) -> None:
        if isinstance(event, Opened):
            if self._state is not ConnectionState.CONNECTING:
                logger.debug("Open event after close request, ignoring")
                return
            self._state = ConnectionState.OPEN
            self.stats.connected = True
            self.stats.connect_time = time.time()
            logger.info(f"Connected to {self.endpoint}")
            if self.on_open is not None:
                self._open_task = asyncio.create_task(self._run_on_open())

        elif isinstance(event, MessageReceived):
            self.stats.messages_received += 1
            if self.on_message is None:
                logger.info(f"Backend response: {event.data}")
                return
            try:
                self.on_message(event.data)
            except Exception as e:
                logger.error(f"Message observer error: {e}")

        elif isinstance(event, ConnectionFailed):
            self.stats.last_error = str(event.error)
            logger.error(f"WebSocket error: {event.error}")
            self._set_closed()

        elif isinstance(event, Closed):
            logger.info(f"Disconnected from backend (code={event.code}, reason='{event.reason}')")
            self._set_closed()

    async def _run_on_open(self) -> None:
        try:
            await self.on_open()
        except Exception as e:
            logger.error(f"Streaming loop error: {e}")

    def _set_closed(self) -> None:
        was_open = self._state is not ConnectionState.CLOSED
        self._state = ConnectionState.CLOSED
        if was_open:
            self._mark_disconnected()

    def _mark_disconnected(self) -> None:
        self.stats.connected = False
        self.stats.disconnect_time = time.time()
        self._closed_event.set()

    def get_stats(self) -> dict:
        """Get connection statistics."""
        return {
            "state": self._state.value,
            "connected": self.stats.connected,
            "connect_time": self.stats.connect_time,
            "disconnect_time": self.stats.disconnect_time,
            "messages_sent": self.stats.messages_sent,
            "messages_dropped": self.stats.messages_dropped,
            "messages_received": self.stats.messages_received,
            "last_send_time": self.stats.last_send_time,
            "last_error": self.stats.last_error,
        }
