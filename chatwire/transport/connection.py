"""WebSocket connection manager with automatic reconnection."""

from __future__ import annotations

import asyncio
import json
from enum import Enum
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosedError

from chatwire.bus.events import CloseInfo
from chatwire.bus.observers import Observers
from chatwire.config import DEFAULT_RECONNECT_DELAY, MAX_RECONNECT_DELAY
from chatwire.exceptions import NotConnectedError, TransportError

CHAT_PATH = "/ws/chat"

Connector = Callable[[str], Awaitable[Any]]
TokenSource = str | Callable[[], str | None] | None


class ConnectionState(str, Enum):
    """Connection lifecycle states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECT_SCHEDULED = "reconnect_scheduled"


def build_chat_url(base_url: str, token: str | None = None) -> str:
    """
    Build the chat socket URL.

    ``http(s)://`` bases are mapped to ``ws(s)://``. The token, if any, is
    URL-encoded into the ``token`` query parameter.
    """
    base = base_url.strip().rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]

    url = f"{base}{CHAT_PATH}"
    if token:
        url += f"?token={quote(token, safe='')}"
    return url


class Backoff:
    """Exponential delay: starts at ``initial``, doubles per failure, capped at ``maximum``."""

    def __init__(
        self,
        initial: float = DEFAULT_RECONNECT_DELAY,
        maximum: float = MAX_RECONNECT_DELAY,
    ):
        if initial <= 0 or maximum < initial:
            raise ValueError("Backoff requires 0 < initial <= maximum")
        self.initial = initial
        self.maximum = maximum
        self.current = initial

    def advance(self) -> float:
        """Double the delay (up to the cap) and return it."""
        self.current = min(self.current * 2, self.maximum)
        return self.current

    def reset(self) -> None:
        self.current = self.initial


class ConnectionManager:
    """
    Owns one logical chat socket at a time.

    Handles:
    - Connection lifecycle (connect/disconnect)
    - Reconnection with exponential backoff after unintentional closes
    - Ordered outbound writes through a per-connection queue
    - JSON decoding of inbound frames (malformed frames are dropped)

    Notifications are delivered through ``on_open``, ``on_close``,
    ``on_error`` and ``on_frame``. All public methods must be called from
    inside a running event loop.
    """

    def __init__(
        self,
        base_url: str,
        token: TokenSource = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        max_reconnect_delay: float = MAX_RECONNECT_DELAY,
        auto_reconnect: bool = True,
        connector: Connector | None = None,
    ):
        """
        Initialize connection manager.

        Args:
            base_url: Gateway base URL, e.g. ``wss://host``.
            token: Bearer token, or a callable evaluated on every connect attempt.
            reconnect_delay: Initial reconnect delay in seconds.
            max_reconnect_delay: Upper bound for the reconnect delay.
            auto_reconnect: Reconnect after unintentional closes.
            connector: Async socket factory taking the URL. Defaults to ``websockets.connect``.
        """
        self.base_url = base_url
        self.auto_reconnect = auto_reconnect
        self._token = token
        self._connector: Connector = connector or websockets.connect
        self._backoff = Backoff(reconnect_delay, max_reconnect_delay)

        self._state = ConnectionState.IDLE
        self._ws: Any = None
        self._outbox: asyncio.Queue[str] | None = None
        self._task: asyncio.Task | None = None
        self._writer_task: asyncio.Task | None = None
        self._closing_task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._intentionally_closed = False
        # Bumped on every connect/disconnect; stale socket tasks compare against it
        self._generation = 0

        self.on_open = Observers("open")
        self.on_close = Observers("close")
        self.on_error = Observers("error")
        self.on_frame = Observers("frame")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        """Chat socket URL including the current token."""
        token = self._token() if callable(self._token) else self._token
        return build_chat_url(self.base_url, token)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        """True if the socket is open."""
        return self._state is ConnectionState.OPEN and self._ws is not None

    @property
    def reconnect_delay(self) -> float:
        """Delay used for the next scheduled reconnect."""
        return self._backoff.current

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def connect(self) -> None:
        """
        Open the socket.

        Cancels any pending reconnect. Does nothing while already connecting
        or open.
        """
        self._intentionally_closed = False
        self._clear_reconnect_timer()

        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            logger.debug(f"connect() ignored, connection is {self._state.value}")
            return

        loop = asyncio.get_running_loop()
        self._generation += 1
        self._state = ConnectionState.CONNECTING
        logger.info(f"Connecting to {build_chat_url(self.base_url)}")
        self._task = loop.create_task(self._run(self.url, self._generation))

    def disconnect(self) -> None:
        """
        Close the socket without reconnecting.

        All pending work is stopped before this returns; no notification
        fires afterwards.
        """
        self._intentionally_closed = True
        self._clear_reconnect_timer()
        self._generation += 1

        ws = self._ws
        self._ws = None
        self._outbox = None
        for task in (self._task, self._writer_task):
            if task is not None and not task.done():
                task.cancel()
        self._task = None
        self._writer_task = None
        self._state = ConnectionState.IDLE

        if ws is not None:
            self._closing_task = asyncio.get_running_loop().create_task(self._close_socket(ws))
            logger.info("Disconnected")

    async def aclose(self) -> None:
        """Disconnect and wait until the socket is closed."""
        self.disconnect()
        if self._closing_task is not None:
            await self._closing_task
            self._closing_task = None

    def send(self, frame: Any) -> None:
        """
        Queue a frame for transmission.

        Args:
            frame: A dict, or an object with ``to_dict()``.

        Raises:
            NotConnectedError: If the socket is not open. Nothing is buffered.
        """
        if not self.connected or self._outbox is None:
            raise NotConnectedError()

        data = frame.to_dict() if hasattr(frame, "to_dict") else frame
        self._outbox.put_nowait(json.dumps(data, ensure_ascii=False))

    # ------------------------------------------------------------------
    # Socket tasks
    # ------------------------------------------------------------------

    async def _run(self, url: str, generation: int) -> None:
        """Open one socket and pump inbound frames until it closes."""
        try:
            ws = await self._connector(url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation != self._generation:
                return
            logger.error(f"WebSocket connection failed: {e}")
            self.on_error.emit(
                TransportError(f"Failed to connect: {e}", url=build_chat_url(self.base_url), cause=e)
            )
            self._handle_close(generation, CloseInfo(reason=str(e)))
            return

        if generation != self._generation:
            await self._close_socket(ws)
            return

        self._ws = ws
        self._outbox = asyncio.Queue()
        self._state = ConnectionState.OPEN
        self._backoff.reset()
        self._writer_task = asyncio.create_task(self._write_loop(ws, self._outbox, generation))
        logger.info("WebSocket connected")
        self.on_open.emit()

        try:
            async for raw in ws:
                if generation != self._generation:
                    return
                self._dispatch(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosedError as e:
            if generation != self._generation:
                return
            logger.warning(f"WebSocket closed abnormally: {e}")
            self.on_error.emit(TransportError(f"Connection lost: {e}", cause=e))
        except Exception as e:
            if generation != self._generation:
                return
            logger.error(f"WebSocket receive error: {e}")
            self.on_error.emit(TransportError(f"Receive failed: {e}", cause=e))

        if generation != self._generation:
            return
        if self._writer_task is not None:
            self._writer_task.cancel()
            self._writer_task = None
        self._handle_close(
            generation,
            CloseInfo(
                code=getattr(ws, "close_code", None),
                reason=getattr(ws, "close_reason", None) or "",
            ),
        )

    async def _write_loop(self, ws: Any, outbox: asyncio.Queue[str], generation: int) -> None:
        """Write queued frames in order."""
        while True:
            text = await outbox.get()
            try:
                await ws.send(text)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Failed to send frame: {e}")
                if generation == self._generation:
                    self.on_error.emit(TransportError(f"Send failed: {e}", cause=e))
                return

    def _dispatch(self, raw: str | bytes) -> None:
        """Decode one inbound frame and notify subscribers. Bad frames are dropped."""
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug("Dropping non-UTF-8 binary frame")
                return

        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug(f"Dropping non-JSON frame: {raw[:80]!r}")
            return

        if not isinstance(data, dict):
            logger.debug(f"Dropping non-object frame: {type(data).__name__}")
            return

        self.on_frame.emit(data)

    async def _close_socket(self, ws: Any) -> None:
        try:
            await ws.close()
        except Exception as e:
            logger.debug(f"Error while closing socket: {e}")

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _handle_close(self, generation: int, info: CloseInfo) -> None:
        if generation != self._generation or self._intentionally_closed:
            return

        self._state = ConnectionState.CLOSING
        self._ws = None
        self._outbox = None

        if self.auto_reconnect:
            info.reconnect_delay = self._schedule_reconnect()
            logger.warning(
                f"WebSocket closed (code={info.code}), reconnecting in {info.reconnect_delay}s"
            )
        else:
            self._state = ConnectionState.IDLE
            logger.warning(f"WebSocket closed (code={info.code})")

        self.on_close.emit(info)

    def _schedule_reconnect(self) -> float:
        self._clear_reconnect_timer()
        delay = self._backoff.current
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._reconnect)
        self._state = ConnectionState.RECONNECT_SCHEDULED
        return delay

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._intentionally_closed:
            return
        self._backoff.advance()
        self.connect()

    def _clear_reconnect_timer(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
