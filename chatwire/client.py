"""Chat client facade.

Wires the connection manager, the session store and the protocol handler
together and exposes the client API used by front ends.
"""

from __future__ import annotations

from typing import Callable

from loguru import logger

from chatwire.bus.events import ChatEvent, CloseInfo
from chatwire.bus.observers import Unsubscribe
from chatwire.config import DEFAULT_RECONNECT_DELAY, MAX_RECONNECT_DELAY, ClientSettings
from chatwire.exceptions import TransportError
from chatwire.platform import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from chatwire.protocol.handler import ProtocolHandler
from chatwire.session.store import MAX_HISTORY_MESSAGES, Message, Session, SessionStore
from chatwire.transport.connection import (
    ConnectionManager,
    ConnectionState,
    Connector,
    TokenSource,
)


class ChatClient:
    """
    Chat client for a streaming agent gateway.

    Example::

        client = ChatClient("wss://gateway.example", token="...")
        client.on_message(lambda event: print(event.kind, event.content))
        client.connect()
        ...
        client.send_message("hello")
    """

    def __init__(
        self,
        base_url: str,
        token: TokenSource = None,
        storage: KeyValueStore | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        max_reconnect_delay: float = MAX_RECONNECT_DELAY,
        auto_reconnect: bool = True,
        max_history_messages: int = MAX_HISTORY_MESSAGES,
        connector: Connector | None = None,
    ):
        """
        Initialize chat client.

        Args:
            base_url: Gateway base URL.
            token: Bearer token or callable returning one.
            storage: Persistence port for sessions. Defaults to in-memory.
            reconnect_delay: Initial reconnect delay in seconds.
            max_reconnect_delay: Reconnect delay cap in seconds.
            auto_reconnect: Reconnect after unintentional closes.
            max_history_messages: Messages kept per session.
            connector: Async socket factory (for tests or custom transports).
        """
        self.connection = ConnectionManager(
            base_url,
            token=token,
            reconnect_delay=reconnect_delay,
            max_reconnect_delay=max_reconnect_delay,
            auto_reconnect=auto_reconnect,
            connector=connector,
        )
        self.sessions = SessionStore(
            storage if storage is not None else MemoryKeyValueStore(),
            max_messages=max_history_messages,
        )
        self.protocol = ProtocolHandler(self.connection, self.sessions)
        self.protocol.attach()

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings | None = None,
        connector: Connector | None = None,
    ) -> "ChatClient":
        """Create a client from settings (environment by default)."""
        settings = settings or ClientSettings()
        storage: KeyValueStore
        if settings.storage_path is None:
            storage = MemoryKeyValueStore()
        else:
            storage = FileKeyValueStore(settings.storage_path)
        logger.debug(f"Creating chat client for {settings.base_url}")
        return cls(
            settings.base_url,
            token=settings.token,
            storage=storage,
            reconnect_delay=settings.reconnect_delay,
            max_reconnect_delay=settings.max_reconnect_delay,
            auto_reconnect=settings.auto_reconnect,
            max_history_messages=settings.max_history_messages,
            connector=connector,
        )

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self) -> None:
        self.connection.connect()

    def disconnect(self) -> None:
        self.connection.disconnect()

    async def aclose(self) -> None:
        await self.connection.aclose()

    @property
    def connected(self) -> bool:
        return self.connection.connected

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def send_message(self, text: str) -> None:
        """
        Send a message in the current session.

        Raises:
            NotConnectedError: If the socket is not open.
        """
        self.protocol.send_message(text)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_open(self, handler: Callable[[], None]) -> Unsubscribe:
        return self.connection.on_open.subscribe(handler)

    def on_close(self, handler: Callable[[CloseInfo], None]) -> Unsubscribe:
        return self.connection.on_close.subscribe(handler)

    def on_error(self, handler: Callable[[TransportError], None]) -> Unsubscribe:
        return self.connection.on_error.subscribe(handler)

    def on_message(self, handler: Callable[[ChatEvent], None]) -> Unsubscribe:
        return self.protocol.on_event.subscribe(handler)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_sessions(self) -> list[Session]:
        return self.sessions.list_sessions()

    def get_current_session(self) -> Session:
        return self.sessions.get_current_session()

    def set_current_session(self, session_id: str) -> None:
        self.sessions.set_current_session(session_id)

    def new_session(self) -> str:
        return self.sessions.new_session()

    def clear_history(self) -> str:
        return self.sessions.clear_history()

    def delete_session(self, session_id: str) -> bool:
        return self.sessions.delete_session(session_id)

    def get_session_id(self) -> str:
        return self.sessions.current_session_id

    def get_history(self) -> list[Message]:
        return self.sessions.get_history()

    def save_history(self, messages: list[Message]) -> Session:
        return self.sessions.save_history(messages)
