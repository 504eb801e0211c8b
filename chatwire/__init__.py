"""
chatwire: real-time chat client core for streaming agent gateways.

Keeps a conversation alive across network failures, interprets the streamed
frame protocol and persists session-scoped message history locally.
"""

__version__ = "0.1.0"

from chatwire.bus.events import ChatEvent, ChatEventKind, CloseInfo
from chatwire.client import ChatClient
from chatwire.config import ClientSettings
from chatwire.exceptions import (
    AgentTurnError,
    ChatWireError,
    ConfigurationError,
    NotConnectedError,
    PersistenceCorruptionError,
    ProtocolDecodeError,
    TransportError,
    user_friendly_error,
)
from chatwire.platform import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore, generate_id
from chatwire.protocol.handler import ProtocolHandler
from chatwire.session.store import Message, Role, Session, SessionStore
from chatwire.transport.connection import ConnectionManager, ConnectionState

__all__ = [
    # Version
    "__version__",
    # Client
    "ChatClient",
    "ClientSettings",
    "ConnectionManager",
    "ConnectionState",
    "ProtocolHandler",
    "SessionStore",
    # Data
    "ChatEvent",
    "ChatEventKind",
    "CloseInfo",
    "Message",
    "Role",
    "Session",
    # Platform
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "generate_id",
    # Exceptions
    "ChatWireError",
    "ConfigurationError",
    "TransportError",
    "NotConnectedError",
    "ProtocolDecodeError",
    "AgentTurnError",
    "PersistenceCorruptionError",
    "user_friendly_error",
]
