"""Chat socket transport."""

from chatwire.transport.connection import (
    Backoff,
    ConnectionManager,
    ConnectionState,
    build_chat_url,
)

__all__ = ["Backoff", "ConnectionManager", "ConnectionState", "build_chat_url"]
