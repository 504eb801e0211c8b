"""Custom exceptions for chatwire.

This module provides the exception hierarchy used across the client core.
Only a few of these ever reach the caller: ``NotConnectedError`` is raised
synchronously by the send path, ``AgentTurnError`` is delivered to chat event
subscribers. The others are recovered locally and only logged or notified.
"""

from __future__ import annotations

from typing import Any


class ChatWireError(Exception):
    """Base exception for all chatwire errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message

    def user_message(self) -> str:
        """Return a user-friendly error message."""
        return self.message


# === Configuration Errors ===


class ConfigurationError(ChatWireError):
    """Error in client configuration."""

    pass


# === Transport Errors ===


class TransportError(ChatWireError):
    """Socket-level failure (open, close or error event).

    Recovered automatically through reconnection; surfaced only as a
    notification, never raised to the caller.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        cause: BaseException | None = None,
    ):
        self.url = url
        self.cause = cause
        self.__cause__ = cause
        details: dict[str, Any] = {}
        if url:
            details["url"] = url
        if cause is not None:
            details["cause"] = type(cause).__name__
        super().__init__(message, details)

    def user_message(self) -> str:
        return "Connection error. Attempting to reconnect..."


class NotConnectedError(ChatWireError):
    """Attempted to send while the socket is not open."""

    def __init__(self, message: str = "WebSocket is not connected"):
        super().__init__(message)

    def user_message(self) -> str:
        return "Not connected to the agent. Wait for the connection and try again."


# === Protocol Errors ===


class ProtocolDecodeError(ChatWireError):
    """Inbound frame could not be decoded or has an unknown type."""

    def __init__(self, reason: str, raw: Any = None):
        self.raw = raw
        super().__init__(f"Invalid frame: {reason}")


class AgentTurnError(ChatWireError):
    """The agent reported an error for the current turn."""

    def __init__(self, message: str | None = None):
        self.agent_message = message or "Unknown error"
        super().__init__(f"Agent error: {self.agent_message}")

    def user_message(self) -> str:
        return self.agent_message


# === Persistence Errors ===


class PersistenceCorruptionError(ChatWireError):
    """Stored state could not be parsed; treated as empty."""

    def __init__(self, key: str, cause: str | None = None):
        self.key = key
        msg = f"Stored entry '{key}' is unreadable"
        if cause:
            msg += f": {cause}"
        super().__init__(msg, {"key": key})


# === Utility Functions ===


def format_exception_chain(exc: BaseException) -> str:
    """Format an exception chain for logging."""
    messages = []
    current: BaseException | None = exc
    while current is not None:
        if isinstance(current, ChatWireError):
            messages.append(str(current))
        else:
            messages.append(f"{type(current).__name__}: {current}")
        current = current.__cause__
    return " -> ".join(messages)


def user_friendly_error(exc: BaseException) -> str:
    """Get a user-friendly error message from any exception."""
    if isinstance(exc, ChatWireError):
        return exc.user_message()
    if isinstance(exc, ConnectionError):
        return "Network connection error. Please check your internet connection."
    if isinstance(exc, TimeoutError):
        return "The operation timed out. Please try again."
    if isinstance(exc, PermissionError):
        return "Permission denied. Please check file or directory permissions."
    return "An unexpected error occurred. Please try again."
