"""Notification payloads delivered to subscribers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from chatwire.exceptions import AgentTurnError
from chatwire.protocol.frames import InboundFrame


class ChatEventKind(str, Enum):
    """Kinds of chat events surfaced to the UI."""

    MESSAGE = "message"
    CHUNK = "chunk"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    DONE = "done"
    ERROR = "error"


@dataclass
class ChatEvent:
    """
    A classified inbound frame.

    For ``chunk`` events ``content`` is the text accumulated so far in the
    turn; for ``done`` it is the finalized reply.
    """
    kind: ChatEventKind
    frame: InboundFrame
    session_id: str
    content: str = ""
    error: AgentTurnError | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        """Check if this event ends the turn."""
        return self.kind in (ChatEventKind.MESSAGE, ChatEventKind.DONE, ChatEventKind.ERROR)


@dataclass
class CloseInfo:
    """Details of an unintentional socket close."""
    code: int | None = None
    reason: str = ""
    reconnect_delay: float | None = None  # None when no reconnect is scheduled
