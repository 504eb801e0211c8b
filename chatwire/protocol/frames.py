"""Chat socket frame protocol.

Message Format:
- Client -> Server (Request): {"type": "message", "content": "...", "history": [...], "session_id": "..."}
- Server -> Client (Stream):  {"type": "chunk", "content": "..."}
- Server -> Client (Tool):    {"type": "tool_call", "name": "...", "args": {...}}
                              {"type": "tool_result", "name": "...", "output": "..."}
- Server -> Client (Final):   {"type": "done", "full_response": "..."}
                              {"type": "message", "content": "..."}
- Server -> Client (Error):   {"type": "error", "message": "..."}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from chatwire.exceptions import ProtocolDecodeError


class FrameType(str, Enum):
    """Frame types carried in the ``type`` field."""

    MESSAGE = "message"
    CHUNK = "chunk"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    DONE = "done"
    ERROR = "error"


@dataclass
class InboundFrame:
    """Base server-to-client frame."""

    type: FrameType

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"type": self.type.value}


@dataclass
class ReplyFrame(InboundFrame):
    """A ``message`` or ``done`` frame: a complete reply or end of a stream."""

    content: str | None = None
    full_response: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.content is not None:
            result["content"] = self.content
        if self.full_response is not None:
            result["full_response"] = self.full_response
        return result


@dataclass
class ChunkFrame(InboundFrame):
    """Partial streamed text."""

    content: str = ""
    type: FrameType = field(default=FrameType.CHUNK)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["content"] = self.content
        return result


@dataclass
class ToolCallFrame(InboundFrame):
    """The agent invoked a tool."""

    name: str = "unknown"
    args: dict[str, Any] = field(default_factory=dict)
    type: FrameType = field(default=FrameType.TOOL_CALL)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["name"] = self.name
        result["args"] = self.args
        return result


@dataclass
class ToolResultFrame(InboundFrame):
    """Output of a tool invocation."""

    output: str = ""
    name: str | None = None
    type: FrameType = field(default=FrameType.TOOL_RESULT)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["output"] = self.output
        if self.name is not None:
            result["name"] = self.name
        return result


@dataclass
class ErrorFrame(InboundFrame):
    """The agent aborted the turn."""

    message: str = "Unknown error"
    type: FrameType = field(default=FrameType.ERROR)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["message"] = self.message
        return result


@dataclass
class ChatRequest:
    """Client-to-server chat request."""

    content: str
    session_id: str
    history: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": FrameType.MESSAGE.value,
            "content": self.content,
            "history": self.history,
            "session_id": self.session_id,
        }


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolDecodeError(f"'{key}' must be a string", raw=data)
    return value


def _lenient_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    logger.debug(f"Ignoring non-string '{key}' in {data.get('type')} frame")
    return None


def parse_frame(data: Any) -> InboundFrame:
    """
    Parse a decoded JSON object into a typed frame.

    Args:
        data: Decoded JSON value received from the socket.

    Returns:
        Parsed InboundFrame subclass.

    Raises:
        ProtocolDecodeError: If the value is not an object or has an unknown type.
    """
    if not isinstance(data, dict):
        raise ProtocolDecodeError("frame is not a JSON object", raw=data)

    raw_type = data.get("type")
    try:
        frame_type = FrameType(raw_type)
    except ValueError:
        raise ProtocolDecodeError(f"unknown frame type {raw_type!r}", raw=data) from None

    if frame_type in (FrameType.MESSAGE, FrameType.DONE):
        # Terminal frames must always end the turn, so mistyped fields are ignored
        return ReplyFrame(
            type=frame_type,
            content=_lenient_str(data, "content"),
            full_response=_lenient_str(data, "full_response"),
        )
    elif frame_type == FrameType.CHUNK:
        return ChunkFrame(content=_optional_str(data, "content") or "")
    elif frame_type == FrameType.TOOL_CALL:
        args = data.get("args")
        return ToolCallFrame(
            name=_optional_str(data, "name") or "unknown",
            args=args if isinstance(args, dict) else {},
        )
    elif frame_type == FrameType.TOOL_RESULT:
        output = data.get("output")
        return ToolResultFrame(
            output=output if isinstance(output, str) else ("" if output is None else str(output)),
            name=_optional_str(data, "name"),
        )
    else:
        return ErrorFrame(message=_optional_str(data, "message") or "Unknown error")
