"""Chat socket protocol frames."""

from chatwire.protocol.frames import (
    ChatRequest,
    ChunkFrame,
    ErrorFrame,
    FrameType,
    InboundFrame,
    ReplyFrame,
    ToolCallFrame,
    ToolResultFrame,
    parse_frame,
)

__all__ = [
    "ChatRequest",
    "ChunkFrame",
    "ErrorFrame",
    "FrameType",
    "InboundFrame",
    "ReplyFrame",
    "ToolCallFrame",
    "ToolResultFrame",
    "parse_frame",
]
