"""Turn accumulation and outbound message composition."""

from __future__ import annotations

from typing import Any

from loguru import logger

from chatwire.bus.events import ChatEvent, ChatEventKind
from chatwire.bus.observers import Observers
from chatwire.exceptions import AgentTurnError, ProtocolDecodeError
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
from chatwire.session.store import Message, SessionStore
from chatwire.transport.connection import ConnectionManager


class ProtocolHandler:
    """
    Interprets the inbound frame stream and composes outbound requests.

    Streamed ``chunk`` text is collected in a private buffer until a
    ``done``/``message`` frame finalizes the turn into the current session,
    or an ``error`` frame discards it. Tool frames are only surfaced to
    subscribers. Every classified frame is delivered to ``on_event``.
    """

    def __init__(self, connection: ConnectionManager, store: SessionStore):
        self._connection = connection
        self._store = store
        self._buffer: list[str] = []
        self._streaming = False
        self.on_event = Observers("chat event")

    @property
    def streaming(self) -> bool:
        """True while a turn is in progress."""
        return self._streaming

    def attach(self) -> None:
        """Subscribe to the connection's inbound frames."""
        self._connection.on_frame.subscribe(self.handle_frame)

    def send_message(self, text: str) -> None:
        """
        Send a chat message with the current session's history.

        The user message is appended to the session after the frame is
        queued; there is no server acknowledgment to wait for.

        Raises:
            NotConnectedError: If the socket is not open. No state changes.
        """
        session = self._store.get_current_session()
        request = ChatRequest(
            content=text,
            session_id=session.id,
            history=session.get_history(),
        )
        self._connection.send(request)

        self._reset_turn()
        self._streaming = True
        self._store.append_messages(session.id, [Message.user(text)])
        logger.debug(f"Sent message in session {session.id} ({len(request.history)} prior)")

    def handle_frame(self, data: dict[str, Any]) -> None:
        """Classify one decoded frame. Unknown or malformed frames are dropped."""
        try:
            frame = parse_frame(data)
        except ProtocolDecodeError as e:
            logger.debug(f"Dropping frame: {e}")
            return

        if isinstance(frame, ChunkFrame):
            self._on_chunk(frame)
        elif isinstance(frame, ReplyFrame):
            self._on_reply(frame)
        elif isinstance(frame, ToolCallFrame):
            logger.debug(f"Tool call: {frame.name}")
            self._emit(ChatEventKind.TOOL_CALL, frame)
        elif isinstance(frame, ToolResultFrame):
            self._emit(ChatEventKind.TOOL_RESULT, frame, content=frame.output)
        elif isinstance(frame, ErrorFrame):
            self._on_error(frame)

    def _on_chunk(self, frame: ChunkFrame) -> None:
        self._streaming = True
        self._buffer.append(frame.content)
        self._emit(ChatEventKind.CHUNK, frame, content="".join(self._buffer))

    def _on_reply(self, frame: ReplyFrame) -> None:
        accumulated = "".join(self._buffer)
        # A present field wins even when empty; only the buffer counts as absent when empty
        if frame.full_response is not None:
            content = frame.full_response
        elif frame.type == FrameType.DONE:
            content = accumulated or frame.content or ""
        elif frame.content is not None:
            content = frame.content
        else:
            content = accumulated

        session_id = self._store.current_session_id
        self._reset_turn()
        if content:
            self._store.append_messages(session_id, [Message.assistant(content)])
        logger.debug(f"Turn finished in session {session_id} ({len(content)} chars)")
        kind = ChatEventKind.DONE if frame.type == FrameType.DONE else ChatEventKind.MESSAGE
        self._emit(kind, frame, content=content, session_id=session_id)

    def _on_error(self, frame: ErrorFrame) -> None:
        self._reset_turn()
        error = AgentTurnError(frame.message)
        logger.warning(str(error))
        self._emit(ChatEventKind.ERROR, frame, content=frame.message, error=error)

    def _reset_turn(self) -> None:
        self._buffer.clear()
        self._streaming = False

    def _emit(
        self,
        kind: ChatEventKind,
        frame: InboundFrame,
        content: str = "",
        error: AgentTurnError | None = None,
        session_id: str | None = None,
    ) -> None:
        self.on_event.emit(
            ChatEvent(
                kind=kind,
                frame=frame,
                session_id=session_id or self._store.current_session_id,
                content=content,
                error=error,
            )
        )
