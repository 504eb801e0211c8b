"""Session store for persistent, switchable conversation history."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable

from loguru import logger

from chatwire.exceptions import PersistenceCorruptionError
from chatwire.platform import KeyValueStore, generate_id

SESSIONS_KEY = "chatwire.sessions"
CURRENT_SESSION_KEY = "chatwire.current_session"
MAX_HISTORY_MESSAGES = 50
TITLE_LENGTH = 50


class Role(str, Enum):
    """Message author roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Message:
    """A single chat message."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        """Create a message from dictionary. Raises ValueError on bad data."""
        content = data.get("content")
        if not isinstance(content, str):
            raise ValueError("message content must be a string")
        return cls(role=Role(data.get("role")), content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)


def derive_title(content: str) -> str:
    """Title from the first message: its first 50 characters, ellipsized."""
    if len(content) > TITLE_LENGTH:
        return content[:TITLE_LENGTH] + "..."
    return content


@dataclass
class Session:
    """Represents a conversation session."""

    id: str
    messages: list[Message] = field(default_factory=list)
    title: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def get_history(self) -> list[dict[str, str]]:
        """Get message history in wire format (role + content only)."""
        return [m.to_dict() for m in self.messages]

    def to_dict(self) -> dict[str, Any]:
        """Convert session to dictionary."""
        return {
            "id": self.id,
            "messages": self.get_history(),
            "title": self.title,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Create session from dictionary. Raises on malformed records."""
        session_id = data["id"]
        if not isinstance(session_id, str) or not session_id:
            raise ValueError("session id must be a non-empty string")
        title = data.get("title")
        return cls(
            id=session_id,
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            title=title if isinstance(title, str) else None,
            created_at=datetime.fromisoformat(data["created_at"]),
        )


class SessionStore:
    """
    Manages conversation sessions persisted through a key-value port.

    Two entries are kept: one JSON list of all sessions and one holding the
    current session id. Unreadable entries are treated as empty.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        max_messages: int = MAX_HISTORY_MESSAGES,
        id_factory: Callable[[], str] = generate_id,
    ):
        """
        Initialize session store.

        Args:
            storage: Persistence port. Only this store reads or writes it.
            max_messages: Messages kept per session on every persist.
            id_factory: Generator for new session ids.
        """
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self._storage = storage
        self.max_messages = max_messages
        self._id_factory = id_factory
        self._pointer_saved = False
        self._current_id = self._load_current_id()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_sessions(self) -> list[Session]:
        """All stored sessions, most recently created first."""
        sessions = list(self._load_sessions().values())
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    def get_session(self, session_id: str) -> Session | None:
        """Return the session, or None if it is not stored."""
        return self._load_sessions().get(session_id)

    def get_current_session(self) -> Session:
        """The current session; an unsaved empty one if nothing is stored yet."""
        return self.get_session(self._current_id) or Session(id=self._current_id)

    @property
    def current_session_id(self) -> str:
        return self._current_id

    def get_history(self) -> list[Message]:
        """Messages of the current session."""
        return list(self.get_current_session().messages)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_current_session(self, session_id: str) -> None:
        """Redirect the current-session pointer. Session data is untouched."""
        self._current_id = session_id
        self._save_current_id()
        logger.debug(f"Switched current session: {session_id}")

    def append_messages(self, session_id: str, messages: Iterable[Message]) -> Session:
        """
        Append messages to a session and persist it.

        The session is created on first use. Its title is derived from the
        first message ever stored and never recomputed.

        Args:
            session_id: Target session.
            messages: Messages to append, in order.

        Returns:
            The stored session after truncation.
        """
        new_messages = list(messages)
        sessions = self._load_sessions()
        session = sessions.get(session_id)
        if session is None:
            session = Session(id=session_id)
            sessions[session_id] = session
            logger.debug(f"Created new session: {session_id}")

        self._apply(session, session.messages + new_messages)
        self._save_sessions(sessions)
        return session

    def save_history(self, messages: Iterable[Message]) -> Session:
        """Replace the current session's messages."""
        sessions = self._load_sessions()
        session = sessions.get(self._current_id)
        if session is None:
            session = Session(id=self._current_id)
            sessions[self._current_id] = session

        self._apply(session, list(messages))
        self._save_sessions(sessions)
        return session

    def new_session(self) -> str:
        """Allocate a fresh session id and make it current."""
        session_id = self._id_factory()
        self.set_current_session(session_id)
        logger.info(f"Started new session: {session_id}")
        return session_id

    def clear_history(self) -> str:
        """Start a fresh conversation. Stored sessions are kept."""
        return self.new_session()

    def delete_session(self, session_id: str) -> bool:
        """
        Delete a session.

        If it was the current session, a new session id becomes current.

        Returns:
            True if a stored session was removed.
        """
        sessions = self._load_sessions()
        deleted = sessions.pop(session_id, None) is not None
        if deleted:
            self._save_sessions(sessions)
            logger.info(f"Deleted session: {session_id}")

        if session_id == self._current_id:
            self.new_session()

        return deleted

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _apply(self, session: Session, messages: list[Message]) -> None:
        if session.title is None and messages:
            session.title = derive_title(messages[0].content)
        session.messages = messages[-self.max_messages:]

    def _load_current_id(self) -> str:
        raw = self._storage.get(CURRENT_SESSION_KEY)
        if raw is not None:
            try:
                value = json.loads(raw)
            except ValueError as e:
                value = None
                self._report(PersistenceCorruptionError(CURRENT_SESSION_KEY, str(e)))
            if isinstance(value, str) and value:
                self._pointer_saved = True
                return value

        # Written on the first persist so read-only use never touches storage
        return self._id_factory()

    def _save_current_id(self) -> None:
        self._storage.set(CURRENT_SESSION_KEY, json.dumps(self._current_id))
        self._pointer_saved = True

    def _load_sessions(self) -> dict[str, Session]:
        raw = self._storage.get(SESSIONS_KEY)
        if raw is None:
            return {}

        try:
            records = json.loads(raw)
        except ValueError as e:
            self._report(PersistenceCorruptionError(SESSIONS_KEY, str(e)))
            return {}
        if not isinstance(records, list):
            self._report(PersistenceCorruptionError(SESSIONS_KEY, "expected a list"))
            return {}

        sessions: dict[str, Session] = {}
        for record in records:
            try:
                session = Session.from_dict(record)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed session record: {e}")
                continue
            sessions[session.id] = session
        return sessions

    def _save_sessions(self, sessions: dict[str, Session]) -> None:
        payload = [s.to_dict() for s in sessions.values()]
        self._storage.set(SESSIONS_KEY, json.dumps(payload, ensure_ascii=False))
        if not self._pointer_saved:
            self._save_current_id()

    @staticmethod
    def _report(error: PersistenceCorruptionError) -> None:
        logger.warning(f"{error}; treating as empty")
