"""Persistent conversation sessions."""

from chatwire.session.store import Message, Role, Session, SessionStore, derive_title

__all__ = ["Message", "Role", "Session", "SessionStore", "derive_title"]
