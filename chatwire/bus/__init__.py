"""Notification payloads and subscriber registries."""

from chatwire.bus.events import ChatEvent, ChatEventKind, CloseInfo
from chatwire.bus.observers import Observers, Unsubscribe

__all__ = ["ChatEvent", "ChatEventKind", "CloseInfo", "Observers", "Unsubscribe"]
