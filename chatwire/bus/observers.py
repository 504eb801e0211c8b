"""Ordered multi-subscriber handler registry."""

from __future__ import annotations

from typing import Any, Callable

from loguru import logger

Handler = Callable[..., None]
Unsubscribe = Callable[[], None]


class Observers:
    """
    Ordered list of handlers for one notification.

    Features:
    - Multiple subscribers, called in registration order
    - Unsubscribe callables instead of overwriting a single callback field
    - Handler errors are logged and isolated from other subscribers
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: list[Handler] = []

    def subscribe(self, handler: Handler) -> Unsubscribe:
        """
        Register a handler.

        Args:
            handler: Called with the notification arguments.

        Returns:
            Callable that removes the handler again.
        """
        self._handlers.append(handler)
        logger.debug(f"Registered {self.name} handler: {getattr(handler, '__name__', handler)}")

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, *args: Any) -> None:
        """Call every handler with the given arguments."""
        for handler in list(self._handlers):
            try:
                handler(*args)
            except Exception:
                logger.exception(f"Error in {self.name} handler")

    def __len__(self) -> int:
        return len(self._handlers)
