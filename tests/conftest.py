"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import pytest

from chatwire.client import ChatClient
from chatwire.platform import MemoryKeyValueStore

_CLOSED = object()


class FakeSocket:
    """Scripted stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: list[str] = []
        self.closed = False
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, text: str) -> None:
        self.sent.append(text)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(_CLOSED)

    def feed(self, raw: str | bytes) -> None:
        """Deliver a raw frame from the server."""
        self._incoming.put_nowait(raw)

    def feed_json(self, data: dict[str, Any]) -> None:
        self.feed(json.dumps(data))

    def drop(self, code: int = 1006, reason: str = "") -> None:
        """Simulate the server or network closing the connection."""
        self.close_code = code
        self.close_reason = reason
        self._incoming.put_nowait(_CLOSED)

    def sent_json(self) -> list[dict[str, Any]]:
        return [json.loads(s) for s in self.sent]

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self) -> Any:
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Socket factory recording URLs; can be told to fail the next N attempts."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.urls: list[str] = []
        self.sockets: list[FakeSocket] = []

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise OSError("connection refused")
        ws = FakeSocket()
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def storage() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def client(storage, connector) -> ChatClient:
    return ChatClient(
        "ws://gateway.test",
        token="secret",
        storage=storage,
        reconnect_delay=0.01,
        max_reconnect_delay=0.04,
        connector=connector,
    )
