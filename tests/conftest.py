"""Shared fixtures: in-memory websocket fakes and a recording connection."""

import asyncio
import json
from typing import Any, Callable, List, Optional

import pytest

from arrakis_chat.api.connection import ConnectionState
from arrakis_chat.domain.protocol import encode_request

_CLOSED = object()


class FakeSocket:
    """Stands in for a websocket client connection."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    def push(self, frame: Any) -> None:
        """Deliver an inbound frame (dicts are JSON-encoded)."""
        if not isinstance(frame, (str, bytes)):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def drop(self, error: Optional[Exception] = None) -> None:
        """End the stream, cleanly or with ``error``."""
        self._inbox.put_nowait(error if error is not None else _CLOSED)

    async def send(self, frame: str) -> None:
        self.sent.append(frame)

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    def sent_json(self) -> List[dict]:
        return [json.loads(frame) for frame in self.sent]


class FakeConnector:
    """Connector that hands out queued sockets or raises queued errors."""

    def __init__(self) -> None:
        self.attempts = 0
        self.sockets: List[FakeSocket] = []
        self._outcomes: List[Any] = []
        self.default: Callable[[], Any] = lambda: ConnectionRefusedError("refused")

    def will_connect(self) -> FakeSocket:
        socket = FakeSocket()
        self._outcomes.append(socket)
        return socket

    def will_fail(self, error: Optional[Exception] = None) -> None:
        self._outcomes.append(error or ConnectionRefusedError("refused"))

    async def __call__(self, url: str) -> FakeSocket:
        self.attempts += 1
        outcome = self._outcomes.pop(0) if self._outcomes else self.default()
        if isinstance(outcome, Exception):
            raise outcome
        self.sockets.append(outcome)
        return outcome


class RecordingConnection:
    """Minimal connection double for session tests."""

    def __init__(self, connected: bool = True) -> None:
        self.state = ConnectionState.CONNECTED if connected else ConnectionState.DISCONNECTED
        self.retry_count = 0
        self.last_error = None
        self.requests: List[Any] = []
        self.response_handlers: List[Callable] = []
        self.state_listeners: List[Callable] = []
        self.started = False
        self.closed = False

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def on_response(self, handler) -> None:
        self.response_handlers.append(handler)

    def on_state_change(self, listener) -> None:
        self.state_listeners.append(listener)

    def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def send(self, request) -> bool:
        if not self.connected:
            return False
        self.requests.append(request)
        return True

    def frames(self) -> List[dict]:
        return [json.loads(encode_request(r)) for r in self.requests]


async def wait_for(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until ``condition`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def recording_connection() -> RecordingConnection:
    return RecordingConnection()


@pytest.fixture
def wait():
    return wait_for
