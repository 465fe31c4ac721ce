"""Shared fixtures and transport doubles."""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from roomchat.core.config import Settings
from roomchat.core.errors import DeliveryPartialFailure
from roomchat.main import create_app
from roomchat.services.room_registry import RoomRegistry


# =============================================================================
# Server-side doubles
# =============================================================================

@dataclass(eq=False)
class RecordingConnection:
    """Stands in for a server Connection: records frames, can be made to fail."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    frames: List[Dict[str, Any]] = field(default_factory=list)
    broken: bool = False

    def send(self, frame: dict) -> None:
        if self.broken:
            raise DeliveryPartialFailure(self.id, "connection closed")
        self.frames.append(frame)

    def of_type(self, frame_type: str) -> List[Dict[str, Any]]:
        return [f for f in self.frames if f.get("type") == frame_type]


class FakeServerWebSocket:
    """The subset of starlette's WebSocket used by Connection/ConnectionManager."""

    def __init__(self, fail_sends: bool = False, block_sends: bool = False) -> None:
        self.accepted = False
        self.sent: List[dict] = []
        self.closed_with: Optional[int] = None
        self.fail_sends = fail_sends
        self.block_sends = block_sends
        self._unblock = asyncio.Event()

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict) -> None:
        if self.fail_sends:
            raise RuntimeError("socket is gone")
        if self.block_sends:
            await self._unblock.wait()
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def of_type(self, frame_type: str) -> List[dict]:
        return [f for f in self.sent if f.get("type") == frame_type]


async def drain(rounds: int = 10) -> None:
    """Let writer tasks and scheduled teardowns run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# =============================================================================
# Client-side doubles
# =============================================================================

class FakeClientWebSocket:
    """The subset of a websockets client connection used by ChatClient."""

    def __init__(self) -> None:
        self.sent: List[dict] = []
        self.send_attempts: List[dict] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        frame = json.loads(data)
        self.send_attempts.append(frame)
        if self.closed:
            raise ConnectionResetError("connection is closed")
        self.sent.append(frame)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(None)

    def feed(self, frame: Any) -> None:
        """Queue a frame as if the server had sent it."""
        self._inbox.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def drop(self) -> None:
        """Simulate the server vanishing without a close handshake."""
        self.closed = True
        self._inbox.put_nowait(None)

    def of_type(self, frame_type: str) -> List[dict]:
        return [f for f in self.sent if f.get("type") == frame_type]

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Replaces websockets.connect; hands out FakeClientWebSocket instances."""

    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        self.calls: List[str] = []
        self.sockets: List[FakeClientWebSocket] = []

    async def __call__(self, url: str) -> FakeClientWebSocket:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        ws = FakeClientWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeClientWebSocket:
        return self.sockets[-1]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def app():
    return create_app(Settings())


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def chat_state(app):
    return app.state.chat


@pytest.fixture
def connector():
    return FakeConnector()
