"""Shared fakes: an in-memory Socket.IO client and history fetchers."""

import asyncio
from typing import Any, Optional

import pytest

from duochat.models.message import Message, parse_message
from duochat.models.session import Participant, SessionContext
from duochat.store import MessageStore
from duochat.transport.socketio import ConnectionManager

U1 = Participant(id="u1", display_name="Ada", email="ada@example.com")
U2 = Participant(id="u2", display_name="Bob", email="bob@example.com")
U3 = Participant(id="u3", display_name="Cy", email="cy@example.com")


class FakeSocketClient:
    """Stands in for socketio.AsyncClient."""

    def __init__(self, fail: bool = False):
        self.handlers: dict[str, Any] = {}
        self.connected = False
        self.sid: Optional[str] = None
        self.emitted: list[tuple[str, Any]] = []
        self.connect_kwargs: dict[str, Any] = {}
        self.fail = fail

    def on(self, event, handler=None):
        self.handlers[event] = handler

    async def connect(self, url, **kwargs):
        self.connect_kwargs = {"url": url, **kwargs}
        if self.fail:
            raise OSError("connection refused")
        self.connected = True
        self.sid = f"sid-{id(self)}"

    async def emit(self, event, data=None):
        self.emitted.append((event, data))

    async def disconnect(self):
        was_connected = self.connected
        self.connected = False
        if was_connected and "disconnect" in self.handlers:
            await self.handlers["disconnect"]("client disconnect")

    # -- test drivers --

    async def push(self, event, data):
        """Deliver a server → client event."""
        await self.handlers["*"](event, data)

    async def drop(self):
        """Simulate the transport going away."""
        self.connected = False
        await self.handlers["disconnect"]("transport close")

    def events(self, name):
        return [data for event, data in self.emitted if event == name]


class FakeClientFactory:
    def __init__(self, failures: int = 0):
        self.clients: list[FakeSocketClient] = []
        self.failures = failures

    def __call__(self) -> FakeSocketClient:
        fail = self.failures > 0
        if fail:
            self.failures -= 1
        client = FakeSocketClient(fail=fail)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeSocketClient:
        return self.clients[-1]


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeHistory:
    """History fetch returning canned wire rows per peer."""

    def __init__(self, rows: Optional[dict[str, list[dict]]] = None, error: Optional[Exception] = None):
        self.rows = rows or {}
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, me_id: str, peer_id: str) -> list[Message]:
        self.calls.append((me_id, peer_id))
        if self.error is not None:
            raise self.error
        return [parse_message(row, me_id) for row in self.rows.get(peer_id, [])]


class HeldHistory:
    """History fetch that blocks until the test resolves it."""

    def __init__(self):
        self.waiters: list[tuple[str, asyncio.Future]] = []

    async def __call__(self, me_id: str, peer_id: str) -> list[Message]:
        future = asyncio.get_running_loop().create_future()
        self.waiters.append((peer_id, future))
        return await future

    def _next(self, peer_id: str) -> asyncio.Future:
        return next(f for p, f in self.waiters if p == peer_id and not f.done())

    def resolve(self, peer_id: str, messages: list[Message]) -> None:
        self._next(peer_id).set_result(messages)

    def fail(self, peer_id: str, error: Exception) -> None:
        self._next(peer_id).set_exception(error)


async def settle(turns: int = 50) -> None:
    for _ in range(turns):
        await asyncio.sleep(0)


def wire(message_id, sender, receiver, text, **extra):
    return {"_id": message_id, "sender": sender, "receiver": receiver, "text": text,
            "createdAt": "2024-05-01T10:00:00Z", **extra}


@pytest.fixture
def factory():
    return FakeClientFactory()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def connection(factory, sleeps):
    return ConnectionManager("http://chat.test", client_factory=factory, sleep=sleeps, rand=lambda: 0.5)


@pytest.fixture
def store():
    return MessageStore()


@pytest.fixture
def session():
    return SessionContext(user=U1, token="tok-u1")
