"""
Socket.IO connection manager.

Owns the one authenticated channel of a session. Exposes lifecycle state and
a per-event publish/subscribe surface; carries no business logic.

States: disconnected → connecting → connected → {closing, reconnecting}
→ connected | disconnected. Unexpected disconnects are retried with
exponential backoff until close() is called.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import socketio

from duochat.errors import ConnectionError, DuoChatError
from duochat.models.events import RESERVED_EVENTS
from duochat.transport.envelope import build_payload

logger = logging.getLogger(__name__)

SOCKETIO_PATH = "/socket.io/"
DEFAULT_TRANSPORTS = ["websocket", "polling"]

BACKOFF_BASE_S = 1.0
BACKOFF_CAP_S = 30.0
BACKOFF_JITTER = 0.2


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    RECONNECTING = "reconnecting"


def backoff_delay(
    attempt: int,
    base: float = BACKOFF_BASE_S,
    cap: float = BACKOFF_CAP_S,
    jitter: float = BACKOFF_JITTER,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay before reconnect attempt `attempt` (0-based): base·2^n ±jitter, never above cap."""
    delay = min(cap, base * (2 ** attempt))
    return min(cap, delay * (1 + jitter * (2 * rand() - 1)))


class ConnectionHandle:
    """One logical channel. Survives reconnects; replaced only by a new connect()."""

    __slots__ = ("generation", "token", "client")

    def __init__(self, generation: int, token: str):
        self.generation = generation
        self.token = token
        self.client: Any = None

    @property
    def sid(self) -> Optional[str]:
        return getattr(self.client, "sid", None)

    def __repr__(self) -> str:
        return f"ConnectionHandle(generation={self.generation}, sid={self.sid!r})"


class ConnectionManager:
    def __init__(
        self,
        base_url: str,
        transports: Optional[list[str]] = None,
        connect_timeout: float = 15.0,
        backoff_base: float = BACKOFF_BASE_S,
        backoff_cap: float = BACKOFF_CAP_S,
        backoff_jitter: float = BACKOFF_JITTER,
        client_factory: Optional[Callable[[], Any]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        self._base_url = base_url
        self._transports = transports or DEFAULT_TRANSPORTS
        self._connect_timeout = connect_timeout
        self._backoff = (backoff_base, backoff_cap, backoff_jitter)
        # Reconnection is driven here, not by the Socket.IO client.
        self._client_factory = client_factory or (lambda: socketio.AsyncClient(reconnection=False))
        self._sleep = sleep
        self._rand = rand

        self._state = ConnectionState.DISCONNECTED
        self._handle: Optional[ConnectionHandle] = None
        self._generation = 0
        self._reconnect_task: Optional[asyncio.Task] = None
        self._emits: set[asyncio.Future] = set()

        self._subscribers: dict[str, list[Callable[[Any], None]]] = {}
        self._state_listeners: list[Callable[[ConnectionState], None]] = []
        self._warning_listeners: list[Callable[[DuoChatError], None]] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def handle(self) -> Optional[ConnectionHandle]:
        return self._handle

    # -- listeners -------------------------------------------------------------

    def subscribe(self, event_name: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Add a handler for one event name. Handlers run in registration order.
        Returns a cleanup function."""
        handlers = self._subscribers.setdefault(event_name, [])
        handlers.append(handler)
        return _remover(handlers, handler)

    def add_state_listener(self, listener: Callable[[ConnectionState], None]) -> Callable[[], None]:
        self._state_listeners.append(listener)
        return _remover(self._state_listeners, listener)

    def add_warning_listener(self, listener: Callable[[DuoChatError], None]) -> Callable[[], None]:
        self._warning_listeners.append(listener)
        return _remover(self._warning_listeners, listener)

    # -- lifecycle ---------------------------------------------------------------

    async def connect(self, token: str) -> ConnectionHandle:
        """Open the channel. A live handle is closed first, never leaked."""
        if self._handle is not None:
            self._set_state(ConnectionState.CLOSING)
            await self._release(self._handle)
            self._set_state(ConnectionState.DISCONNECTED)

        self._generation += 1
        handle = ConnectionHandle(self._generation, token)
        self._handle = handle
        self._set_state(ConnectionState.CONNECTING)
        try:
            await self._open(handle)
        except Exception as e:
            if self._handle is handle:
                self._handle = None
                self._set_state(ConnectionState.DISCONNECTED)
            raise ConnectionError(f"Failed to connect to {self._base_url}: {e}") from e

        if self._handle is not handle:
            await _disconnect_quietly(handle.client)
            raise ConnectionError("Connection attempt superseded by a newer connect()")

        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connected to %s (sid=%s)", self._base_url, handle.sid)
        return handle

    async def close(self) -> None:
        """Explicit teardown. No callbacks fire afterward."""
        if self._handle is None:
            self._set_state(ConnectionState.DISCONNECTED)
            return
        self._set_state(ConnectionState.CLOSING)
        await self._release(self._handle)
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Channel closed")

    async def _open(self, handle: ConnectionHandle) -> None:
        client = self._client_factory()
        handle.client = client

        async def on_any(event: str, *args: Any) -> None:
            if handle is not self._handle or handle.client is not client:
                return
            if event in RESERVED_EVENTS:
                return
            self._dispatch(event, args[0] if args else None)

        async def on_disconnect(*_args: Any) -> None:
            if handle is self._handle and handle.client is client:
                self._on_unexpected_disconnect(handle)

        client.on("*", on_any)
        client.on("disconnect", on_disconnect)

        await client.connect(
            self._base_url,
            auth={"token": handle.token},
            transports=self._transports,
            socketio_path=SOCKETIO_PATH,
            wait_timeout=self._connect_timeout,
        )

    async def _release(self, handle: ConnectionHandle) -> None:
        self._handle = None
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
        await _disconnect_quietly(handle.client)

    def _on_unexpected_disconnect(self, handle: ConnectionHandle) -> None:
        if self._state in (ConnectionState.CLOSING, ConnectionState.DISCONNECTED):
            return
        logger.warning("Channel dropped unexpectedly; reconnecting")
        self._set_state(ConnectionState.RECONNECTING)
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.ensure_future(self._reconnect(handle))

    async def _reconnect(self, handle: ConnectionHandle) -> None:
        attempt = 0
        while self._handle is handle:
            base, cap, jitter = self._backoff
            await self._sleep(backoff_delay(attempt, base, cap, jitter, self._rand))
            if self._handle is not handle:
                return
            try:
                await self._open(handle)
            except Exception as e:
                attempt += 1
                logger.warning("Reconnect attempt %d failed: %s", attempt, e)
                continue
            if self._handle is not handle:
                await _disconnect_quietly(handle.client)
                return
            self._reconnect_task = None
            self._set_state(ConnectionState.CONNECTED)
            logger.info("Reconnected after %d failed attempt(s) (sid=%s)", attempt, handle.sid)
            return

    # -- traffic -----------------------------------------------------------------

    def publish(self, event_name: str, payload: Any) -> bool:
        """Emit an event. Returns False if the channel is not connected.

        Nothing is queued: a dropped publish is surfaced to warning listeners
        as a ConnectionError and logged.
        """
        handle = self._handle
        if self._state is not ConnectionState.CONNECTED or handle is None:
            warning = ConnectionError(
                f"Dropped {event_name}: channel is {self._state.value}",
                details={"event": event_name},
            )
            logger.warning(str(warning))
            for listener in list(self._warning_listeners):
                listener(warning)
            return False

        client = handle.client
        data = build_payload(payload)

        async def _do_emit() -> None:
            try:
                await client.emit(event_name, data)
            except Exception as e:
                logger.error("Emit failed for %s: %s", event_name, e)

        try:
            loop = asyncio.get_running_loop()
            future = loop.create_task(_do_emit())
        except RuntimeError:
            future = asyncio.ensure_future(_do_emit())
        self._emits.add(future)
        future.add_done_callback(self._emits.discard)
        return True

    async def flush(self) -> None:
        """Wait for every scheduled emit to finish."""
        if self._emits:
            await asyncio.gather(*list(self._emits), return_exceptions=True)

    def _dispatch(self, event_name: str, data: Any) -> None:
        for handler in list(self._subscribers.get(event_name, ())):
            try:
                handler(data)
            except Exception:
                logger.exception("Handler for %s raised", event_name)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug("Connection state %s -> %s", self._state.value, state.value)
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener raised on %s", state.value)


def _remover(items: list, item: Any) -> Callable[[], None]:
    def remove() -> None:
        try:
            items.remove(item)
        except ValueError:
            pass
    return remove


async def _disconnect_quietly(client: Any) -> None:
    if client is None or not getattr(client, "connected", False):
        return
    try:
        await client.disconnect()
    except Exception as e:
        logger.warning("Error while disconnecting: %s", e)
