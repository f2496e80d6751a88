"""
AsyncDuoChat / DuoChat — main SDK clients.

One instance per authenticated session: it owns the REST client, the single
channel, the message store and the sync engine. disconnect() is the explicit
teardown on logout.
"""

import asyncio
from typing import Any, Callable, Optional

from duochat.auth import Auth
from duochat.errors import ConnectionError, DuoChatError
from duochat.history import HistoryAPI
from duochat.models.message import Message
from duochat.models.session import Participant, SessionContext
from duochat.store import Conversation, MessageStore
from duochat.sync import SyncEngine
from duochat.transport.http import DEFAULT_BASE_URL, HttpClient
from duochat.transport.socketio import ConnectionManager, ConnectionState
from duochat.users import UsersAPI


class AsyncDuoChat:
    """Async DuoChat client (primary)."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        user: Optional[Participant] = None,
        base_url: str = DEFAULT_BASE_URL,
        transports: Optional[list[str]] = None,
        connect_timeout: float = 15.0,
        on_change: Optional[Callable[[Conversation], None]] = None,
        on_error: Optional[Callable[[DuoChatError], None]] = None,
        connection: Optional[ConnectionManager] = None,
        http: Optional[HttpClient] = None,
    ):
        self._base_url = base_url
        self._access_token = access_token
        self._user = user
        self._on_change = on_change
        self._on_error = on_error

        self.http = http or HttpClient(base_url=base_url, token=access_token)
        self.auth = Auth(self.http)
        self.users = UsersAPI(self.http)
        self.history = HistoryAPI(self.http)

        self._conn = connection or ConnectionManager(
            base_url, transports=transports, connect_timeout=connect_timeout,
        )
        self._store: Optional[MessageStore] = None
        self._engine: Optional[SyncEngine] = None

    @classmethod
    def from_session(cls, session: SessionContext, **kwargs: Any) -> "AsyncDuoChat":
        if session.base_url and "base_url" not in kwargs:
            kwargs["base_url"] = session.base_url
        return cls(access_token=session.token, user=session.user, **kwargs)

    @property
    def connected(self) -> bool:
        return self._conn.connected

    @property
    def state(self) -> ConnectionState:
        return self._conn.state

    @property
    def session(self) -> Optional[SessionContext]:
        if not self._access_token or self._user is None:
            return None
        return SessionContext(user=self._user, token=self._access_token, base_url=self._base_url)

    @property
    def engine(self) -> SyncEngine:
        self._ensure_engine()
        return self._engine  # type: ignore[return-value]

    async def login(self, email: str, password: str) -> SessionContext:
        session = await self.auth.login(email, password)
        self._access_token = session.token
        self._user = session.user
        return session

    async def connect(self, access_token: Optional[str] = None, user: Optional[Participant] = None) -> None:
        token = access_token or self._access_token
        me = user or self._user
        if not token or me is None:
            raise ConnectionError("access_token and user required. Run auth flow first.")
        self._access_token = token
        self._user = me
        self.http.set_token(token)

        if self._engine is None or self._engine.me != me.id:
            if self._engine is not None:
                self._engine.detach()
            self._store = MessageStore()
            self._engine = SyncEngine(
                SessionContext(user=me, token=token, base_url=self._base_url),
                self._conn,
                self._store,
                self.history.fetch,
                on_change=self._on_change,
                on_error=self._on_error,
            )
        await self._conn.connect(token)

    async def disconnect(self) -> None:
        await self._conn.close()
        if self._engine is not None:
            self._engine.detach()
            self._engine = None
            self._store = None

    async def aclose(self) -> None:
        await self.disconnect()
        await self.http.close()

    async def list_peers(self) -> list[Participant]:
        if self._user is None:
            raise ConnectionError("Not logged in.")
        return await self.users.list_peers(self._user.id)

    async def open_conversation(self, peer: Participant) -> Optional[Conversation]:
        """Open (or switch to) the conversation with `peer`."""
        self._ensure_engine()
        return await self._engine.open_conversation(peer)  # type: ignore[union-attr]

    async def refresh(self) -> Optional[Conversation]:
        self._ensure_engine()
        return await self._engine.refresh()  # type: ignore[union-attr]

    def close_conversation(self) -> None:
        self._ensure_engine()
        self._engine.close_conversation()  # type: ignore[union-attr]

    def send(self, text: str, reply_to: Optional[Message] = None) -> Message:
        """Send to the open conversation (optimistic, fire-and-forget)."""
        self._ensure_engine()
        return self._engine.send(text, reply_to)  # type: ignore[union-attr]

    def retract(self, message: Message, for_everyone: bool = False) -> None:
        self._ensure_engine()
        self._engine.retract(message, for_everyone)  # type: ignore[union-attr]

    async def flush(self) -> None:
        """Wait until published events have been handed to the transport."""
        await self._conn.flush()

    def messages(self, room_key: Optional[str] = None) -> Conversation:
        """Snapshot of the open (or given) conversation."""
        self._ensure_engine()
        return self._engine.snapshot(room_key)  # type: ignore[union-attr]

    def _ensure_engine(self) -> None:
        if self._engine is None:
            raise ConnectionError("Not connected. Call connect() first.")


class DuoChat:
    """Sync wrapper around AsyncDuoChat. Runs the event loop internally."""

    def __init__(self, **kwargs: Any):
        self._loop = asyncio.new_event_loop()
        self._async = AsyncDuoChat(**kwargs)

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def auth(self) -> Auth:
        return self._async.auth

    @property
    def users(self) -> UsersAPI:
        return self._async.users

    @property
    def connected(self) -> bool:
        return self._async.connected

    def login(self, email: str, password: str) -> SessionContext:
        return self._run(self._async.login(email, password))

    def connect(self, **kwargs: Any) -> None:
        self._run(self._async.connect(**kwargs))

    def disconnect(self) -> None:
        self._run(self._async.disconnect())

    def close(self) -> None:
        self._run(self._async.aclose())
        self._loop.close()

    def list_peers(self) -> list[Participant]:
        return self._run(self._async.list_peers())

    def open_conversation(self, peer: Participant) -> Optional[Conversation]:
        return self._run(self._async.open_conversation(peer))

    def send(self, text: str, reply_to: Optional[Message] = None) -> Message:
        async def _send() -> Message:
            message = self._async.send(text, reply_to)
            await self._async.flush()
            return message
        return self._run(_send())

    def retract(self, message: Message, for_everyone: bool = False) -> None:
        async def _retract() -> None:
            self._async.retract(message, for_everyone)
            await self._async.flush()
        self._run(_retract())

    def messages(self, room_key: Optional[str] = None) -> Conversation:
        return self._async.messages(room_key)
