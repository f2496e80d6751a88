"""
Sync engine — keeps the message store in step with the channel.

- Optimistic send: the message is appended locally under a provisional id,
  then published with a client-generated idempotency key. The server echo
  carrying the same key replaces the provisional entry in place.
- History fence: every conversation switch bumps a counter; a history fetch
  that resolves under an older counter value is discarded, so a slow fetch
  for room A can never overwrite room B.
- Retraction: never applied preemptively. Local and remote retractions both
  arrive as messageDeleted and go through the same idempotent store path.
- Presence: every transition into `connected` re-announces the participant
  and re-joins the open room.
"""

import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from duochat.errors import DuoChatError, FetchError, ValidationError
from duochat.models.events import C2SEvent, S2CEvent
from duochat.models.message import Message, MessageStatus, parse_message
from duochat.models.payloads import (
    DeleteMessagePayload,
    JoinRoomPayload,
    MarkAsSeenPayload,
    MessageDeletedData,
    MessageStatusData,
    PrivateMessagePayload,
)
from duochat.models.session import Participant, SessionContext
from duochat.rooms import derive_key
from duochat.store import Conversation, MessageStore
from duochat.transport.envelope import parse_payload
from duochat.transport.socketio import ConnectionManager, ConnectionState

logger = logging.getLogger(__name__)

PROVISIONAL_PREFIX = "local-"

FetchHistory = Callable[[str, str], Awaitable[list[Message]]]


class SyncEngine:
    def __init__(
        self,
        session: SessionContext,
        connection: ConnectionManager,
        store: MessageStore,
        fetch_history: FetchHistory,
        on_change: Optional[Callable[[Conversation], None]] = None,
        on_error: Optional[Callable[[DuoChatError], None]] = None,
    ):
        self._me = session.user_id
        self._conn = connection
        self._store = store
        self._fetch_history = fetch_history
        self._on_change = on_change
        self._on_error = on_error

        self._active_room_key: Optional[str] = None
        self._active_peer: Optional[Participant] = None
        self._fence = 0
        self._pending: dict[str, tuple[str, str]] = {}  # client id -> (room key, provisional id)

        self._detachers = [
            connection.subscribe(S2CEvent.NEW_MESSAGE, self.handle_new_message),
            connection.subscribe(S2CEvent.MESSAGE_DELETED, self.handle_message_deleted),
            connection.subscribe(S2CEvent.MESSAGE_STATUS, self.handle_status_update),
            connection.add_state_listener(self._on_connection_state),
            connection.add_warning_listener(self._report),
        ]

    @property
    def me(self) -> str:
        return self._me

    @property
    def active_room_key(self) -> Optional[str]:
        return self._active_room_key

    @property
    def active_peer(self) -> Optional[Participant]:
        return self._active_peer

    @property
    def fence(self) -> int:
        return self._fence

    def detach(self) -> None:
        """Drop every subscription this engine registered."""
        for detach in self._detachers:
            detach()
        self._detachers = []

    def snapshot(self, room_key: Optional[str] = None) -> Conversation:
        key = room_key or self._active_room_key
        if key is None:
            raise ValidationError("No conversation is open")
        return self._store.snapshot(key)

    # -- conversation switching -----------------------------------------------

    async def open_conversation(self, peer: Participant) -> Optional[Conversation]:
        """Make `peer` the active conversation and load its history.

        Returns the loaded snapshot, or None when the user switched away
        before the fetch resolved. Raises FetchError if the current fetch fails.
        """
        room_key = derive_key(self._me, peer.id)
        self._active_room_key = room_key
        self._active_peer = peer
        self._fence += 1
        fence = self._fence

        self._conn.publish(C2SEvent.JOIN_ROOM, JoinRoomPayload(user_id1=self._me, user_id2=peer.id))
        return await self._load(room_key, peer, fence)

    async def refresh(self) -> Optional[Conversation]:
        """Re-fetch the active conversation, e.g. after a FetchError."""
        if self._active_peer is None or self._active_room_key is None:
            raise ValidationError("No conversation is open")
        self._fence += 1
        return await self._load(self._active_room_key, self._active_peer, self._fence)

    def close_conversation(self) -> None:
        self._active_room_key = None
        self._active_peer = None
        self._fence += 1

    async def _load(self, room_key: str, peer: Participant, fence: int) -> Optional[Conversation]:
        try:
            messages = await self._fetch_history(self._me, peer.id)
        except Exception as e:
            if fence != self._fence:
                logger.debug("Discarding failed stale history fetch for %s: %s", room_key, e)
                return None
            if isinstance(e, FetchError):
                raise
            raise FetchError(f"Failed to load history with {peer.id}: {e}", details={"peer_id": peer.id}) from e

        if fence != self._fence:
            logger.debug("Discarding stale history for %s (fence %d, now %d)", room_key, fence, self._fence)
            return None

        snapshot = self._store.replace_conversation(room_key, messages, peer_id=peer.id)
        self._prune_pending(snapshot)
        self._conn.publish(C2SEvent.MARK_AS_SEEN, MarkAsSeenPayload(sender=peer.id, receiver=self._me))
        self._notify(snapshot)
        return snapshot

    # -- outbound ------------------------------------------------------------------

    def send(self, text: str, reply_target: Optional[Message] = None) -> Message:
        """Append an optimistic copy and publish it. Returns the provisional message."""
        if not text or not text.strip():
            raise ValidationError("Cannot send an empty message")
        if self._active_room_key is None or self._active_peer is None:
            raise ValidationError("No conversation is open")

        room_key = self._active_room_key
        peer_id = self._active_peer.id
        client_id = uuid.uuid4().hex
        reply = reply_target.snapshot() if reply_target is not None else None
        message = Message(
            id=f"{PROVISIONAL_PREFIX}{client_id}",
            sender=self._me,
            receiver=peer_id,
            text=text,
            reply_to=reply,
            status=MessageStatus.SENT,
            client_id=client_id,
            provisional=True,
        )
        self._pending[client_id] = (room_key, message.id)
        self._notify(self._store.append(room_key, message))

        self._conn.publish(
            C2SEvent.PRIVATE_MESSAGE,
            PrivateMessagePayload(sender=self._me, receiver=peer_id, text=text, reply_to=reply, client_id=client_id),
        )
        return message

    def retract(self, message: Message, for_everyone: bool) -> None:
        """Request a retraction. Local state changes only when the server echoes it."""
        if for_everyone and message.sender != self._me:
            raise ValidationError(
                "Only the sender can retract a message for everyone",
                details={"message_id": message.id},
            )
        if message.provisional:
            raise ValidationError(
                "Message is not confirmed by the server yet",
                details={"message_id": message.id},
            )
        self._conn.publish(
            C2SEvent.DELETE_MESSAGE,
            DeleteMessagePayload(message_id=message.id, user_id=self._me, for_everyone=for_everyone),
        )

    # -- inbound ---------------------------------------------------------------------

    def handle_new_message(self, raw: Any) -> None:
        if not isinstance(raw, dict):
            logger.warning("Ignoring non-object newMessage payload: %r", raw)
            return
        try:
            message = parse_message(raw, self._me)
        except PydanticValidationError as e:
            logger.warning("Ignoring malformed newMessage payload: %s", e.errors(include_url=False))
            return

        room_key = derive_key(message.sender, message.receiver)
        if room_key != self._active_room_key:
            logger.debug("Dropping message %s for inactive room %s", message.id, room_key)
            return

        provisional_id = None
        if message.client_id:
            _, provisional_id = self._pending.pop(message.client_id, (None, None))
        self._notify(self._store.reconcile_provisional(room_key, provisional_id, message))

        if message.sender != self._me:
            self._conn.publish(C2SEvent.MARK_AS_SEEN, MarkAsSeenPayload(sender=message.sender, receiver=self._me))

    def handle_message_deleted(self, raw: Any) -> None:
        data = parse_payload(MessageDeletedData, raw)
        if data is None:
            return
        room_key = self._room_for(data.message_id, data.sender, data.receiver)
        if room_key is None:
            logger.debug("Retraction for message %s outside loaded rooms", data.message_id)
            return
        self._notify(self._store.apply_retraction(
            room_key, data.message_id, data.for_everyone, data.user_id, self._me,
        ))

    def handle_status_update(self, raw: Any) -> None:
        data = parse_payload(MessageStatusData, raw)
        if data is None:
            return
        touched: dict[str, Conversation] = {}
        for message_id in data.message_ids:
            room_key = self._room_for(message_id, data.sender, data.receiver)
            if room_key is not None:
                touched[room_key] = self._store.advance_status(room_key, message_id, data.status)
        for snapshot in touched.values():
            self._notify(snapshot)

    def _room_for(self, message_id: str, sender: Optional[str], receiver: Optional[str]) -> Optional[str]:
        if sender and receiver:
            return derive_key(sender, receiver)
        return self._store.locate(message_id)

    # -- plumbing ----------------------------------------------------------------------

    def _on_connection_state(self, state: ConnectionState) -> None:
        if state is not ConnectionState.CONNECTED:
            return
        self._conn.publish(C2SEvent.USER_CONNECTED, self._me)
        if self._active_peer is not None:
            self._conn.publish(C2SEvent.JOIN_ROOM, JoinRoomPayload(user_id1=self._me, user_id2=self._active_peer.id))

    def _prune_pending(self, snapshot: Conversation) -> None:
        live = {m.client_id for m in snapshot.messages if m.provisional}
        self._pending = {
            client_id: entry for client_id, entry in self._pending.items()
            if entry[0] != snapshot.room_key or client_id in live
        }

    def _notify(self, snapshot: Conversation) -> None:
        if self._on_change is not None:
            self._on_change(snapshot)

    def _report(self, error: DuoChatError) -> None:
        if self._on_error is not None:
            self._on_error(error)
