"""
Message store — per-room ordered message lists plus derived view state.

No network awareness. Every mutation returns the updated Conversation
snapshot and never blocks. Only the sync engine mutates the store.

Ordering is arrival order: messages are appended as they are received and
never re-sorted by created_at.
"""

import logging
from datetime import timedelta
from typing import Iterator, Optional, Sequence

from duochat.models.message import DeletionView, Message, MessageStatus

logger = logging.getLogger(__name__)

# Retractions never reverse: a merge keeps the stronger view.
_VIEW_STRENGTH = {
    DeletionView.VISIBLE: 0,
    DeletionView.HIDDEN_FOR_VIEWER: 1,
    DeletionView.TOMBSTONED: 2,
}

# History rows carry no idempotency key. A row confirms a pending send when
# the content matches and it was stored no earlier than this before the send.
CONFIRM_WINDOW = timedelta(minutes=5)


class Conversation:
    """Immutable snapshot of one room."""

    __slots__ = ("room_key", "peer_id", "messages")

    def __init__(self, room_key: str, messages: Sequence[Message] = (), peer_id: Optional[str] = None):
        self.room_key = room_key
        self.peer_id = peer_id
        self.messages: tuple[Message, ...] = tuple(messages)

    @property
    def visible(self) -> tuple[Message, ...]:
        """Messages to render, tombstones included, hidden-for-viewer excluded."""
        return tuple(m for m in self.messages if not m.is_hidden)

    def find(self, message_id: str) -> Optional[Message]:
        for m in self.messages:
            if m.id == message_id:
                return m
        return None

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def __repr__(self) -> str:
        return f"Conversation(room_key={self.room_key!r}, messages={len(self.messages)})"


def _stronger_view(a: DeletionView, b: DeletionView) -> DeletionView:
    return a if _VIEW_STRENGTH[a] >= _VIEW_STRENGTH[b] else b


def _higher_status(a: MessageStatus, b: MessageStatus) -> MessageStatus:
    return b if a.precedes(b) else a


def _confirms(row: Message, pending: Message) -> bool:
    return (
        row.client_id is None
        and row.sender == pending.sender
        and row.receiver == pending.receiver
        and row.text == pending.text
        and row.created_at >= pending.created_at - CONFIRM_WINDOW
    )


def _merge(existing: Message, incoming: Message) -> Message:
    """Fold a server record over what is already rendered, never regressing."""
    view = _stronger_view(existing.deletion_view, incoming.deletion_view)
    update = {
        "status": _higher_status(existing.status, incoming.status),
        "deletion_view": view,
        "reply_to": existing.reply_to or incoming.reply_to,
        "client_id": incoming.client_id or existing.client_id,
        "provisional": False,
    }
    if view is DeletionView.TOMBSTONED:
        update["text"] = ""
    return incoming.model_copy(update=update)


class MessageStore:
    def __init__(self) -> None:
        self._rooms: dict[str, list[Message]] = {}
        self._peers: dict[str, str] = {}
        self._index: dict[str, str] = {}  # message id -> room key

    def rooms(self) -> list[str]:
        return list(self._rooms)

    def snapshot(self, room_key: str) -> Conversation:
        return Conversation(room_key, self._rooms.get(room_key, ()), self._peers.get(room_key))

    def locate(self, message_id: str) -> Optional[str]:
        """Room key holding `message_id`, if any loaded conversation has it."""
        return self._index.get(message_id)

    def replace_conversation(
        self, room_key: str, messages: Sequence[Message], peer_id: Optional[str] = None,
    ) -> Conversation:
        """Authoritative overwrite after a history fetch.

        Records already rendered keep their higher status and stronger deletion
        view. A provisional entry is dropped once a history row confirms it,
        either by idempotency key or, for rows without one, by content (see
        `_confirms`); unconfirmed provisionals are kept at the tail.
        """
        current = self._rooms.get(room_key, [])
        by_id = {m.id: m for m in current if not m.provisional}
        confirmed_client_ids = {m.client_id for m in messages if m.client_id}
        pending = [m for m in current if m.provisional and m.client_id not in confirmed_client_ids]

        entries = []
        for row in messages:
            if row.id in by_id:
                entries.append(_merge(by_id[row.id], row))
                continue
            match = next((p for p in pending if _confirms(row, p)), None)
            if match is None:
                entries.append(row)
            else:
                pending.remove(match)
                entries.append(_merge(match, row))
        entries += pending

        for m in current:
            if self._index.get(m.id) == room_key:
                del self._index[m.id]
        self._rooms[room_key] = entries
        for m in entries:
            self._index[m.id] = room_key
        if peer_id is not None:
            self._peers[room_key] = peer_id
        return self.snapshot(room_key)

    def append(self, room_key: str, message: Message) -> Conversation:
        """Insert at the tail. A message whose id or client id is already present is ignored."""
        entries = self._rooms.setdefault(room_key, [])
        if self._position(entries, message.id, message.client_id) is not None:
            logger.debug("Ignoring duplicate message %s in %s", message.id, room_key)
            return self.snapshot(room_key)
        entries.append(message)
        self._index[message.id] = room_key
        return self.snapshot(room_key)

    def reconcile_provisional(
        self, room_key: str, provisional_id: Optional[str], server_message: Message,
    ) -> Conversation:
        """Swap the provisional entry for the server-confirmed one, in place.

        Falls back to matching by idempotency key, then by server id; appends
        if nothing matches. If the server id is already rendered elsewhere
        (history got there first), that entry absorbs the echo and the
        provisional is removed.
        """
        entries = self._rooms.setdefault(room_key, [])
        pos = self._position(entries, provisional_id, None) if provisional_id else None
        if pos is None:
            pos = self._position(entries, server_message.id, server_message.client_id)
        if pos is None:
            return self.append(room_key, server_message)

        existing = entries[pos]
        dup = self._position(entries, server_message.id, None)
        if dup is not None and dup != pos:
            del entries[pos]
            if dup > pos:
                dup -= 1
            entries[dup] = _merge(entries[dup], server_message)
            logger.debug("Folded provisional %s into rendered %s", existing.id, server_message.id)
        else:
            entries[pos] = _merge(existing, server_message)
        if existing.id != server_message.id and self._index.get(existing.id) == room_key:
            del self._index[existing.id]
        self._index[server_message.id] = room_key
        return self.snapshot(room_key)

    def apply_retraction(
        self,
        room_key: str,
        message_id: str,
        for_everyone: bool,
        requesting_viewer_id: str,
        local_viewer_id: str,
    ) -> Conversation:
        """Tombstone for everyone, or hide for the requester only. Idempotent."""
        entries = self._rooms.get(room_key, [])
        pos = self._position(entries, message_id, None)
        if pos is None:
            logger.debug("Retraction for unknown message %s in %s", message_id, room_key)
            return self.snapshot(room_key)

        message = entries[pos]
        if for_everyone:
            if message.is_tombstoned:
                return self.snapshot(room_key)
            entries[pos] = message.model_copy(update={"deletion_view": DeletionView.TOMBSTONED, "text": ""})
        elif requesting_viewer_id == local_viewer_id and message.deletion_view is DeletionView.VISIBLE:
            entries[pos] = message.model_copy(update={"deletion_view": DeletionView.HIDDEN_FOR_VIEWER})
        return self.snapshot(room_key)

    def advance_status(self, room_key: str, message_id: str, new_status: MessageStatus) -> Conversation:
        """Move status forward in sent < delivered < seen; anything else is rejected."""
        entries = self._rooms.get(room_key, [])
        pos = self._position(entries, message_id, None)
        if pos is None:
            return self.snapshot(room_key)
        message = entries[pos]
        if message.status.precedes(new_status):
            entries[pos] = message.model_copy(update={"status": new_status})
        else:
            logger.debug("Rejected status %s -> %s for %s", message.status.value, new_status.value, message_id)
        return self.snapshot(room_key)

    @staticmethod
    def _position(entries: list[Message], message_id: Optional[str], client_id: Optional[str]) -> Optional[int]:
        for i, m in enumerate(entries):
            if message_id is not None and m.id == message_id:
                return i
            if client_id is not None and m.client_id == client_id:
                return i
        return None
