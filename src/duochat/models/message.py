"""
Message model — the per-conversation record the store holds.

Messages are frozen: every store mutation swaps in a copy, so a snapshot
handed to the UI never changes underneath it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


class MessageStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    SEEN = "seen"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def precedes(self, other: "MessageStatus") -> bool:
        return self.rank < other.rank


_STATUS_RANK = {MessageStatus.SENT: 0, MessageStatus.DELIVERED: 1, MessageStatus.SEEN: 2}


class DeletionView(str, Enum):
    VISIBLE = "visible"
    TOMBSTONED = "tombstoned"            # retracted for everyone, text cleared
    HIDDEN_FOR_VIEWER = "hiddenForViewer"  # retracted for me only


class ReplySnapshot(BaseModel):
    """Copy of the quoted message taken at send time. Not a live reference."""
    sender: str
    text: str

    model_config = {"frozen": True}


class Message(BaseModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    sender: str
    receiver: str
    text: str = ""
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        validation_alias=AliasChoices("createdAt", "created_at"),
    )
    reply_to: Optional[ReplySnapshot] = Field(default=None, validation_alias=AliasChoices("replyTo", "reply_to"))
    status: MessageStatus = MessageStatus.SENT
    deletion_view: DeletionView = DeletionView.VISIBLE
    client_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("clientId", "client_id"))
    provisional: bool = False

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

    @property
    def is_tombstoned(self) -> bool:
        return self.deletion_view is DeletionView.TOMBSTONED

    @property
    def is_hidden(self) -> bool:
        return self.deletion_view is DeletionView.HIDDEN_FOR_VIEWER

    def snapshot(self) -> ReplySnapshot:
        return ReplySnapshot(sender=self.sender, text=self.text)


def resolve_deletion_view(raw: dict[str, Any], viewer_id: str) -> DeletionView:
    """Map the server's retraction flags onto the local viewer's view.

    deletedForMe is already scoped to whoever requested the history;
    deletedFor lists every participant who retracted the message for themselves.
    """
    if raw.get("deletedForEveryone"):
        return DeletionView.TOMBSTONED
    if raw.get("deletedForMe") or viewer_id in (raw.get("deletedFor") or []):
        return DeletionView.HIDDEN_FOR_VIEWER
    return DeletionView.VISIBLE


def parse_message(raw: dict[str, Any], viewer_id: str) -> Message:
    """Build a server-confirmed Message from a wire record. Raises pydantic.ValidationError."""
    view = resolve_deletion_view(raw, viewer_id)
    message = Message.model_validate(raw)
    update: dict[str, Any] = {"deletion_view": view, "provisional": False}
    if view is DeletionView.TOMBSTONED:
        update["text"] = ""
    return message.model_copy(update=update)
