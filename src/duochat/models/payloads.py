"""
Typed channel payloads. One model per event, fixed field set.

Outbound models are serialized by alias (camelCase on the wire); inbound
models reject payloads missing required fields rather than propagating them.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, model_validator

from duochat.models.message import MessageStatus, ReplySnapshot


class _Payload(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}


# -- client → server ---------------------------------------------------------

class JoinRoomPayload(_Payload):
    user_id1: str = Field(alias="userId1")
    user_id2: str = Field(alias="userId2")


class PrivateMessagePayload(_Payload):
    sender: str
    receiver: str
    text: str
    reply_to: Optional[ReplySnapshot] = Field(default=None, alias="replyTo")
    client_id: str = Field(alias="clientId")


class DeleteMessagePayload(_Payload):
    message_id: str = Field(alias="messageId")
    user_id: str = Field(alias="userId")
    for_everyone: bool = Field(alias="forEveryone")


class MarkAsSeenPayload(_Payload):
    sender: str
    receiver: str


# -- server → client ---------------------------------------------------------

class MessageDeletedData(_Payload):
    message_id: str = Field(alias="messageId")
    for_everyone: bool = Field(default=False, alias="forEveryone")
    user_id: str = Field(alias="userId")
    sender: Optional[str] = None
    receiver: Optional[str] = None


class MessageStatusData(_Payload):
    message_ids: list[str] = Field(default_factory=list, validation_alias=AliasChoices("messageIds", "message_ids"))
    status: MessageStatus
    sender: Optional[str] = None
    receiver: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _single_id(cls, data):
        if isinstance(data, dict) and "messageId" in data:
            data = {**data, "messageIds": [data["messageId"], *(data.get("messageIds") or [])]}
        return data

    @model_validator(mode="after")
    def _require_ids(self):
        if not self.message_ids:
            raise ValueError("messageStatus requires messageId or messageIds")
        return self
