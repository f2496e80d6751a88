"""
duochat — client SDK for DuoChat one-to-one messaging.

Socket.IO + REST client with an optimistic message sync engine.
"""

from duochat.client import DuoChat, AsyncDuoChat
from duochat.auth import Auth
from duochat.users import UsersAPI
from duochat.errors import DuoChatError, ValidationError, ConnectionError, FetchError, AuthError, HttpError
from duochat.models.events import C2SEvent, S2CEvent
from duochat.models.message import Message, MessageStatus, DeletionView, ReplySnapshot
from duochat.models.session import Participant, SessionContext
from duochat.rooms import derive_key
from duochat.store import Conversation, MessageStore
from duochat.sync import SyncEngine
from duochat.transport.socketio import ConnectionManager, ConnectionState

__version__ = "0.1.0"
__all__ = [
    "DuoChat",
    "AsyncDuoChat",
    "Auth",
    "UsersAPI",
    "DuoChatError",
    "ValidationError",
    "ConnectionError",
    "FetchError",
    "AuthError",
    "HttpError",
    "C2SEvent",
    "S2CEvent",
    "Message",
    "MessageStatus",
    "DeletionView",
    "ReplySnapshot",
    "Participant",
    "SessionContext",
    "derive_key",
    "Conversation",
    "MessageStore",
    "SyncEngine",
    "ConnectionManager",
    "ConnectionState",
]
