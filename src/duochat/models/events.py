"""
Channel event names.
"""


class C2SEvent:
    """Client → server."""
    USER_CONNECTED = "userConnected"
    JOIN_ROOM = "joinRoom"
    PRIVATE_MESSAGE = "privateMessage"
    DELETE_MESSAGE = "deleteMessage"
    MARK_AS_SEEN = "markAsSeen"


class S2CEvent:
    """Server → client."""
    NEW_MESSAGE = "newMessage"
    MESSAGE_DELETED = "messageDeleted"
    MESSAGE_STATUS = "messageStatus"


# Socket.IO lifecycle events; never dispatched to subscribers.
RESERVED_EVENTS = {"connect", "disconnect", "connect_error"}
