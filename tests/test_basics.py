"""Basic unit tests for the duochat package."""

from duochat import (
    AsyncDuoChat,
    DuoChat,
    DuoChatError,
    ValidationError,
    ConnectionError,
    FetchError,
    AuthError,
    HttpError,
    C2SEvent,
    S2CEvent,
    __version__,
)


def test_version():
    assert __version__ == "0.1.0"


def test_public_exports():
    assert DuoChat is not None
    assert AsyncDuoChat is not None


def test_error_hierarchy():
    for cls in (ValidationError, ConnectionError, FetchError, AuthError, HttpError):
        assert issubclass(cls, DuoChatError)


def test_error_attributes():
    err = DuoChatError(code="test_code", message="something broke")
    assert err.code == "test_code"
    assert str(err) == "something broke"
    assert err.details is None

    fetch = FetchError("history down", details={"peer_id": "u2"})
    assert fetch.code == "fetch_error"
    assert fetch.details == {"peer_id": "u2"}

    http = HttpError(503, "HTTP 503: unavailable")
    assert http.status == 503
    assert http.details == {"status": 503}


def test_event_constants():
    assert C2SEvent.PRIVATE_MESSAGE == "privateMessage"
    assert C2SEvent.JOIN_ROOM == "joinRoom"
    assert S2CEvent.NEW_MESSAGE == "newMessage"
    assert S2CEvent.MESSAGE_DELETED == "messageDeleted"


def test_facade_requires_connect():
    client = AsyncDuoChat(access_token="t")
    try:
        client.send("hi")
    except ConnectionError as e:
        assert e.code == "connection_error"
    else:
        raise AssertionError("send before connect should fail")
