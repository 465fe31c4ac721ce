# roomchat/core/errors.py

from __future__ import annotations


class RoomChatError(Exception):
    """Base class for every error raised by roomchat."""


class InvalidInput(RoomChatError):
    """Rejected user input (blank name, room code or message text)."""


class InvalidName(InvalidInput):
    pass


class InvalidRoom(InvalidInput):
    pass


class ChatConnectionError(RoomChatError):
    """The client could not open (or lost) its connection to the server."""


class MalformedFrame(RoomChatError):
    """A received frame is not a valid protocol envelope."""

    def __init__(self, reason: str, raw: str | bytes = "") -> None:
        super().__init__(reason)
        self.reason = reason
        self.raw = raw


class DeliveryPartialFailure(RoomChatError):
    """One member of a room could not be reached during a broadcast."""

    def __init__(self, connection_id: str, reason: str) -> None:
        super().__init__(f"delivery to {connection_id} failed: {reason}")
        self.connection_id = connection_id
        self.reason = reason
