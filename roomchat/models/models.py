# roomchat/models/models.py
from __future__ import annotations

import json
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from roomchat.core.errors import MalformedFrame

SYSTEM_SENDER = "System"
EVERYONE = "Everyone"

# ============================================================================
# CLIENT -> SERVER EVENTS
# ============================================================================

class JoinData(BaseModel):
    name: str
    room: str
    message: list = Field(default_factory=list)

class LeaveData(BaseModel):
    name: str = ""
    room: str = ""
    message: list = Field(default_factory=list)

class MessageData(BaseModel):
    message: str
    name: str = ""
    receiver: Optional[str] = None
    id: Optional[str] = None

class JoinEvent(BaseModel):
    type: Literal["join"]
    data: JoinData

class MessageEvent(BaseModel):
    type: Literal["message"]
    data: MessageData

class LeaveEvent(BaseModel):
    type: Literal["leave"]
    data: LeaveData = Field(default_factory=LeaveData)

class UnknownEvent(BaseModel):
    """Anything that failed to parse. Never routed, only logged."""
    type: Literal["unknown"] = "unknown"
    reason: str
    raw: str = ""

ChatEvent = Annotated[Union[JoinEvent, MessageEvent, LeaveEvent], Field(discriminator="type")]

_event_adapter: TypeAdapter = TypeAdapter(ChatEvent)


def decode_event(raw: str | bytes) -> Union[JoinEvent, MessageEvent, LeaveEvent]:
    """
    Decode one inbound frame into a typed event.

    Raises:
        MalformedFrame: invalid JSON, unknown ``type`` or missing fields.
    """
    try:
        return _event_adapter.validate_json(raw)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        reason = f"{location}: {first['msg']}" if location else first["msg"]
        raise MalformedFrame(reason, raw) from e


def parse_event(raw: str | bytes) -> Union[JoinEvent, MessageEvent, LeaveEvent, UnknownEvent]:
    """Like :func:`decode_event`, but folds failures into an ``UnknownEvent``."""
    try:
        return decode_event(raw)
    except MalformedFrame as e:
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        return UnknownEvent(reason=e.reason, raw=text[:200])

# ============================================================================
# SERVER -> CLIENT FRAMES
# ============================================================================
# Every frame carries "sender" and "message" so minimal clients that only
# read those two keys still render something sensible.

class MessageFrame(BaseModel):
    type: Literal["message"] = "message"
    id: Optional[str] = None
    sender: str
    sender_id: Optional[str] = None
    message: str
    receiver: str = EVERYONE
    room: Optional[str] = None

class WelcomeFrame(BaseModel):
    type: Literal["welcome"] = "welcome"
    session_id: str
    name: str
    room: str
    members: List[str] = Field(default_factory=list)
    sender: str = SYSTEM_SENDER
    message: str = ""

class PresenceFrame(BaseModel):
    type: Literal["presence"] = "presence"
    event: Literal["join", "leave"]
    name: str
    session_id: str
    room: str
    members: List[str] = Field(default_factory=list)
    sender: str = SYSTEM_SENDER
    message: str = ""
    receiver: str = EVERYONE

class ErrorFrame(BaseModel):
    type: Literal["error"] = "error"
    sender: str = SYSTEM_SENDER
    message: str

ServerFrame = Annotated[
    Union[MessageFrame, WelcomeFrame, PresenceFrame, ErrorFrame], Field(discriminator="type")
]

_frame_adapter: TypeAdapter = TypeAdapter(ServerFrame)


def decode_server_frame(raw: str | bytes) -> Union[MessageFrame, WelcomeFrame, PresenceFrame, ErrorFrame]:
    """
    Decode a frame received by the client.

    Frames without a ``type`` key are plain chat messages, and a missing or
    empty ``receiver`` means "Everyone".

    Raises:
        MalformedFrame: the frame is not a JSON object or fails validation.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedFrame(f"invalid JSON: {e.msg}", raw) from e
    except UnicodeDecodeError as e:
        raise MalformedFrame(f"frame is not UTF-8: {e.reason}", raw) from e
    if not isinstance(data, dict):
        raise MalformedFrame("frame is not a JSON object", raw)

    data.setdefault("type", "message")
    if data["type"] == "message" and not data.get("receiver"):
        data["receiver"] = EVERYONE
    try:
        return _frame_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedFrame(e.errors()[0]["msg"], raw) from e

# ============================================================================
# CLIENT-SIDE MESSAGE LOG ENTRY
# ============================================================================

class Message(BaseModel):
    """One rendered line of the client log. Immutable once constructed."""
    model_config = ConfigDict(frozen=True)

    text: str
    sender: str
    receiver: str = EVERYONE
    timestamp: float
    sender_id: Optional[str] = None
    message_id: Optional[str] = None
    kind: Literal["chat", "presence"] = "chat"
    local: bool = False

# ============================================================================
# REST RESPONSES
# ============================================================================

class MemberInfo(BaseModel):
    session_id: str
    name: str

class RoomInfo(BaseModel):
    room_id: str
    member_count: int = 0
    members: List[MemberInfo] = Field(default_factory=list)
