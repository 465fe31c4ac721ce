# roomchat/services/room_registry.py

from __future__ import annotations

import enum
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Set

from roomchat.core.errors import InvalidName, InvalidRoom

logger = logging.getLogger(__name__)

DEFAULT_ROOM_ID_MAX_LENGTH = 32


def normalize_room_id(room_id: str, max_length: int = DEFAULT_ROOM_ID_MAX_LENGTH) -> str:
    """
    Trim and upper-case a room code.

    Raises:
        InvalidRoom: empty after trimming, or longer than ``max_length``.
    """
    normalized = (room_id or "").strip().upper()
    if not normalized:
        raise InvalidRoom("Room code is required")
    if len(normalized) > max_length:
        raise InvalidRoom(f"Room code must be at most {max_length} characters")
    return normalized


class SessionStatus(str, enum.Enum):
    JOINING = "joining"
    ACTIVE = "active"
    LEFT = "left"


@dataclass(eq=False)
class Session:
    """
    Server-side record binding one connection to one room and display name.

    Sessions compare by identity; ``session_id`` is issued here and is the
    only identity clients should rely on (display names may collide).
    """
    connection: Any
    display_name: str
    room_id: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: SessionStatus = SessionStatus.JOINING
    joined_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE


# ============================================================================
# ROOM REGISTRY
# ============================================================================
class RoomRegistry:
    """
    Process-wide mapping of room code -> active sessions.

    Rooms are never created explicitly: the first join creates the entry and
    the last leave deletes it, so a room exists iff it has at least one
    active member. Two clients that generated the same room code simply end
    up in the same room.

    Every read-modify-write of a member set happens under ``_lock`` so that
    concurrent joins/leaves cannot double-count or double-remove a session.

    Attributes:
        max_room_length: longest accepted room code after normalization

    Usage:
        registry = RoomRegistry()
        session = registry.join("abc123", "Alice", connection)
        registry.members("ABC123")   # frozenset({session})
        registry.leave(session)
    """

    def __init__(self, max_room_length: int = DEFAULT_ROOM_ID_MAX_LENGTH) -> None:
        """Start with no rooms."""
        self.max_room_length = max_room_length
        self._rooms: Dict[str, Set[Session]] = {}
        self._lock = threading.Lock()

    def join(self, room_id: str, display_name: str, connection: Any) -> Session:
        """
        Add a new active session for ``connection`` to a room.

        Args:
            room_id: Room code, normalized to upper case
            display_name: Member name, trimmed
            connection: Transport handle the router delivers to

        Returns:
            Session: The newly active session

        Raises:
            InvalidName: name is blank
            InvalidRoom: room code is blank or too long
        """
        name = (display_name or "").strip()
        if not name:
            raise InvalidName("Name is required")
        normalized = normalize_room_id(room_id, self.max_room_length)

        session = Session(connection=connection, display_name=name, room_id=normalized)
        with self._lock:
            members = self._rooms.setdefault(normalized, set())
            members.add(session)
            session.status = SessionStatus.ACTIVE
            count = len(members)

        logger.info("→ %s joined '%s' (%d members)", name, normalized, count)
        return session

    def leave(self, session: Session) -> bool:
        """
        Remove a session from its room, deleting the room once empty.

        Idempotent: leaving twice is a no-op the second time.

        Returns:
            True if the session was removed by this call
        """
        with self._lock:
            members = self._rooms.get(session.room_id)
            removed = members is not None and session in members
            if removed:
                members.discard(session)
                if not members:
                    del self._rooms[session.room_id]
            session.status = SessionStatus.LEFT
            remaining = len(members) if members else 0

        if removed:
            logger.info("← %s left '%s' (%d members)", session.display_name, session.room_id, remaining)
        return removed

    def members(self, room_id: str) -> FrozenSet[Session]:
        """
        Snapshot of the active sessions in a room.

        Unknown rooms, and codes that could never name a room, yield an
        empty set rather than an error.
        """
        try:
            normalized = normalize_room_id(room_id, self.max_room_length)
        except InvalidRoom:
            return frozenset()
        with self._lock:
            return frozenset(self._rooms.get(normalized, ()))

    def rooms(self) -> Dict[str, int]:
        """Room code -> member count for every live room."""
        with self._lock:
            return {room_id: len(members) for room_id, members in self._rooms.items()}

    def close(self) -> None:
        """Drop every room and mark all their sessions as left."""
        with self._lock:
            for members in self._rooms.values():
                for session in members:
                    session.status = SessionStatus.LEFT
            dropped = len(self._rooms)
            self._rooms.clear()
        logger.info("Room registry closed (%d rooms dropped)", dropped)

    def __contains__(self, room_id: object) -> bool:
        if not isinstance(room_id, str):
            return False
        return bool(self.members(room_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)
