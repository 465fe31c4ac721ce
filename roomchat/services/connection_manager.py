# roomchat/services/connection_manager.py

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, Optional, Set, Union

from roomchat.core.errors import DeliveryPartialFailure, InvalidInput
from roomchat.models.models import (
    ErrorFrame,
    JoinEvent,
    LeaveEvent,
    MessageEvent,
    UnknownEvent,
    WelcomeFrame,
)
from roomchat.services.broadcast_router import BroadcastRouter
from roomchat.services.room_registry import RoomRegistry, Session

logger = logging.getLogger(__name__)

DEFAULT_SEND_QUEUE_SIZE = 100

# ============================================================================
# CONNECTION ACTOR
# ============================================================================

class Connection:
    """
    Owns one WebSocket and everything written to it.

    Frames are queued with :meth:`send` and written by a dedicated writer
    task, so callers never wait on a peer's socket. The queue is bounded: a
    client that stops reading fills it and is reported as broken instead of
    growing memory without limit.

    Attributes:
        id: Connection identity used for teardown bookkeeping
        closed: Set once the socket is known to be unusable
    """

    def __init__(
        self,
        websocket: Any,
        max_queue: int = DEFAULT_SEND_QUEUE_SIZE,
        on_broken: Optional[Callable[["Connection"], None]] = None,
        connection_id: Optional[str] = None,
    ) -> None:
        self.websocket = websocket
        self.id = connection_id or uuid.uuid4().hex
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self._on_broken = on_broken
        self._writer: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.get_running_loop().create_task(self._write_loop())

    def send(self, frame: dict) -> None:
        """
        Queue a frame for delivery without waiting.

        Raises:
            DeliveryPartialFailure: the connection is closed or its queue is full
        """
        if self.closed:
            raise DeliveryPartialFailure(self.id, "connection closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            raise DeliveryPartialFailure(self.id, "send queue full") from None

    async def _write_loop(self) -> None:
        while True:
            frame = await self._queue.get()
            try:
                await self.websocket.send_json(frame)
            except Exception as e:
                logger.warning("Write to %s failed: %s", self.id, e)
                self.closed = True
                if self._on_broken is not None:
                    self._on_broken(self)
                return

    async def close(self, code: int = 1000) -> None:
        """Stop the writer and close the socket. Safe to call more than once."""
        was_closed = self.closed
        self.closed = True

        writer, self._writer = self._writer, None
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass

        if not was_closed:
            try:
                await self.websocket.close(code=code)
            except Exception as e:
                # Peer already gone; nothing left to close
                logger.debug("Close of %s ignored: %s", self.id, e)

# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Binds connections to sessions and sessions to rooms.

    Data Structures:
        connections: Maps connection id -> Connection
                     Example: {"3f2a...": <Connection>}

        sessions: Maps connection id -> the connection's active Session
                  Example: {"3f2a...": Session(display_name="Alice", room_id="ABC123")}

    Teardown:
        ``leave_room`` and ``disconnect`` both pop their bookkeeping entry
        before the first ``await``, so an explicit leave racing a dropped
        socket removes the session from the registry exactly once.

    Scaling:
        Single process only, all state in memory.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        send_queue_size: int = DEFAULT_SEND_QUEUE_SIZE,
    ) -> None:
        """Initialize connection manager with empty data structures."""
        self.registry = registry
        self.router = BroadcastRouter(registry, on_delivery_failure=self.schedule_disconnect)
        self.send_queue_size = send_queue_size

        # Map: connection id -> Connection
        self.connections: Dict[str, Connection] = {}

        # Map: connection id -> active Session
        self.sessions: Dict[str, Session] = {}

        # Metrics
        self.message_counter: int = 0

        self._background: Set[asyncio.Task] = set()

    async def connect(self, websocket: Any) -> Connection:
        """
        Accept a new WebSocket connection and start its writer.

        Note:
            The connection is not in any room yet. The client must send a
            "join" event first.
        """
        await websocket.accept()

        connection = Connection(
            websocket,
            max_queue=self.send_queue_size,
            on_broken=self.schedule_disconnect,
        )
        connection.start()
        self.connections[connection.id] = connection

        logger.info("✓ Connection %s opened. Total: %d", connection.id, len(self.connections))
        return connection

    async def handle_event(
        self,
        connection: Connection,
        event: Union[JoinEvent, MessageEvent, LeaveEvent, UnknownEvent],
    ) -> None:
        """Dispatch one parsed inbound event. Unknown events are dropped."""
        if isinstance(event, JoinEvent):
            await self.join_room(connection, event)
        elif isinstance(event, MessageEvent):
            await self.publish_message(connection, event)
        elif isinstance(event, LeaveEvent):
            await self.leave_room(connection, event)
        else:
            logger.warning("Dropped malformed frame from %s: %s", connection.id, event.reason)

    async def join_room(self, connection: Connection, event: JoinEvent) -> Optional[Session]:
        """
        Create a session for the connection and announce it to the room.

        Process:
            1. Reject if the connection already has an active session
            2. Register the session (validates name and room code)
            3. Send a "welcome" frame with the server-issued session id
            4. Broadcast a "presence" join frame to the room, joiner included
        """
        if connection.id not in self.connections:
            return None  # Connection already closed

        current = self.sessions.get(connection.id)
        if current is not None:
            self._send_error(connection, f"Already joined room {current.room_id}")
            return None

        try:
            session = self.registry.join(event.data.room, event.data.name, connection)
        except InvalidInput as e:
            self._send_error(connection, str(e))
            return None
        self.sessions[connection.id] = session

        members = self.registry.members(session.room_id)
        self._send_frame(
            connection,
            WelcomeFrame(
                session_id=session.session_id,
                name=session.display_name,
                room=session.room_id,
                members=sorted(member.display_name for member in members),
                message=f"Joined room {session.room_id} as {session.display_name}",
            ).model_dump(),
        )
        self.router.route(session, event)
        return session

    async def publish_message(self, connection: Connection, event: MessageEvent) -> int:
        """
        Broadcast a chat message to the sender's room.

        The sender name comes from the session, not from the frame.

        Returns:
            int: Number of members the message was handed to
        """
        session = self.sessions.get(connection.id)
        if session is None:
            self._send_error(connection, "Join a room before sending messages")
            return 0
        if not event.data.message.strip():
            self._send_error(connection, "Message text is required")
            return 0

        delivered = self.router.route(session, event)
        self.message_counter += 1
        return delivered

    async def leave_room(self, connection: Connection, event: Optional[LeaveEvent] = None) -> bool:
        """
        Remove the connection's session from its room.

        Idempotent: returns False when the connection had no active session.
        Remaining members receive a "presence" leave frame.
        """
        session = self.sessions.pop(connection.id, None)
        if session is None:
            return False
        if not self.registry.leave(session):
            return False

        self.router.route(session, event or LeaveEvent(type="leave"))
        return True

    async def disconnect(self, connection: Connection, code: int = 1000) -> None:
        """
        Tear a connection down: leave its room, stop its writer, close it.

        Called on a clean close, a transport error, or a failed delivery.
        Only the first call for a given connection does anything.
        """
        if self.connections.pop(connection.id, None) is None:
            return

        await self.leave_room(connection)
        await connection.close(code=code)
        logger.info("✗ Connection %s disconnected. Total: %d", connection.id, len(self.connections))

    def schedule_disconnect(self, connection: Connection) -> None:
        """Tear down a broken member in the background (used during fan-out)."""
        if connection.id not in self.connections:
            return
        task = asyncio.get_running_loop().create_task(self.disconnect(connection, code=1011))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def close(self) -> None:
        """Disconnect every connection and drop all rooms (app shutdown)."""
        for connection in list(self.connections.values()):
            await self.disconnect(connection, code=1001)
        self.registry.close()

    def _send_frame(self, connection: Connection, frame: dict) -> None:
        try:
            connection.send(frame)
        except DeliveryPartialFailure as e:
            logger.warning("Send error: %s", e)
            self.schedule_disconnect(connection)

    def _send_error(self, connection: Connection, message: str) -> None:
        logger.info("Rejected event from %s: %s", connection.id, message)
        self._send_frame(connection, ErrorFrame(message=message).model_dump())
