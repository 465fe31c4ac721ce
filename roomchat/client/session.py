# roomchat/client/session.py

from __future__ import annotations

import asyncio
import enum
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from roomchat.client.message_log import MessageLog
from roomchat.core.config import settings
from roomchat.core.errors import ChatConnectionError, MalformedFrame
from roomchat.models.models import (
    EVERYONE,
    ErrorFrame,
    Message,
    MessageFrame,
    PresenceFrame,
    WelcomeFrame,
    decode_server_frame,
)

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class ClientState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    JOINING = "joining"
    JOINED = "joined"
    LEFT = "left"


# ============================================================================
# CLIENT SESSION
# ============================================================================

class ChatClient:
    """
    UI-independent client for one room session.

    Lifecycle:
        Disconnected --submit(name, room)--> Joining --open--> Joined
        Joined --leave()--> Left
        any --connection lost--> Left

    ``leave()`` and a lost connection go through the same teardown, which
    runs once: exactly one leave notification is attempted per session.

    The rendering layer reads ``state``, ``room``, ``name``, ``members`` and
    ``messages`` and drives the session with ``submit``, ``send`` and
    ``leave``. ``on_message`` is called for every message appended to the log
    from the network; ``on_state_change`` for every state transition.

    Sent messages are shown immediately (optimistic copy) and tagged with a
    client-generated id; the server's echo of that id is dropped.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        connect: Optional[Connector] = None,
        on_message: Optional[Callable[[Message], None]] = None,
        on_state_change: Optional[Callable[[ClientState], None]] = None,
    ) -> None:
        self.url = url or settings.SERVER_URL
        self._connect: Connector = connect or websockets.connect
        self.on_message = on_message
        self.on_state_change = on_state_change

        self._state = ClientState.DISCONNECTED
        self._name = ""
        self._room = ""
        self._session_id: Optional[str] = None
        self._members: List[str] = []
        self._pending: Set[str] = set()
        self.log = MessageLog()
        self.last_error: Optional[str] = None

        self._ws: Any = None
        self._reader: Optional[asyncio.Task] = None
        self._torn_down = True

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def name(self) -> str:
        return self._name

    @property
    def room(self) -> str:
        return self._room

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def members(self) -> Tuple[str, ...]:
        return tuple(self._members)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.log.messages

    def _set_state(self, state: ClientState) -> None:
        if state is self._state:
            return
        logger.debug("Session state %s -> %s", self._state.value, state.value)
        self._state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    # -------------------------------------------------------------- commands

    async def submit(self, name: str, room: str) -> bool:
        """
        Connect and join ``room`` as ``name``.

        Blank input is rejected locally: nothing is sent and the state does
        not change.

        Returns:
            True once joined, False if the input was rejected

        Raises:
            ChatConnectionError: the connection could not be opened; the
                session is back to Disconnected and the form can be retried
        """
        name = (name or "").strip()
        room = (room or "").strip().upper()
        if not name or not room:
            logger.debug("Join rejected: name and room are required")
            return False
        if self._state not in (ClientState.DISCONNECTED, ClientState.LEFT):
            logger.warning("Join ignored while %s", self._state.value)
            return False

        self._name, self._room = name, room
        self._session_id = None
        self._members = []
        self._pending.clear()
        self.last_error = None
        self.log = MessageLog(owner_name=name)
        self._set_state(ClientState.JOINING)

        try:
            ws = await self._connect(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self._set_state(ClientState.DISCONNECTED)
            raise ChatConnectionError(f"Could not connect to {self.url}: {e}") from e

        try:
            await ws.send(json.dumps(self._membership_frame("join")))
        except (ConnectionClosed, OSError) as e:
            await self._close_quietly(ws)
            self._set_state(ClientState.DISCONNECTED)
            raise ChatConnectionError(f"Connection to {self.url} lost while joining: {e}") from e

        self._ws = ws
        self._torn_down = False
        self._set_state(ClientState.JOINED)
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(ws))
        logger.info("Joined room %s as %s", room, name)
        return True

    async def send(self, text: str, receiver: str = EVERYONE) -> Optional[Message]:
        """
        Send a chat message to the room.

        The message is appended to the log before it is sent. Blank text,
        or a session that is not joined, makes this a no-op.

        Returns:
            The optimistic local copy, or None if nothing was sent
        """
        if self._state is not ClientState.JOINED or not (text or "").strip():
            return None

        message_id = uuid.uuid4().hex
        message = self.log.append(
            text,
            self._name,
            receiver,
            sender_id=self._session_id,
            message_id=message_id,
            local=True,
        )
        self._pending.add(message_id)

        frame = {
            "type": "message",
            "data": {"message": text, "name": self._name, "receiver": receiver, "id": message_id},
        }
        try:
            await self._ws.send(json.dumps(frame))
        except (ConnectionClosed, OSError) as e:
            logger.warning("Message not sent, connection lost: %s", e)
            await self._teardown()
            return None
        return message

    async def leave(self) -> None:
        """Tell the room we are leaving, close the connection, drop local state."""
        await self._teardown()

    # -------------------------------------------------------------- internals

    def _membership_frame(self, kind: str) -> dict:
        return {"type": kind, "data": {"name": self._name, "message": [], "room": self._room}}

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.info("Connection closed by server: %s", e)
        except OSError as e:
            logger.warning("Connection error: %s", e)
        except Exception as e:
            logger.error("Reader stopped on unexpected error: %s", e, exc_info=True)
        finally:
            await self._teardown()

    def _handle_frame(self, raw: Any) -> None:
        try:
            frame = decode_server_frame(raw)
        except MalformedFrame as e:
            logger.warning("Dropped malformed frame: %s", e.reason)
            return

        if isinstance(frame, WelcomeFrame):
            self._session_id = frame.session_id
            self.log.owner_id = frame.session_id
            self._members = list(frame.members)
            return

        if isinstance(frame, ErrorFrame):
            logger.warning("Server rejected request: %s", frame.message)
            self.last_error = frame.message
            return

        if isinstance(frame, PresenceFrame):
            self._members = list(frame.members)
            message = self.log.append(frame.message, frame.sender, frame.receiver, kind="presence")
        else:
            if frame.id is not None and frame.id in self._pending:
                # Echo of our own optimistic copy
                self._pending.discard(frame.id)
                return
            message = self.log.append(
                frame.message,
                frame.sender,
                frame.receiver,
                sender_id=frame.sender_id,
                message_id=frame.id,
            )

        if self.on_message is not None:
            self.on_message(message)

    async def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True

        ws, self._ws = self._ws, None
        reader, self._reader = self._reader, None
        self._set_state(ClientState.LEFT)

        try:
            await ws.send(json.dumps(self._membership_frame("leave")))
        except (ConnectionClosed, OSError) as e:
            logger.debug("Leave notification not delivered: %s", e)
        await self._close_quietly(ws)

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        self._session_id = None
        self._members = []
        self._pending.clear()
        self.log.clear()
        logger.info("Left room %s", self._room)

    @staticmethod
    async def _close_quietly(ws: Any) -> None:
        try:
            await ws.close()
        except (ConnectionClosed, OSError) as e:
            logger.debug("Close failed: %s", e)
