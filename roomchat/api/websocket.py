# roomchat/api/websocket.py

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from roomchat.api.routes.utils import get_state
from roomchat.models.models import parse_event

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/")
@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for room chat.

    Protocol:
    =========

    Client -> Server Events:
    ------------------------
    Join Room:
        {"type": "join", "data": {"name": "Alice", "message": [], "room": "ABC123"}}
        Response: {"type": "welcome", "session_id": "...", "room": "ABC123", "members": [...]}
        Broadcast: {"type": "presence", "event": "join", "name": "Alice", ...}

    Send Message:
        {"type": "message", "data": {"message": "hi", "name": "Alice", "receiver": "Everyone", "id": "..."}}
        Broadcast: {"type": "message", "sender": "Alice", "sender_id": "...", "message": "hi", ...}

    Leave Room:
        {"type": "leave", "data": {"name": "Alice", "message": [], "room": "ABC123"}}
        Broadcast (remaining members): {"type": "presence", "event": "leave", ...}

    Server -> Client Errors:
    ------------------------
        {"type": "error", "sender": "System", "message": "..."}

    Lifecycle:
    ==========
    1. Connection accepted, writer task started
    2. Client sends "join" with name and room code
    3. Client sends "message" events, fanned out to the whole room
    4. Client sends "leave" and/or closes the socket
    5. On close the session is removed from its room exactly once

    Error Handling:
        - Unparsable frames: logged and dropped, the connection stays up
        - Invalid join / message: error frame to the sender only
        - Connection errors: cleanup and log
    """
    manager = get_state(websocket).connection_manager
    connection = await manager.connect(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            # Binary frames are accepted too; parse_event rejects non-JSON
            data = message.get("text") or message.get("bytes") or ""
            event = parse_event(data)
            logger.debug("Websocket input from %s: %s", connection.id, event.type)
            await manager.handle_event(connection, event)

    except WebSocketDisconnect:
        await manager.disconnect(connection)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        await manager.disconnect(connection, code=1011)
