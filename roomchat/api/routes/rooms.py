# roomchat/api/routes/rooms.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from roomchat.api.routes.utils import get_state
from roomchat.core.errors import InvalidRoom
from roomchat.core.state import AppState
from roomchat.models.models import MemberInfo, RoomInfo
from roomchat.services.room_registry import normalize_room_id

router = APIRouter()

# ============================================================================
# ROOM ENDPOINTS (read-only: rooms are created by joining)
# ============================================================================

@router.get("/rooms", response_model=List[RoomInfo])
async def list_rooms(state: AppState = Depends(get_state)):
    """
    List all rooms that currently have members.

    Returns:
        List[RoomInfo]: Room codes with their member counts
    """
    return [
        RoomInfo(room_id=room_id, member_count=count)
        for room_id, count in sorted(state.registry.rooms().items())
    ]


@router.get("/rooms/{room_id}", response_model=RoomInfo)
async def get_room(room_id: str, state: AppState = Depends(get_state)):
    """
    Get the current membership of a room.

    An unknown room is simply empty; it is not an error.

    Raises:
        HTTPException: 400 if the room code can never be valid
    """
    try:
        normalized = normalize_room_id(room_id, state.registry.max_room_length)
    except InvalidRoom as e:
        raise HTTPException(status_code=400, detail=str(e))

    members = sorted(state.registry.members(normalized), key=lambda s: (s.joined_at, s.session_id))
    return RoomInfo(
        room_id=normalized,
        member_count=len(members),
        members=[MemberInfo(session_id=s.session_id, name=s.display_name) for s in members],
    )
