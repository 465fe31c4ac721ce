# roomchat/api/routes/metrics.py
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from roomchat.api.routes.utils import get_state
from roomchat.core.state import AppState

router = APIRouter()

@router.get("/metrics")
async def get_metrics(state: AppState = Depends(get_state)):
    """
    Usage metrics endpoint.

    Returns:
        dict: Message statistics (total routed, messages/sec since start)
              and capacity (connections, sessions, rooms, largest room)
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    manager = state.connection_manager

    if uptime_seconds > 0:
        messages_per_second = manager.message_counter / uptime_seconds
    else:
        messages_per_second = 0

    rooms = state.registry.rooms()

    return {
        # Statistics
        "total_messages": manager.message_counter,
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "messages_per_second": round(messages_per_second, 2),

        # Capacity
        "concurrent_connections": len(manager.connections),
        "active_sessions": len(manager.sessions),
        "active_rooms": len(rooms),
        "largest_room_members": max(rooms.values(), default=0),
    }
