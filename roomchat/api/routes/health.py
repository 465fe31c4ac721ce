# roomchat/api/routes/health.py

from fastapi import APIRouter, Depends

from roomchat.api.routes.utils import get_state
from roomchat.core.state import AppState

router = APIRouter()

@router.get("/health")
async def health(state: AppState = Depends(get_state)):
    """
    Health check endpoint.

    Returns current system status, connection counts, and room counts.

    Returns:
        dict: Status, connection count, session count, active room count
    """
    return {
        "status": "healthy",
        "connections": len(state.connection_manager.connections),
        "sessions": len(state.connection_manager.sessions),
        "rooms": len(state.registry),
    }
