# roomchat/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the service and where to connect.
    """
    return {
        "message": "roomchat - room-based real-time messaging",
        "version": "1.0",
        "protocol": "JSON frames over WebSocket: join / message / leave",
        "features": ["implicit_rooms", "presence_events", "broadcast", "idempotent_teardown"],
        "endpoints": {
            "websocket": ["/", "/ws"],
            "rooms": "/rooms",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
