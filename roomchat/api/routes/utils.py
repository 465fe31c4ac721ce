# roomchat/api/routes/utils.py

from __future__ import annotations

from fastapi.requests import HTTPConnection

from roomchat.core.state import AppState


def get_state(conn: HTTPConnection) -> AppState:
    """
    Dependency returning the application's state container.

    Works for both HTTP requests and WebSocket connections, since the state
    is attached to the app by ``create_app``.
    """
    return conn.app.state.chat
