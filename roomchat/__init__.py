"""roomchat - room-based real-time messaging over WebSocket."""

__version__ = "1.0.0"
