# roomchat/core/config.py
import os
from typing import List
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - HOST / PORT the address uvicorn binds to
        - SEND_QUEUE_SIZE the outbound frame queue bound per connection
        - ROOM_ID_MAX_LENGTH the longest accepted room code (after normalization)
        - CORS_ORIGINS comma-separated list of allowed origins
        - SERVER_URL the WebSocket URL the client session dials by default
    """

    # Load environment variables from the .env file
    load_dotenv()

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8080"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    SEND_QUEUE_SIZE: int = int(os.getenv("SEND_QUEUE_SIZE", "100"))
    ROOM_ID_MAX_LENGTH: int = int(os.getenv("ROOM_ID_MAX_LENGTH", "32"))

    CORS_ORIGINS: List[str] = [
        origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
    ]

    SERVER_URL: str = os.getenv("SERVER_URL", "ws://localhost:8080")

settings = Settings()
