# roomchat/core/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from roomchat.core.config import Settings
from roomchat.services.connection_manager import ConnectionManager
from roomchat.services.room_registry import RoomRegistry


@dataclass
class AppState:
    """Everything one running application owns. Built by ``create_app``."""
    registry: RoomRegistry
    connection_manager: ConnectionManager
    app_start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppState":
        registry = RoomRegistry(max_room_length=settings.ROOM_ID_MAX_LENGTH)
        connection_manager = ConnectionManager(registry, send_queue_size=settings.SEND_QUEUE_SIZE)
        return cls(registry=registry, connection_manager=connection_manager)

    async def shutdown(self) -> None:
        await self.connection_manager.close()
