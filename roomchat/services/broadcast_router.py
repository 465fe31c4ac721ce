# roomchat/services/broadcast_router.py

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Union

from roomchat.core.errors import DeliveryPartialFailure
from roomchat.models.models import (
    EVERYONE,
    JoinEvent,
    LeaveEvent,
    MessageEvent,
    MessageFrame,
    PresenceFrame,
)
from roomchat.services.room_registry import RoomRegistry, Session

logger = logging.getLogger(__name__)

RoutableEvent = Union[JoinEvent, MessageEvent, LeaveEvent]

# ============================================================================
# BROADCAST ROUTER
# ============================================================================

class BroadcastRouter:
    """
    Fans an event out to every active member of the sender's room.

    The sender is included: clients reconcile their own optimistic copy by
    message id. Delivery only enqueues onto each member connection, so a slow
    or dead member never holds up the others. A member that cannot take the
    frame is reported through ``on_delivery_failure``, which is expected to
    schedule that member's teardown rather than perform it inline.

    Ordering: frames from one sender reach each member in the order they were
    routed. Frames from different senders carry no relative ordering.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        on_delivery_failure: Optional[Callable[[object], None]] = None,
    ) -> None:
        self.registry = registry
        self.on_delivery_failure = on_delivery_failure

    def route(self, session: Session, event: RoutableEvent) -> int:
        """
        Deliver ``event`` to the current membership of ``session``'s room.

        For a leave, the session has already been removed from the registry,
        so only the remaining members are told.

        Returns:
            int: Number of members the frame was handed to
        """
        members = self.registry.members(session.room_id)
        frame = self.build_frame(session, event, members)
        return self.deliver(members, frame)

    def build_frame(self, session: Session, event: RoutableEvent, members: Iterable[Session]) -> dict:
        names = sorted(member.display_name for member in members)

        if isinstance(event, MessageEvent):
            return MessageFrame(
                id=event.data.id,
                sender=session.display_name,
                sender_id=session.session_id,
                message=event.data.message,
                receiver=(event.data.receiver or "").strip() or EVERYONE,
                room=session.room_id,
            ).model_dump(exclude_none=True)

        if isinstance(event, JoinEvent):
            presence, text = "join", f"{session.display_name} joined the room"
        else:
            presence, text = "leave", f"{session.display_name} left the room"
        return PresenceFrame(
            event=presence,
            name=session.display_name,
            session_id=session.session_id,
            room=session.room_id,
            members=names,
            message=text,
        ).model_dump()

    def deliver(self, members: Iterable[Session], frame: dict) -> int:
        delivered = 0
        for member in members:
            connection = member.connection
            try:
                connection.send(frame)
            except DeliveryPartialFailure as e:
                logger.warning("Send error: %s", e)
                if self.on_delivery_failure is not None:
                    self.on_delivery_failure(connection)
                continue
            delivered += 1

        logger.debug("📨 Routed %s frame: %d clients", frame.get("type"), delivered)
        return delivered
