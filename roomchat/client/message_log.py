# roomchat/client/message_log.py

from __future__ import annotations

import time
from typing import Callable, Iterator, List, NamedTuple, Optional, Tuple

from roomchat.models.models import EVERYONE, Message

YOU = "You"


class MessageGroup(NamedTuple):
    own: bool
    sender: str
    messages: Tuple[Message, ...]


class MessageLog:
    """
    Append-only list of messages in the order this client received them.

    There is no resequencing: two other members' messages appear in whatever
    order they arrived here. Timestamps are taken locally at append time and
    never go backwards within one log.

    Ownership ("is this mine?") is decided by the server-issued session id.
    Display names are only compared for frames that carry no sender id,
    which is where two members sharing a name could be confused.
    """

    def __init__(self, owner_name: str = "", clock: Callable[[], float] = time.time) -> None:
        self.owner_name = owner_name
        self.owner_id: Optional[str] = None
        self._clock = clock
        self._messages: List[Message] = []
        self._last_timestamp = 0.0

    def append(
        self,
        text: str,
        sender: str,
        receiver: str = EVERYONE,
        sender_id: Optional[str] = None,
        message_id: Optional[str] = None,
        kind: str = "chat",
        local: bool = False,
    ) -> Message:
        timestamp = max(self._clock(), self._last_timestamp)
        self._last_timestamp = timestamp
        message = Message(
            text=text,
            sender=sender,
            receiver=receiver or EVERYONE,
            timestamp=timestamp,
            sender_id=sender_id,
            message_id=message_id,
            kind=kind,
            local=local,
        )
        self._messages.append(message)
        return message

    def is_own(self, message: Message) -> bool:
        if message.local:
            return True
        if message.kind != "chat":
            return False
        if message.sender_id is not None:
            return self.owner_id is not None and message.sender_id == self.owner_id
        return message.sender == self.owner_name

    def label(self, message: Message) -> str:
        return YOU if self.is_own(message) else message.sender

    def groups(self) -> List[MessageGroup]:
        """Consecutive messages from the same sender, for rendering."""
        groups: List[MessageGroup] = []
        for message in self._messages:
            own = self.is_own(message)
            key = message.sender_id or message.sender
            if groups:
                last = groups[-1]
                last_key = last.messages[-1].sender_id or last.messages[-1].sender
                if last.own == own and (own or last_key == key):
                    groups[-1] = last._replace(messages=last.messages + (message,))
                    continue
            groups.append(MessageGroup(own, self.label(message), (message,)))
        return groups

    def clear(self) -> None:
        self._messages.clear()

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)
