from roomchat.client.message_log import MessageLog
from roomchat.client.room_code import generate_room_id
from roomchat.client.session import ChatClient, ClientState

__all__ = ["ChatClient", "ClientState", "MessageLog", "generate_room_id"]
