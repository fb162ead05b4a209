from chatfeed.models.base import Base
from chatfeed.models.chat import Chat
from chatfeed.models.message import ChatMessage

__all__ = [
    "Base",
    "Chat",
    "ChatMessage",
]
