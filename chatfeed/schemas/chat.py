"""
Conversation Schemas
"""

from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

KEY_SEPARATOR = "_"


def validate_user_id(user_id: str) -> str:
    """
    User IDs take part in conversation keys, so they must not contain the
    key separator: otherwise ("a_b", "c") and ("a", "b_c") share a key.
    """
    if not user_id:
        raise ValueError("User ID is required")
    if KEY_SEPARATOR in user_id:
        raise ValueError(f"User ID cannot contain {KEY_SEPARATOR!r}: {user_id}")
    return user_id


def chat_key(user_a: str, user_b: str) -> str:
    """Deterministic conversation key: the sorted participant pair."""
    pair = sorted((validate_user_id(user_a), validate_user_id(user_b)))
    return KEY_SEPARATOR.join(pair)


class Conversation(BaseModel):
    model_config = ConfigDict(frozen=True)

    chat_id: str
    participants: Tuple[str, str]

    @model_validator(mode="after")
    def key_matches_participants(self) -> "Conversation":
        if self.chat_id != chat_key(*self.participants):
            raise ValueError("Chat ID does not belong to these participants")
        return self

    @classmethod
    def between(cls, user_a: str, user_b: str) -> "Conversation":
        chat_id = chat_key(user_a, user_b)
        return cls(chat_id=chat_id, participants=tuple(sorted((user_a, user_b))))

    def peer_of(self, user_id: str) -> str:
        a, b = self.participants
        return b if a == user_id else a


class ChatPreview(BaseModel):
    """Conversation list entry, built from the chat metadata record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    participants: List[str]
    last_message: Optional[str] = None
    updated_at: Optional[datetime] = None
