"""
Chat metadata - denormalized conversation index used for list previews
"""
from typing import Optional

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chatfeed.models.base import Base, TimestampMixin


class Chat(Base, TimestampMixin):
    """
    Keyed by the conversation key. Participants are stored as the sorted
    pair so "all chats of a user" is a two-column lookup.
    """

    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    participant_a: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    participant_b: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    last_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_chats_participant_a", "participant_a"),
        Index("idx_chats_participant_b", "participant_b"),
    )

    @property
    def participants(self) -> list[str]:
        return [p for p in (self.participant_a, self.participant_b) if p]

    @participants.setter
    def participants(self, value: list[str]) -> None:
        pair = sorted(value)
        self.participant_a = pair[0] if pair else None
        self.participant_b = pair[1] if len(pair) > 1 else None
