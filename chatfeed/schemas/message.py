"""
Message Schemas
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Message(BaseModel):
    """A message as seen by readers (store pages, feed window, API)."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    text: str = ""
    image_url: Optional[str] = None
    sender_id: str
    deleted: bool = False
    edited: bool = False
    timestamp: Optional[datetime] = None


class MessageCreate(BaseModel):
    """Either trimmed non-empty text or an uploaded image reference."""

    model_config = ConfigDict(extra="forbid")

    text: Optional[str] = Field(default=None, max_length=10000)
    image_url: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def require_content(self) -> "MessageCreate":
        text = (self.text or "").strip()
        if not text and not self.image_url:
            raise ValueError("Message needs text or an image")
        self.text = text
        return self


class MessageEdit(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = Field(..., min_length=1, max_length=10000)


class MessagePage(BaseModel):
    """One page of history, ascending, with the cursor for the next older page."""

    messages: List[Message] = []
    has_more: bool = False
    cursor: Optional[str] = None
