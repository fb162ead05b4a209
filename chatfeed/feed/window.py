"""
Message window state and page merging.

Pages arrive newest first (that is how the store pages backwards). The
window is kept oldest first for display, unique by message ID.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from chatfeed.core.time import to_millis
from chatfeed.schemas.message import Message


def merge_messages(*batches: Iterable[Message]) -> List[Message]:
    """
    Union of the batches by message ID, sorted ascending by send time.

    Later batches win: a copy seen later replaces the earlier copy of the same
    ID. The sort is stable, so equal send times keep their first-seen order.
    """
    by_id: Dict[str, Message] = {}
    for batch in batches:
        for message in batch:
            by_id[message.id] = message
    return sorted(by_id.values(), key=lambda m: to_millis(m.timestamp))


@dataclass
class MessageWindow:
    page_size: int
    messages: List[Message] = field(default_factory=list)
    cursor: Optional[Message] = None
    has_more: bool = True
    loading_older: bool = False
    initial_loaded: bool = False

    def reset(self) -> None:
        self.messages = []
        self.cursor = None
        self.has_more = True
        self.loading_older = False
        self.initial_loaded = False

    def apply_latest(self, page: Sequence[Message]) -> None:
        """Merge a live delivery of the newest page (newest first)."""
        self.messages = merge_messages(self.messages, reversed(page))
        self.cursor = page[-1] if page else None
        self.has_more = len(page) == self.page_size

    def apply_older(self, page: Sequence[Message]) -> None:
        """Merge a page fetched behind the cursor (newest first)."""
        if not page:
            self.has_more = False
            return
        self.messages = merge_messages(self.messages, reversed(page))
        self.cursor = page[-1]
        self.has_more = len(page) == self.page_size

    def can_load_older(self) -> bool:
        return self.has_more and self.cursor is not None and not self.loading_older

    def __len__(self) -> int:
        return len(self.messages)

    def ids(self) -> List[str]:
        return [m.id for m in self.messages]
