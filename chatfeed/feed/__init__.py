from chatfeed.feed.feed import MessageFeed, log_reporter
from chatfeed.feed.viewport import ContentTracker, ScrollAnchor, Viewport
from chatfeed.feed.window import MessageWindow, merge_messages

__all__ = [
    "MessageFeed",
    "MessageWindow",
    "merge_messages",
    "ContentTracker",
    "ScrollAnchor",
    "Viewport",
    "log_reporter",
]
