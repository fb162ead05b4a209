"""
Windowed Message Feed

Keeps a live, ascending, duplicate-free window over one conversation:
- a live subscription merges every newest-page delivery
- load_older() pages backwards from the cursor and keeps the viewer anchored
- send/edit/delete go through ChatService and never touch the window; the
  live subscription brings the result back

All state is owned by one feed instance and mutated on the event loop only.
Failures of asynchronous calls go to the reporter and leave the window as it
was.
"""

import asyncio
from contextlib import suppress
from typing import Callable, List, Optional

from chatfeed.core.config import settings
from chatfeed.core.errors import PermissionDeniedError, ValidationError
from chatfeed.core.logging import get_logger
from chatfeed.feed.viewport import (
    ContentTracker,
    ScrollAnchor,
    Viewport,
    is_near_bottom,
    is_near_top,
)
from chatfeed.feed.window import MessageWindow
from chatfeed.schemas.chat import Conversation
from chatfeed.schemas.message import Message
from chatfeed.services.chat_service import ChatService

logger = get_logger(__name__)

Reporter = Callable[[str, Exception], None]


def log_reporter(operation: str, exc: Exception) -> None:
    logger.error(f"Message feed {operation} failed: {exc!r}")


class MessageFeed:
    def __init__(
        self,
        service: ChatService,
        user_id: str,
        *,
        viewport: Optional[Viewport] = None,
        reporter: Optional[Reporter] = None,
        page_size: Optional[int] = None,
        load_older_timeout: Optional[float] = None,
        near_bottom_threshold: Optional[float] = None,
        near_top_threshold: Optional[float] = None,
    ):
        if not user_id:
            raise ValueError("A feed needs the caller's user ID")

        self.service = service
        self.store = service.store
        self.user_id = user_id
        self.viewport = viewport
        self.reporter = reporter or log_reporter

        self.window = MessageWindow(page_size or settings.page_size)
        self.content = ContentTracker()
        self.conversation: Optional[Conversation] = None
        self.draft = ""

        self.load_older_timeout = load_older_timeout or settings.load_older_timeout
        self.near_bottom_threshold = (
            near_bottom_threshold
            if near_bottom_threshold is not None
            else settings.near_bottom_threshold
        )
        self.near_top_threshold = (
            near_top_threshold
            if near_top_threshold is not None
            else settings.near_top_threshold
        )

        self._subscription = None
        self._layout_task: Optional[asyncio.Task] = None
        # Bumped on every open/close; callbacks from older generations are dropped
        self._generation = 0

    async def __aenter__(self) -> "MessageFeed":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def messages(self) -> List[Message]:
        return list(self.window.messages)

    @property
    def has_more(self) -> bool:
        return self.window.has_more

    @property
    def loading_older(self) -> bool:
        return self.window.loading_older

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    async def open(self, conversation: Conversation) -> None:
        """
        Switch to `conversation`: tear down the previous subscription, clear
        the window, and subscribe to the newest page.
        """
        if self.user_id not in conversation.participants:
            raise PermissionDeniedError("Not a participant of this chat")

        await self.close()
        self._generation += 1
        generation = self._generation

        self.conversation = conversation
        self.window.reset()
        self.content.reset()

        async def on_page(page: List[Message]) -> None:
            await self._on_latest(generation, page)

        def on_error(exc: Exception) -> None:
            if generation == self._generation:
                self._report("subscription", exc)

        try:
            self._subscription = await self.store.subscribe_latest(
                conversation.chat_id, self.window.page_size, on_page, on_error
            )
        except Exception as e:
            self._report("subscribe", e)
            return

        logger.debug(f"Feed for {self.user_id} opened chat {conversation.chat_id}")

    async def close(self) -> None:
        """Stop live updates. The window keeps its last-known-good contents."""
        self._generation += 1
        self.window.loading_older = False

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

        task, self._layout_task = self._layout_task, None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    async def _on_latest(self, generation: int, page: List[Message]) -> None:
        if generation != self._generation:
            return

        # Measured before the new page is laid out
        pinned = is_near_bottom(self.viewport, self.near_bottom_threshold)
        first = not self.window.initial_loaded

        self.window.apply_latest(page)
        self.window.initial_loaded = True

        if first or pinned:
            smooth = not first
            self._schedule_layout(lambda viewport: viewport.scroll_to_bottom(smooth))

    # ------------------------------------------------------------------
    # Backward pagination
    # ------------------------------------------------------------------

    async def load_older(self) -> bool:
        """
        Fetch and merge the page behind the cursor. Returns True when a page
        was merged; every guard miss is a no-op that returns False.
        """
        if self.conversation is None or not self.window.can_load_older():
            return False

        generation = self._generation
        chat_id = self.conversation.chat_id
        cursor = self.window.cursor
        anchor = ScrollAnchor.capture(self.viewport) if self.viewport is not None else None

        self.window.loading_older = True
        try:
            page = await asyncio.wait_for(
                self.store.fetch_older(chat_id, cursor, self.window.page_size),
                timeout=self.load_older_timeout,
            )
        except Exception as e:
            if generation == self._generation:
                self._report("load_older", e)
            return False
        finally:
            if generation == self._generation:
                self.window.loading_older = False

        if generation != self._generation:
            return False

        self.window.apply_older(page)
        if not page:
            return False

        if anchor is not None:
            self._schedule_layout(anchor.restore)
        return True

    async def on_scroll(self) -> bool:
        """Scroll handler: page backwards once the viewer nears the top."""
        if not is_near_top(self.viewport, self.near_top_threshold):
            return False
        if not self.window.can_load_older():
            return False
        return await self.load_older()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def send(
        self, text: Optional[str] = None, image_url: Optional[str] = None
    ) -> Optional[Message]:
        """
        Send text or an uploaded image; with neither, send the draft. The
        window is left alone, the live subscription picks the message up.
        """
        if self.conversation is None:
            self._report("send", ValidationError("No conversation is open"))
            return None

        if text is None and image_url is None:
            text = self.draft

        try:
            message = await self.service.send_message(
                self.conversation, self.user_id, text=text, image_url=image_url
            )
        except Exception as e:
            self._report("send", e)
            return None

        self.draft = ""
        return message

    async def edit(self, message_id: str, text: str) -> bool:
        if self.conversation is None:
            return False
        try:
            await self.service.edit_message(self.conversation, self.user_id, message_id, text)
        except Exception as e:
            self._report("edit", e)
            return False
        return True

    async def delete(self, message_id: str) -> bool:
        if self.conversation is None:
            return False
        try:
            await self.service.delete_message(self.conversation, self.user_id, message_id)
        except Exception as e:
            self._report("delete", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _schedule_layout(self, action: Callable[[Viewport], None]) -> None:
        """Run `action` on the viewport once pending content has settled."""
        if self.viewport is None:
            return
        previous = self._layout_task
        if previous is not None and not previous.done():
            previous.cancel()
        self._layout_task = asyncio.create_task(self._run_layout(action))

    async def _run_layout(self, action: Callable[[Viewport], None]) -> None:
        await self.content.ready()
        if self.viewport is not None:
            action(self.viewport)

    async def settled(self) -> None:
        """Wait for the pending scroll action, if any."""
        task = self._layout_task
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    def _report(self, operation: str, exc: Exception) -> None:
        try:
            self.reporter(operation, exc)
        except Exception:
            logger.exception(f"Error reporter failed while reporting {operation}")
