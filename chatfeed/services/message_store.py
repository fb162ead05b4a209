"""
Message Store

Document-store operations for chats and their messages:
- live subscription to the newest page of a chat
- one-shot cursor paging into older history
- message create / field-merge update
- chat metadata upsert with field-merge semantics

Every call opens its own session, so a store instance can be shared by
the API and any number of feeds.
"""

import asyncio
import inspect
import uuid
from contextlib import suppress
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatfeed.core.errors import NotFoundError, PermissionDeniedError
from chatfeed.core.logging import get_logger
from chatfeed.core.time import utc_now
from chatfeed.infra.bus import chat_channel
from chatfeed.models.chat import Chat
from chatfeed.models.message import ChatMessage
from chatfeed.schemas.chat import ChatPreview
from chatfeed.schemas.message import Message

logger = get_logger(__name__)

PageHandler = Callable[[List[Message]], Awaitable[None]]
ErrorHandler = Callable[[Exception], Any]

MESSAGE_UPDATE_FIELDS = {"text", "image_url", "deleted", "edited"}
CHAT_MERGE_FIELDS = {"participants", "last_message", "updated_at"}


class Subscription:
    """Handle for a live query. `close()` stops deliveries for good."""

    def __init__(self, task: asyncio.Task):
        self._task = task

    @property
    def closed(self) -> bool:
        return self._task.done()

    async def close(self) -> None:
        if self._task is asyncio.current_task():
            self._task.cancel()
            return
        if not self._task.done():
            self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task


class MessageStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], bus):
        self.session_factory = session_factory
        self.bus = bus

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def latest_page(self, chat_id: str, limit: int) -> List[Message]:
        """Newest `limit` messages, newest first."""
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.chat_id == chat_id)
            .order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
            .limit(limit)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [Message.model_validate(row) for row in result.scalars().all()]

    async def fetch_older(self, chat_id: str, cursor: Message, limit: int) -> List[Message]:
        """
        Next `limit` messages strictly older than `cursor`, newest first.
        Equal timestamps are ordered by ID, same as latest_page.
        """
        if cursor.timestamp is None:
            raise ValueError("Cursor message has no timestamp yet")

        stmt = (
            select(ChatMessage)
            .where(
                ChatMessage.chat_id == chat_id,
                or_(
                    ChatMessage.timestamp < cursor.timestamp,
                    and_(
                        ChatMessage.timestamp == cursor.timestamp,
                        ChatMessage.id < cursor.id,
                    ),
                ),
            )
            .order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
            .limit(limit)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [Message.model_validate(row) for row in result.scalars().all()]

    async def get_message(self, chat_id: str, message_id: str) -> Optional[Message]:
        async with self.session_factory() as session:
            row = await session.get(ChatMessage, message_id)
            if row is None or row.chat_id != chat_id:
                return None
            return Message.model_validate(row)

    async def get_chat(self, chat_id: str) -> Optional[ChatPreview]:
        async with self.session_factory() as session:
            row = await session.get(Chat, chat_id)
            return ChatPreview.model_validate(row) if row else None

    async def list_chats(self, user_id: str, limit: int = 50) -> List[ChatPreview]:
        """Chats the user takes part in, most recently updated first."""
        stmt = (
            select(Chat)
            .where(or_(Chat.participant_a == user_id, Chat.participant_b == user_id))
            .order_by(Chat.updated_at.desc())
            .limit(limit)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [ChatPreview.model_validate(row) for row in result.scalars().all()]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_message(
        self,
        chat_id: str,
        *,
        sender_id: str,
        text: str = "",
        image_url: Optional[str] = None,
    ) -> Message:
        row = ChatMessage(
            id=uuid.uuid4().hex,
            chat_id=chat_id,
            sender_id=sender_id,
            text=text,
            image_url=image_url,
            deleted=False,
            edited=False,
            timestamp=utc_now(),
        )
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            message = Message.model_validate(row)

        await self._notify(chat_id, message.id)
        return message

    async def update_message(
        self, chat_id: str, message_id: str, fields: Dict[str, Any]
    ) -> Message:
        """Field-merge update: only the given fields change."""
        unknown = set(fields) - MESSAGE_UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update message fields: {sorted(unknown)}")

        async with self.session_factory() as session:
            row = await session.get(ChatMessage, message_id)
            if row is None or row.chat_id != chat_id:
                raise NotFoundError("Message not found", details={"message_id": message_id})
            for name, value in fields.items():
                setattr(row, name, value)
            await session.commit()
            await session.refresh(row)
            message = Message.model_validate(row)

        await self._notify(chat_id, message_id)
        return message

    async def merge_chat(self, chat_id: str, fields: Dict[str, Any]) -> ChatPreview:
        """
        Upsert the chat metadata record. Fields that are not passed keep
        their stored value (participants set at creation survive a
        preview-only update). Participants are fixed once set.
        """
        unknown = set(fields) - CHAT_MERGE_FIELDS
        if unknown:
            raise ValueError(f"Cannot merge chat fields: {sorted(unknown)}")

        async with self.session_factory() as session:
            row = await session.get(Chat, chat_id)
            if row is None:
                row = Chat(id=chat_id)
                session.add(row)
            elif "participants" in fields and row.participants:
                if sorted(fields["participants"]) != row.participants:
                    raise PermissionDeniedError(
                        "Chat belongs to another pair", details={"chat_id": chat_id}
                    )
            for name, value in fields.items():
                setattr(row, name, value)
            await session.commit()
            await session.refresh(row)
            return ChatPreview.model_validate(row)

    async def _notify(self, chat_id: str, message_id: str) -> None:
        try:
            await self.bus.publish(chat_channel(chat_id), message_id)
        except Exception as e:
            # The write is committed; live readers catch up on the next change
            logger.error(f"Change notification failed for chat {chat_id}: {e}")

    # ------------------------------------------------------------------
    # Live query
    # ------------------------------------------------------------------

    async def subscribe_latest(
        self,
        chat_id: str,
        limit: int,
        on_page: PageHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        """
        Deliver the newest `limit` messages (newest first) now and again after
        every change to the chat, until the returned subscription is closed.
        A failure ends the subscription and is passed to `on_error`.
        """
        ready = asyncio.Event()

        async def run() -> None:
            try:
                async with self.bus.subscribe(chat_channel(chat_id)) as changes:
                    ready.set()
                    await on_page(await self.latest_page(chat_id, limit))
                    async for _ in changes:
                        await on_page(await self.latest_page(chat_id, limit))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Live subscription for chat {chat_id} failed: {e}")
                if on_error is not None:
                    result = on_error(e)
                    if inspect.isawaitable(result):
                        await result
            finally:
                ready.set()

        task = asyncio.create_task(run(), name=f"chat-subscription:{chat_id}")
        # Return once the channel is live so writes after this call are seen
        await ready.wait()
        return Subscription(task)
