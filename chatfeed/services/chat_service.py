"""
Chat Service

Write rules for two-party chats, shared by the message feed and the API:
send, edit, soft delete, history paging and conversation previews.
"""

from datetime import timedelta
from typing import List, Optional

from chatfeed.core.config import settings
from chatfeed.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from chatfeed.core.logging import get_logger
from chatfeed.core.time import as_utc, utc_now
from chatfeed.infra.blobs import BlobStore
from chatfeed.schemas.chat import ChatPreview, Conversation
from chatfeed.schemas.message import Message, MessageCreate, MessagePage
from chatfeed.services.message_store import MessageStore

logger = get_logger(__name__)


class ChatService:
    def __init__(self, store: MessageStore, blobs: Optional[BlobStore] = None):
        self.store = store
        self.blobs = blobs

    async def send_message(
        self,
        conversation: Conversation,
        sender_id: str,
        text: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Message:
        """
        Create the message, then merge the chat preview. The preview is a
        denormalized index: a failure there is logged and the sent message
        stands.
        """
        await self.require_participant(conversation, sender_id)
        try:
            payload = MessageCreate(text=text, image_url=image_url)
        except ValueError as e:
            raise ValidationError("Message needs text or an image") from e

        message = await self.store.add_message(
            conversation.chat_id,
            sender_id=sender_id,
            text=payload.text,
            image_url=payload.image_url,
        )

        preview = payload.text or settings.image_preview_text
        try:
            await self.store.merge_chat(
                conversation.chat_id,
                {
                    "participants": list(conversation.participants),
                    "last_message": preview,
                    "updated_at": utc_now(),
                },
            )
        except Exception as e:
            logger.error(f"Chat preview update failed for {conversation.chat_id}: {e}")

        logger.info(f"Message {message.id} sent in chat {conversation.chat_id}")
        return message

    async def edit_message(
        self, conversation: Conversation, user_id: str, message_id: str, text: str
    ) -> Message:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Edited text cannot be empty")

        message = await self._own_message(conversation, user_id, message_id)
        if message.deleted:
            raise ValidationError("Deleted messages cannot be edited")
        if not self.can_edit(message):
            raise PermissionDeniedError(
                "Edit window has passed",
                code="edit_window_expired",
                details={"edit_window_minutes": settings.edit_window_minutes},
            )

        return await self.store.update_message(
            conversation.chat_id, message_id, {"text": text, "edited": True}
        )

    async def delete_message(
        self, conversation: Conversation, user_id: str, message_id: str
    ) -> Message:
        """Soft delete; the image blob is removed best-effort."""
        message = await self._own_message(conversation, user_id, message_id)
        if message.deleted:
            return message

        updated = await self.store.update_message(
            conversation.chat_id, message_id, {"deleted": True, "image_url": None}
        )

        if message.image_url and self.blobs is not None:
            try:
                await self.blobs.delete(message.image_url)
            except Exception as e:
                logger.warning(f"Image cleanup failed for message {message_id}: {e}")

        return updated

    async def history_page(
        self,
        conversation: Conversation,
        user_id: str,
        before: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> MessagePage:
        """
        One page of history in display (ascending) order. Without `before`
        this is the newest page.
        """
        await self.require_participant(conversation, user_id)
        limit = limit or settings.page_size

        if before is None:
            page = await self.store.latest_page(conversation.chat_id, limit)
        else:
            cursor = await self.store.get_message(conversation.chat_id, before)
            if cursor is None:
                raise NotFoundError("Cursor message not found", details={"before": before})
            page = await self.store.fetch_older(conversation.chat_id, cursor, limit)

        return MessagePage(
            messages=list(reversed(page)),
            has_more=len(page) == limit,
            cursor=page[-1].id if page else None,
        )

    async def list_conversations(self, user_id: str) -> List[ChatPreview]:
        return await self.store.list_chats(user_id)

    def can_edit(self, message: Message) -> bool:
        if message.timestamp is None:
            return True
        window = timedelta(minutes=settings.edit_window_minutes)
        return utc_now() - as_utc(message.timestamp) <= window

    async def _own_message(
        self, conversation: Conversation, user_id: str, message_id: str
    ) -> Message:
        await self.require_participant(conversation, user_id)
        message = await self.store.get_message(conversation.chat_id, message_id)
        if message is None:
            raise NotFoundError("Message not found", details={"message_id": message_id})
        if message.sender_id != user_id:
            raise PermissionDeniedError("Only the sender can change a message")
        return message

    async def require_participant(self, conversation: Conversation, user_id: str) -> None:
        """
        The caller must be in the pair, and the pair must be the one the
        stored chat record was created for.
        """
        if user_id not in conversation.participants:
            raise PermissionDeniedError("Not a participant of this chat")
        chat = await self.store.get_chat(conversation.chat_id)
        if chat is not None and chat.participants and chat.participants != list(conversation.participants):
            logger.warning(
                f"Chat {conversation.chat_id} is owned by {chat.participants}, "
                f"refused for {list(conversation.participants)}"
            )
            raise PermissionDeniedError("Not a participant of this chat")
