"""
Chat endpoints

REST access to conversations and their messages, plus a WebSocket that
streams the newest page of a chat every time it changes.
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from starlette.websockets import WebSocketState

from chatfeed.core import security
from chatfeed.core.config import settings
from chatfeed.core.deps import (
    ChatServiceDep,
    ConversationDep,
    CurrentUserDep,
    conversation_with,
    get_chat_service,
)
from chatfeed.core.errors import AppError
from chatfeed.core.logging import get_logger
from chatfeed.schemas.chat import ChatPreview
from chatfeed.schemas.message import Message, MessageCreate, MessageEdit, MessagePage
from chatfeed.services.chat_service import ChatService

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=List[ChatPreview])
async def list_chats(user_id: CurrentUserDep, service: ChatServiceDep):
    """Conversation previews, most recently updated first."""
    return await service.list_conversations(user_id)


@router.get("/{peer_id}/messages", response_model=MessagePage)
async def get_messages(
    conversation: ConversationDep,
    user_id: CurrentUserDep,
    service: ChatServiceDep,
    before: Optional[str] = None,
    limit: int = Query(default=settings.page_size, ge=1, le=100),
):
    """
    One page of history in display order. Pass the returned `cursor` as
    `before` to page further back.
    """
    return await service.history_page(conversation, user_id, before=before, limit=limit)


@router.post("/{peer_id}/messages", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(
    body: MessageCreate,
    conversation: ConversationDep,
    user_id: CurrentUserDep,
    service: ChatServiceDep,
):
    return await service.send_message(
        conversation, user_id, text=body.text, image_url=body.image_url
    )


@router.patch("/{peer_id}/messages/{message_id}", response_model=Message)
async def edit_message(
    message_id: str,
    body: MessageEdit,
    conversation: ConversationDep,
    user_id: CurrentUserDep,
    service: ChatServiceDep,
):
    return await service.edit_message(conversation, user_id, message_id, body.text)


@router.delete("/{peer_id}/messages/{message_id}", response_model=Message)
async def delete_message(
    message_id: str,
    conversation: ConversationDep,
    user_id: CurrentUserDep,
    service: ChatServiceDep,
):
    return await service.delete_message(conversation, user_id, message_id)


async def close_with_error(websocket: WebSocket) -> None:
    """Tell a still-connected client that live updates stopped, then close 1011."""
    if websocket.client_state != WebSocketState.CONNECTED:
        return
    try:
        await websocket.send_json({"event": "error", "message": "Live updates stopped"})
        await websocket.close(code=1011)
    except Exception as e:
        # Client went away between the state check and the send
        logger.info(f"Live feed error frame not delivered: {e}")


@router.websocket("/{peer_id}/live")
async def live_messages(
    websocket: WebSocket,
    peer_id: str,
    token: str = Query(...),
    service: ChatService = Depends(get_chat_service),
):
    """
    Live newest page. Every frame is
    {"event": "page", "chat_id": ..., "messages": [...newest first]}.
    """
    user_id = security.user_id_from_token(token)
    if not user_id:
        logger.warning("Invalid token in WebSocket connection")
        await websocket.close(code=1008, reason="Invalid token")
        return

    try:
        conversation = conversation_with(peer_id, user_id)
        await service.require_participant(conversation, user_id)
    except AppError as e:
        await websocket.close(code=1008, reason=e.message)
        return

    await websocket.accept()
    failed = asyncio.Event()

    async def on_page(page: List[Message]) -> None:
        await websocket.send_json({
            "event": "page",
            "chat_id": conversation.chat_id,
            "messages": [m.model_dump(mode="json") for m in page],
        })

    def on_error(exc: Exception) -> None:
        failed.set()

    subscription = await service.store.subscribe_latest(
        conversation.chat_id, settings.page_size, on_page, on_error
    )
    receiver = asyncio.create_task(websocket.receive_text())
    watcher = asyncio.create_task(failed.wait())
    try:
        while True:
            done, _ = await asyncio.wait(
                {receiver, watcher}, return_when=asyncio.FIRST_COMPLETED
            )
            if receiver in done:
                # Client frames are only keep-alives
                receiver.result()
                receiver = asyncio.create_task(websocket.receive_text())
            if watcher in done:
                await close_with_error(websocket)
                break
    except WebSocketDisconnect:
        logger.info(f"Live feed for {user_id} in chat {conversation.chat_id} disconnected")
    finally:
        receiver.cancel()
        watcher.cancel()
        await subscription.close()
