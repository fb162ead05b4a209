"""
Dependency Injection

FastAPI dependencies for routes.
"""

from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from chatfeed.core.errors import AuthenticationError, ValidationError
from chatfeed.core.security import user_id_from_token
from chatfeed.infra.blobs import BlobStore
from chatfeed.infra.bus import get_change_bus
from chatfeed.infra.db import AsyncSessionLocal, get_db
from chatfeed.schemas.chat import Conversation
from chatfeed.services.chat_service import ChatService
from chatfeed.services.message_store import MessageStore

bearer_scheme = HTTPBearer(auto_error=False)

SessionDep = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user_id(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> str:
    """
    Validate token and return current user ID.
    Does not fetch a user record; identity is owned by the auth provider.
    """
    if credentials is None:
        raise AuthenticationError("Missing bearer token")
    user_id = user_id_from_token(credentials.credentials)
    if not user_id:
        raise AuthenticationError("Could not validate credentials")
    return user_id


CurrentUserDep = Annotated[str, Depends(get_current_user_id)]


async def get_chat_service() -> ChatService:
    bus = await get_change_bus()
    return ChatService(MessageStore(AsyncSessionLocal, bus), BlobStore())


ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


def conversation_with(peer_id: str, user_id: str) -> Conversation:
    if peer_id == user_id:
        raise ValidationError("Cannot open a chat with yourself")
    try:
        return Conversation.between(user_id, peer_id)
    except ValueError as e:
        raise ValidationError("Invalid chat participant", details={"peer_id": peer_id}) from e


async def get_conversation(peer_id: str, user_id: CurrentUserDep) -> Conversation:
    return conversation_with(peer_id, user_id)


ConversationDep = Annotated[Conversation, Depends(get_conversation)]
