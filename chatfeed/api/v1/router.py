"""
API Router configuration
"""

from fastapi import APIRouter

from chatfeed.api.v1 import chats, health

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(chats.router, prefix="/chats", tags=["chats"])
